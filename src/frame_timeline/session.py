"""Extraction runs against a single workspace."""

import asyncio
import logging
from enum import Enum

from frame_timeline.errors import (
    ExtractionBusyError,
    ExtractionSupersededError,
    WorkspaceError,
)
from frame_timeline.extractor import FrameExtractor
from frame_timeline.models import ExtractionResult
from frame_timeline.progress import ProgressCallback, ProgressChannel
from frame_timeline.workspace import Workspace

logger = logging.getLogger(__name__)


class ReentrancyPolicy(str, Enum):
    """What happens when an extraction starts while another is running."""
    CANCEL = "cancel"  # stop the running job and wait for it before reusing the workspace
    REJECT = "reject"  # refuse the new request
    DETACH = "detach"  # leave the old job running, discard its progress and result


class ExtractionHandle:
    """A running extraction: its progress stream and eventual result."""

    def __init__(self, video_path: str, channel: ProgressChannel):
        self.video_path = video_path
        self.progress = channel
        self.superseded = False
        self._task: asyncio.Task | None = None

    def _attach(self, task: asyncio.Task) -> None:
        self._task = task

    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def cancel(self) -> bool:
        if self._task is None:
            return False
        return self._task.cancel()

    async def wait(self) -> None:
        """Wait for the job to finish, whatever its outcome."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def result(self) -> ExtractionResult:
        """
        Wait for and return the extraction result.

        Raises:
            ExtractionError: The typed failure of the run
            asyncio.CancelledError: If the run was cancelled
        """
        return await self._task


class ExtractionSession:
    """
    Starts extractions into one workspace and cleans it up.

    Each extraction wipes the workspace first, so at most one run's frames
    exist on disk at a time. The policy decides what happens to a run that
    is still in flight when a new one is requested.
    """

    def __init__(
        self,
        workspace: Workspace,
        extractor: FrameExtractor,
        policy: ReentrancyPolicy = ReentrancyPolicy.CANCEL
    ):
        self.workspace = workspace
        self.extractor = extractor
        self.policy = ReentrancyPolicy(policy)
        self.active: ExtractionHandle | None = None
        self._workspace_lock = asyncio.Lock()

    async def _on_workspace(self, operation):
        """
        Run a blocking workspace operation in a worker thread, one at a time.

        If the caller is cancelled, the thread is still waited for before
        the cancellation propagates, so the next operation never overlaps
        a wipe that is still in progress.
        """
        async with self._workspace_lock:
            job = asyncio.ensure_future(asyncio.to_thread(operation))
            try:
                return await asyncio.shield(job)
            except asyncio.CancelledError:
                await asyncio.gather(job, return_exceptions=True)
                raise

    def _in_flight(self) -> ExtractionHandle | None:
        if self.active is not None and not self.active.done():
            return self.active
        return None

    async def _stop(self, handle: ExtractionHandle) -> None:
        handle.superseded = True
        handle.progress.close()
        handle.cancel()
        await handle.wait()

    async def begin_extraction(self, video_path: str) -> ExtractionHandle:
        """
        Start extracting video_path into a freshly wiped workspace.

        Raises:
            ExtractionBusyError: If a run is in flight and the policy is REJECT
        """
        previous = self._in_flight()
        if previous is not None:
            if self.policy == ReentrancyPolicy.REJECT:
                raise ExtractionBusyError(
                    f"Extraction of {previous.video_path} is still running"
                )
            if self.policy == ReentrancyPolicy.CANCEL:
                logger.info(f"Cancelling extraction of {previous.video_path}")
                await self._stop(previous)
            else:
                logger.warning(f"Detaching running extraction of {previous.video_path}")
                previous.superseded = True
                previous.progress.close()

        handle = ExtractionHandle(video_path, ProgressChannel())
        handle._attach(asyncio.create_task(self._run(handle)))
        self.active = handle
        return handle

    async def _run(self, handle: ExtractionHandle) -> ExtractionResult:
        try:
            path = await self._on_workspace(self.workspace.prepare)
            result = await self.extractor.extract(handle.video_path, path, handle.progress)
            if handle.superseded:
                raise ExtractionSupersededError(
                    f"Extraction of {handle.video_path} was replaced by a newer one"
                )
            return result
        except ExtractionSupersededError:
            raise
        except Exception as e:
            if handle.superseded:
                # Usually caused by the newer run wiping this run's frames
                raise ExtractionSupersededError(
                    f"Extraction of {handle.video_path} was replaced by a newer one"
                ) from e
            logger.error(f"Extraction of {handle.video_path} failed: {e}")
            raise
        finally:
            handle.progress.close()

    def subscribe_progress(self, handle: ExtractionHandle, callback: ProgressCallback) -> None:
        handle.progress.subscribe(callback)

    async def cleanup_workspace(self) -> None:
        """
        Stop any running extraction and remove the workspace.

        Safe to call repeatedly.

        Raises:
            WorkspaceError: If the workspace cannot be removed
        """
        running = self._in_flight()
        if running is not None:
            logger.info(f"Stopping extraction of {running.video_path} for cleanup")
            await self._stop(running)
        self.active = None

        try:
            await self._on_workspace(self.workspace.teardown)
        except WorkspaceError as e:
            logger.warning(f"Workspace cleanup failed: {e}")
            raise
