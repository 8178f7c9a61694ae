import asyncio
import tempfile
import time
from pathlib import Path

import pytest
from frame_timeline.errors import (
    DecodeError,
    ExtractionBusyError,
    ExtractionSupersededError,
    WorkspaceError,
)
from frame_timeline.models import ExtractionResult, ExtractionStatus, FrameIndex
from frame_timeline.session import ExtractionSession, ReentrancyPolicy
from frame_timeline.workspace import Workspace


class FakeExtractor:
    """Writes frames into the workspace; optionally blocks until released."""

    def __init__(self, frame_count=3, error=None, block=False):
        self.frame_count = frame_count
        self.error = error
        self.release = asyncio.Event()
        if not block:
            self.release.set()
        self.started = []
        self.cancelled = []

    async def extract(self, video_path, workspace, channel=None):
        self.started.append(video_path)
        for n in range(1, self.frame_count + 1):
            (workspace / f"frame-{n}.jpg").write_bytes(b"jpg")
        if channel is not None:
            channel.publish(50)
        try:
            await self.release.wait()
        except asyncio.CancelledError:
            self.cancelled.append(video_path)
            raise
        if self.error:
            raise self.error
        paths = sorted(str(p) for p in workspace.glob("frame-*.jpg"))
        index = FrameIndex.from_paths(paths, 3000.0)
        status = ExtractionStatus.SUCCESS if paths else ExtractionStatus.EMPTY
        return ExtractionResult(
            status=status, video_path=video_path, workspace=str(workspace), index=index
        )


@pytest.fixture
def workspace():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Workspace(Path(tmpdir) / "video-frames")


@pytest.mark.asyncio
async def test_begin_extraction_prepares_workspace(workspace):
    workspace.prepare()
    (workspace.path / "frame-99.jpg").write_bytes(b"stale")

    session = ExtractionSession(workspace, FakeExtractor(frame_count=2))
    handle = await session.begin_extraction("/videos/clip.mp4")
    result = await handle.result()

    assert result.status == ExtractionStatus.SUCCESS
    assert sorted(p.name for p in workspace.path.iterdir()) == ["frame-1.jpg", "frame-2.jpg"]
    assert handle.done()
    assert handle.progress.closed


@pytest.mark.asyncio
async def test_subscribe_progress(workspace):
    extractor = FakeExtractor(block=True)
    session = ExtractionSession(workspace, extractor)
    handle = await session.begin_extraction("/videos/clip.mp4")
    delivered = []
    session.subscribe_progress(handle, delivered.append)

    extractor.release.set()
    await handle.result()

    assert delivered == [50]


@pytest.mark.asyncio
async def test_decode_error_propagates(workspace):
    session = ExtractionSession(workspace, FakeExtractor(error=DecodeError("boom")))
    handle = await session.begin_extraction("/videos/clip.mp4")

    with pytest.raises(DecodeError, match="boom"):
        await handle.result()
    # Partial frames are reclaimed by the next prepare, not inline
    assert len(workspace.frame_files()) == 3


@pytest.mark.asyncio
async def test_workspace_error_propagates(workspace):
    workspace.path.parent.joinpath("blocker").write_text("x")
    blocked = Workspace(workspace.path.parent / "blocker" / "video-frames")
    session = ExtractionSession(blocked, FakeExtractor())
    handle = await session.begin_extraction("/videos/clip.mp4")

    with pytest.raises(WorkspaceError):
        await handle.result()


@pytest.mark.asyncio
async def test_cancel_policy_stops_previous_run(workspace):
    extractor = FakeExtractor(block=True)
    session = ExtractionSession(workspace, extractor, policy=ReentrancyPolicy.CANCEL)

    first = await session.begin_extraction("/videos/first.mp4")
    await asyncio.sleep(0.05)
    second = await session.begin_extraction("/videos/second.mp4")

    assert first.done()
    assert first.superseded
    assert first.progress.closed
    assert extractor.cancelled == ["/videos/first.mp4"]
    with pytest.raises(asyncio.CancelledError):
        await first.result()

    extractor.release.set()
    result = await second.result()
    assert result.video_path == "/videos/second.mp4"
    assert session.active is second


@pytest.mark.asyncio
async def test_cancel_during_slow_prepare_waits_for_wipe(workspace, monkeypatch):
    original_mkdir = Path.mkdir

    def slow_mkdir(self, *args, **kwargs):
        time.sleep(0.3)
        return original_mkdir(self, *args, **kwargs)

    monkeypatch.setattr(Path, "mkdir", slow_mkdir)
    extractor = FakeExtractor()
    session = ExtractionSession(workspace, extractor, policy=ReentrancyPolicy.CANCEL)

    first = await session.begin_extraction("/videos/first.mp4")
    await asyncio.sleep(0.05)
    second = await session.begin_extraction("/videos/second.mp4")

    with pytest.raises(asyncio.CancelledError):
        await first.result()
    result = await second.result()

    assert result.video_path == "/videos/second.mp4"
    assert extractor.started == ["/videos/second.mp4"]
    assert sorted(p.name for p in workspace.path.iterdir()) == [
        "frame-1.jpg", "frame-2.jpg", "frame-3.jpg"
    ]


@pytest.mark.asyncio
async def test_reject_policy_refuses_second_run(workspace):
    extractor = FakeExtractor(block=True)
    session = ExtractionSession(workspace, extractor, policy=ReentrancyPolicy.REJECT)

    first = await session.begin_extraction("/videos/first.mp4")
    await asyncio.sleep(0.05)
    with pytest.raises(ExtractionBusyError, match="first.mp4"):
        await session.begin_extraction("/videos/second.mp4")

    extractor.release.set()
    result = await first.result()
    assert result.video_path == "/videos/first.mp4"

    # Once finished, a new run is accepted
    second = await session.begin_extraction("/videos/second.mp4")
    await second.result()


@pytest.mark.asyncio
async def test_detach_policy_invalidates_previous_run(workspace):
    extractor = FakeExtractor(block=True)
    session = ExtractionSession(workspace, extractor, policy=ReentrancyPolicy.DETACH)

    first = await session.begin_extraction("/videos/first.mp4")
    await asyncio.sleep(0.05)
    second = await session.begin_extraction("/videos/second.mp4")

    assert first.superseded
    assert first.progress.closed
    assert not first.done()

    extractor.release.set()
    with pytest.raises(ExtractionSupersededError):
        await first.result()
    result = await second.result()
    assert result.video_path == "/videos/second.mp4"


@pytest.mark.asyncio
async def test_detach_policy_reports_failed_previous_run_as_superseded(workspace):
    extractor = FakeExtractor(block=True, error=DecodeError("frames vanished"))
    session = ExtractionSession(workspace, extractor, policy=ReentrancyPolicy.DETACH)

    first = await session.begin_extraction("/videos/first.mp4")
    await asyncio.sleep(0.05)
    second = await session.begin_extraction("/videos/second.mp4")
    extractor.release.set()

    with pytest.raises(ExtractionSupersededError) as excinfo:
        await first.result()
    assert isinstance(excinfo.value.__cause__, DecodeError)
    # The current run keeps its own error
    with pytest.raises(DecodeError):
        await second.result()


@pytest.mark.asyncio
async def test_cleanup_workspace_is_idempotent(workspace):
    session = ExtractionSession(workspace, FakeExtractor())
    handle = await session.begin_extraction("/videos/clip.mp4")
    await handle.result()

    await session.cleanup_workspace()
    assert not workspace.exists
    await session.cleanup_workspace()
    assert session.active is None


@pytest.mark.asyncio
async def test_cleanup_workspace_stops_running_extraction(workspace):
    extractor = FakeExtractor(block=True)
    session = ExtractionSession(workspace, extractor)
    handle = await session.begin_extraction("/videos/clip.mp4")
    await asyncio.sleep(0.05)

    await session.cleanup_workspace()

    assert handle.done()
    assert extractor.cancelled == ["/videos/clip.mp4"]
    assert not workspace.exists


def test_policy_accepts_strings(workspace):
    session = ExtractionSession(workspace, FakeExtractor(), policy="reject")
    assert session.policy == ReentrancyPolicy.REJECT
