# src/frame_timeline/server.py
"""MCP server for per-frame video extraction and range selection."""

import asyncio
import logging
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from frame_timeline.config import Settings
from frame_timeline.errors import ExtractionBusyError, ExtractionError
from frame_timeline.extractor import FrameExtractor
from frame_timeline.models import (
    DecodeOptions,
    ExtractionResponse,
    FrameInfo,
    ProgressResponse,
    SelectionResponse,
    format_timestamp,
)
from frame_timeline.probe import DurationProbe
from frame_timeline.session import ExtractionSession
from frame_timeline.timeline import SelectionError, TimelineSelection
from frame_timeline.workspace import Workspace

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = Settings.from_env()

# Initialize MCP server
mcp = FastMCP("frame-timeline")

# Initialize components
workspace = Workspace(settings.workspace_dir)
extractor = FrameExtractor(
    ffmpeg_bin=settings.ffmpeg_bin,
    probe=DurationProbe(ffprobe_bin=settings.ffprobe_bin, timeout=settings.probe_timeout),
    options=DecodeOptions(output_format=settings.output_format),
    max_duration_ms=settings.max_video_duration * 1000,
)
session = ExtractionSession(workspace, extractor, policy=settings.policy)
# The workspace is removed through the session so a running extraction is stopped first
timeline = TimelineSelection()


def _frame_info(frame) -> FrameInfo | None:
    return FrameInfo.from_frame(frame) if frame is not None else None


def selection_response(message: str = "", status: str = "ok") -> dict:
    return SelectionResponse(
        status=status,
        state=timeline.state.value,
        frame_count=timeline.frame_count,
        start_frame=_frame_info(timeline.start_frame),
        end_frame=_frame_info(timeline.end_frame),
        current_frame=_frame_info(timeline.current_frame),
        duration_ms=timeline.duration_ms,
        message=message
    ).model_dump()


async def _log_progress(handle) -> None:
    async for percent in handle.progress.updates():
        logger.info(f"Extracting {handle.video_path}: {percent:.2f}%")


@mcp.tool()
async def extract_video_frames(video_path: str) -> dict:
    """
    Extract every frame of a local video as timestamped still images.

    The frames workspace is wiped first, so frames of an earlier
    extraction are no longer available afterwards.

    Args:
        video_path: Path to a local video file

    Returns:
        Dictionary with status ("success", "empty" or "error"), frames
        list with per-frame timestamps in milliseconds, and metadata
    """
    if not Path(video_path).is_file():
        return ExtractionResponse(
            status="error",
            message=f"File not found: {video_path}"
        ).model_dump()

    handle = None
    progress_log = None
    try:
        handle = await session.begin_extraction(video_path)
        # Frames from the previous run are being wiped
        timeline.unload()
        progress_log = asyncio.create_task(_log_progress(handle))
        logger.info(f"Extracting frames of {video_path} into {workspace.path}")

        result = await handle.result()
        duration = format_timestamp(result.index.duration_ms)

        if session.active is not handle:
            return ExtractionResponse(
                status="error",
                message=f"Extraction of {video_path} was cancelled"
            ).model_dump()

        if result.is_empty:
            return ExtractionResponse(
                status="empty",
                video_duration=duration,
                message=f"No frames could be extracted from {video_path}. "
                        f"Check that the file contains a video stream."
            ).model_dump()

        timeline.load(result.index)
        frames = [FrameInfo.from_frame(f) for f in result.index.frames]

        logger.info(f"Successfully extracted {len(frames)} frames")
        return ExtractionResponse(
            status="success",
            video_duration=duration,
            frames_extracted=len(frames),
            frames=frames,
            message=f"Extracted {len(frames)} frames from {duration} video. "
                    f"Frames saved to {result.workspace}/"
        ).model_dump()

    except ExtractionBusyError as e:
        logger.warning(f"Extraction rejected: {e}")
        return ExtractionResponse(
            status="error",
            message=str(e)
        ).model_dump()

    except ExtractionError as e:
        logger.error(f"Extraction error: {e}")
        return ExtractionResponse(
            status="error",
            message=str(e)
        ).model_dump()

    except asyncio.CancelledError:
        if handle is None or not handle.superseded:
            raise
        logger.info(f"Extraction of {video_path} was cancelled")
        return ExtractionResponse(
            status="error",
            message=f"Extraction of {video_path} was cancelled"
        ).model_dump()

    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return ExtractionResponse(
            status="error",
            message=f"Unexpected error: {str(e)}"
        ).model_dump()

    finally:
        if progress_log is not None:
            progress_log.cancel()


@mcp.tool()
async def extraction_progress() -> dict:
    """
    Report progress of the current extraction.

    Returns:
        Dictionary with whether an extraction is running and its
        completion percentage (0-100)
    """
    handle = session.active
    if handle is None:
        return ProgressResponse(active=False).model_dump()
    return ProgressResponse(
        active=not handle.done(),
        percent=handle.progress.last_value,
        video_path=handle.video_path
    ).model_dump()


@mcp.tool()
async def select_frame(index: int) -> dict:
    """
    Pick a frame as start or end of the selected range.

    The first pick sets the start. A second pick before the start
    replaces it, otherwise it sets the end. A pick after a complete
    range starts a new one.

    Args:
        index: Zero-based frame index from extract_video_frames

    Returns:
        Dictionary with selection state and range duration in milliseconds
    """
    try:
        timeline.select_index(index)
    except SelectionError as e:
        return selection_response(message=str(e), status="error")
    return selection_response()


@mcp.tool()
async def select_position(position: float) -> dict:
    """
    Pick the frame at a relative position along the timeline.

    Args:
        position: 0.0 (first frame) to 1.0 (last frame)

    Returns:
        Dictionary with selection state and range duration in milliseconds
    """
    if not 0.0 <= position <= 1.0:
        return selection_response(
            message=f"Invalid position: {position}. Must be between 0.0 and 1.0",
            status="error"
        )
    try:
        timeline.select_at(position)
    except SelectionError as e:
        return selection_response(message=str(e), status="error")
    return selection_response()


@mcp.tool()
async def selection_status() -> dict:
    """Current start/end frames and the duration between them."""
    return selection_response()


@mcp.tool()
async def reset_selection() -> dict:
    """Clear the selection and loaded frames, and delete the frame files."""
    timeline.reset()
    try:
        await session.cleanup_workspace()
    except ExtractionError as e:
        return selection_response(message=str(e), status="error")
    return selection_response(message="Selection cleared")


@mcp.tool()
async def cleanup_workspace() -> dict:
    """Stop any running extraction and delete all extracted frames."""
    timeline.unload()
    try:
        await session.cleanup_workspace()
    except ExtractionError as e:
        return selection_response(message=str(e), status="error")
    return selection_response(message=f"Removed {workspace.path}")


def main():
    """Run the MCP server."""
    mcp.run()


if __name__ == "__main__":
    main()
