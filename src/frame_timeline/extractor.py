# src/frame_timeline/extractor.py
"""Per-frame extraction using ffmpeg."""

import asyncio
import logging
import math
import re
from pathlib import Path

from frame_timeline.errors import DecodeError, ExtractionError
from frame_timeline.models import (
    DecodeOptions,
    ExtractionResult,
    ExtractionStatus,
    FrameIndex,
    OutputFormat,
    format_timestamp,
)
from frame_timeline.probe import DurationProbe
from frame_timeline.progress import ProgressChannel
from frame_timeline.workspace import Workspace

logger = logging.getLogger(__name__)

FRAME_PREFIX = "frame-"

# Lines kept from ffmpeg's stderr for the error diagnostic
DIAGNOSTIC_LINES = 20


def frame_number(filename: str, output_format: OutputFormat = OutputFormat.JPG) -> int | None:
    """Parse the integer suffix of a frame file name, e.g. frame-12.jpg -> 12."""
    match = re.fullmatch(
        rf"{re.escape(FRAME_PREFIX)}(\d+)\.{output_format.value}", filename, re.IGNORECASE
    )
    if match:
        return int(match.group(1))
    return None


def collect_frames(
    directory: Path,
    duration_ms: float,
    output_format: OutputFormat = OutputFormat.JPG
) -> FrameIndex:
    """
    Build the frame index from the files ffmpeg wrote into directory.

    Files are ordered by their numeric suffix, not by name, since the
    suffixes are not zero padded (frame-2 comes before frame-10).
    Anything that is not a frame image is ignored.
    """
    numbered = []
    for path in Workspace(directory).frame_files(output_format):
        number = frame_number(path.name, output_format)
        if number is not None:
            numbered.append((number, str(path)))

    numbered.sort()
    return FrameIndex.from_paths([path for _, path in numbered], duration_ms)


def parse_progress_line(line: str, duration_ms: float) -> float | None:
    """
    Convert one line of ffmpeg's -progress output to a percentage.

    out_time_us and out_time_ms both carry microseconds. The result is
    floored to two decimals and clamped to 0-100. progress=end always
    maps to 100. Lines without timing information give None.
    """
    key, sep, value = line.strip().partition("=")
    if not sep:
        return None

    if key == "progress":
        return 100.0 if value == "end" else None

    if key not in ("out_time_us", "out_time_ms") or duration_ms <= 0:
        return None

    try:
        micros = int(value)
    except ValueError:
        # ffmpeg prints N/A before the first frame is muxed
        return None

    percent = micros / 1000 / duration_ms * 100
    percent = math.floor(percent * 100) / 100
    return min(max(percent, 0.0), 100.0)


class FrameExtractor:
    """Decode every frame of a video into numbered stills."""

    def __init__(
        self,
        ffmpeg_bin: str = "ffmpeg",
        probe: DurationProbe | None = None,
        options: DecodeOptions | None = None,
        max_duration_ms: float = 0
    ):
        self.ffmpeg_bin = ffmpeg_bin
        self.probe = probe or DurationProbe()
        self.options = options or DecodeOptions()
        self.max_duration_ms = max_duration_ms

    def output_pattern(self, workspace: Path) -> str:
        return str(Path(workspace) / f"{FRAME_PREFIX}%d.{self.options.output_format.value}")

    def build_command(self, video_path: str, workspace: Path) -> list[str]:
        """ffmpeg argv writing one image per source frame into workspace."""
        filters = []
        if self.options.preserve_all_frames:
            filters.append("select=1")
        if self.options.preserve_source_timestamps:
            filters.append("setpts=N/TB")

        cmd = [
            self.ffmpeg_bin,
            "-hide_banner",
            "-nostats",
            "-loglevel", "error",
            "-y",
            "-i", video_path,
            "-an",
        ]
        if filters:
            cmd += ["-vf", ",".join(filters)]
        if self.options.preserve_all_frames:
            # No duplicating or dropping frames to match an output rate
            cmd += ["-fps_mode", "passthrough"]
        if self.options.preserve_source_timestamps:
            cmd += ["-frame_pts", "1"]
        cmd += [
            "-start_number", "1",
            "-progress", "pipe:1",
            self.output_pattern(workspace),
        ]
        return cmd

    async def _run_decoder(
        self,
        cmd: list[str],
        duration_ms: float,
        channel: ProgressChannel | None
    ) -> None:
        """Run ffmpeg, forwarding progress. Raises DecodeError on failure."""
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise DecodeError(f"{self.ffmpeg_bin} not found. Ensure ffmpeg is installed.") from e

        # Drain stderr alongside stdout so a chatty ffmpeg cannot block on a full pipe
        stderr_task = asyncio.create_task(proc.stderr.read())

        try:
            async for raw in proc.stdout:
                percent = parse_progress_line(raw.decode("utf-8", errors="replace"), duration_ms)
                if percent is not None and channel is not None:
                    channel.publish(percent)
            returncode = await proc.wait()
            stderr = (await stderr_task).decode("utf-8", errors="replace")
        except asyncio.CancelledError:
            logger.info("Extraction cancelled, stopping ffmpeg")
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            stderr_task.cancel()
            raise

        if returncode != 0:
            diagnostic = "\n".join(stderr.strip().splitlines()[-DIAGNOSTIC_LINES:])
            raise DecodeError(
                f"ffmpeg exited with code {returncode}: {diagnostic or 'no diagnostic'}",
                diagnostic=diagnostic
            )

    async def extract(
        self,
        video_path: str,
        workspace: Path,
        channel: ProgressChannel | None = None
    ) -> ExtractionResult:
        """
        Extract every frame of a video into an already prepared workspace.

        Args:
            video_path: Path to video file
            workspace: Empty directory to write frames into
            channel: Receives completion percentages while decoding

        Returns:
            ExtractionResult with the ordered frame index; status EMPTY
            when ffmpeg succeeded but wrote no frames

        Raises:
            ProbeError: If the duration cannot be read; ffmpeg is never started
            ExtractionError: If the video is longer than max_duration_ms
            DecodeError: If ffmpeg fails. Partial frames stay in the workspace
        """
        duration_ms = await asyncio.to_thread(self.probe.probe, video_path)
        if self.max_duration_ms and duration_ms > self.max_duration_ms:
            raise ExtractionError(
                f"Video exceeds {format_timestamp(self.max_duration_ms)} limit "
                f"({format_timestamp(duration_ms)}). Use a trimmed clip."
            )

        cmd = self.build_command(video_path, workspace)
        logger.info(f"Running {' '.join(cmd)}")
        await self._run_decoder(cmd, duration_ms, channel)

        index = await asyncio.to_thread(
            collect_frames, workspace, duration_ms, self.options.output_format
        )
        status = ExtractionStatus.SUCCESS if len(index) else ExtractionStatus.EMPTY
        if status == ExtractionStatus.EMPTY:
            logger.warning(f"ffmpeg produced no frames for {video_path}")
        else:
            logger.info(f"Extracted {len(index)} frames from {video_path}")

        return ExtractionResult(
            status=status,
            video_path=video_path,
            workspace=str(workspace),
            index=index,
        )
