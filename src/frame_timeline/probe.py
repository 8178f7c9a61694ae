"""Video duration lookup via ffprobe."""

import logging
import subprocess

from frame_timeline.errors import ProbeError

logger = logging.getLogger(__name__)


class DurationProbe:
    """Read the container duration of a video with ffprobe."""

    def __init__(self, ffprobe_bin: str = "ffprobe", timeout: float = 30):
        self.ffprobe_bin = ffprobe_bin
        self.timeout = timeout

    def build_command(self, video_path: str) -> list[str]:
        return [
            self.ffprobe_bin,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            video_path
        ]

    def parse_duration(self, output: str) -> float:
        """
        Convert ffprobe's duration output (seconds) to milliseconds.

        Containers without a duration print nothing or "N/A"; that is
        reported as 0 rather than an error.
        """
        value = output.strip()
        if not value or value == "N/A":
            return 0.0
        try:
            seconds = float(value.splitlines()[0])
        except ValueError as e:
            raise ProbeError(f"Unexpected ffprobe output: {value!r}") from e
        return max(seconds, 0.0) * 1000

    def probe(self, video_path: str) -> float:
        """
        Get video duration in milliseconds.

        Raises:
            ProbeError: If ffprobe is missing, times out, or cannot read the file
        """
        cmd = self.build_command(video_path)

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            raise ProbeError(f"Probing {video_path} timed out after {self.timeout} seconds") from e
        except FileNotFoundError as e:
            raise ProbeError(f"{self.ffprobe_bin} not found. Ensure ffmpeg is installed.") from e

        if result.returncode != 0:
            raise ProbeError(f"Could not probe video: {result.stderr.strip()}")

        duration_ms = self.parse_duration(result.stdout)
        if duration_ms == 0:
            logger.warning(f"No duration reported for {video_path}; timestamps will be 0")
        else:
            logger.info(f"Probed {video_path}: {duration_ms:.0f} ms")
        return duration_ms
