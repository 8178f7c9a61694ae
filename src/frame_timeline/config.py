"""Settings read from the environment."""

import os

from pydantic import BaseModel

from frame_timeline.models import OutputFormat
from frame_timeline.session import ReentrancyPolicy
from frame_timeline.workspace import default_workspace_path


class Settings(BaseModel):
    workspace_dir: str
    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"
    output_format: OutputFormat = OutputFormat.JPG
    policy: ReentrancyPolicy = ReentrancyPolicy.CANCEL
    probe_timeout: float = 30
    max_video_duration: float = 30 * 60  # seconds, 0 disables the limit

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        values = {
            "workspace_dir": env.get("FRAME_TIMELINE_WORKSPACE", str(default_workspace_path())),
            "ffmpeg_bin": env.get("FRAME_TIMELINE_FFMPEG"),
            "ffprobe_bin": env.get("FRAME_TIMELINE_FFPROBE"),
            "output_format": env.get("FRAME_TIMELINE_FORMAT"),
            "policy": env.get("FRAME_TIMELINE_POLICY"),
            "probe_timeout": env.get("FRAME_TIMELINE_PROBE_TIMEOUT"),
            "max_video_duration": env.get("FRAME_TIMELINE_MAX_DURATION"),
        }
        return cls(**{k: v for k, v in values.items() if v is not None})
