from frame_timeline.config import Settings
from frame_timeline.models import OutputFormat
from frame_timeline.session import ReentrancyPolicy
from frame_timeline.workspace import default_workspace_path


def test_settings_defaults():
    settings = Settings.from_env({})
    assert settings.workspace_dir == str(default_workspace_path())
    assert settings.ffmpeg_bin == "ffmpeg"
    assert settings.ffprobe_bin == "ffprobe"
    assert settings.output_format == OutputFormat.JPG
    assert settings.policy == ReentrancyPolicy.CANCEL
    assert settings.max_video_duration == 30 * 60


def test_settings_from_environment():
    settings = Settings.from_env({
        "FRAME_TIMELINE_WORKSPACE": "/data/frames",
        "FRAME_TIMELINE_FFMPEG": "/opt/bin/ffmpeg",
        "FRAME_TIMELINE_FORMAT": "png",
        "FRAME_TIMELINE_POLICY": "reject",
        "FRAME_TIMELINE_PROBE_TIMEOUT": "5",
        "FRAME_TIMELINE_MAX_DURATION": "0",
    })
    assert settings.workspace_dir == "/data/frames"
    assert settings.ffmpeg_bin == "/opt/bin/ffmpeg"
    assert settings.output_format == OutputFormat.PNG
    assert settings.policy == ReentrancyPolicy.REJECT
    assert settings.probe_timeout == 5
    assert settings.max_video_duration == 0
