"""Pydantic models for extracted frames and tool responses."""

from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, model_validator


def format_timestamp(milliseconds: float) -> str:
    """Format milliseconds as M:SS.mmm."""
    total_ms = max(int(milliseconds), 0)
    minutes, rest = divmod(total_ms, 60_000)
    seconds, ms = divmod(rest, 1000)
    return f"{minutes}:{seconds:02d}.{ms:03d}"


class OutputFormat(str, Enum):
    JPG = "jpg"
    PNG = "png"
    BMP = "bmp"


class DecodeOptions(BaseModel):
    """How ffmpeg turns the source video into still images."""
    model_config = ConfigDict(frozen=True)

    preserve_all_frames: bool = True
    preserve_source_timestamps: bool = True
    output_format: OutputFormat = OutputFormat.JPG


class Frame(BaseModel):
    """One decoded still image and its position in the video."""
    model_config = ConfigDict(frozen=True)

    path: str
    index: int = Field(ge=0)
    timestamp: float = Field(ge=0.0)  # milliseconds

    @property
    def timecode(self) -> str:
        return format_timestamp(self.timestamp)


class FrameIndex(BaseModel):
    """Ordered frames of one extraction run."""
    model_config = ConfigDict(frozen=True)

    frames: tuple[Frame, ...] = ()
    duration_ms: float = 0.0

    @model_validator(mode="after")
    def check_ordering(self) -> "FrameIndex":
        previous = 0.0
        for position, frame in enumerate(self.frames):
            if frame.index != position:
                raise ValueError(f"Frame at position {position} has index {frame.index}")
            if frame.timestamp < previous:
                raise ValueError(f"Timestamp of frame {position} goes backwards")
            previous = frame.timestamp
        return self

    @classmethod
    def from_paths(cls, paths: list[str], duration_ms: float) -> "FrameIndex":
        """
        Build the index from frame files already in decode order.

        Timestamps are spread linearly over the whole video:
        index * duration_ms / count.
        """
        count = len(paths)
        frames = tuple(
            Frame(path=path, index=i, timestamp=i * duration_ms / count)
            for i, path in enumerate(paths)
        )
        return cls(frames=frames, duration_ms=duration_ms)

    def __len__(self) -> int:
        return len(self.frames)

    def __getitem__(self, index: int) -> Frame:
        return self.frames[index]


class ExtractionStatus(str, Enum):
    SUCCESS = "success"
    EMPTY = "empty"


class ExtractionResult(BaseModel):
    """Outcome of a finished extraction. EMPTY means ffmpeg wrote no frames."""
    model_config = ConfigDict(frozen=True)

    status: ExtractionStatus
    video_path: str
    workspace: str
    index: FrameIndex

    @property
    def is_empty(self) -> bool:
        return self.status == ExtractionStatus.EMPTY


class FrameInfo(BaseModel):
    """Metadata for a single extracted frame."""
    path: str
    index: int
    timestamp_ms: float
    timecode: str

    @classmethod
    def from_frame(cls, frame: Frame) -> "FrameInfo":
        return cls(
            path=frame.path,
            index=frame.index,
            timestamp_ms=frame.timestamp,
            timecode=frame.timecode,
        )


class ExtractionResponse(BaseModel):
    """Response from the frame extraction tool."""
    status: str  # "success", "empty" or "error"
    video_duration: str | None = None
    frames_extracted: int = 0
    frames: list[FrameInfo] = []
    message: str


class ProgressResponse(BaseModel):
    """Latest progress of the running extraction."""
    active: bool
    percent: float = 0.0
    video_path: str | None = None


class SelectionResponse(BaseModel):
    """Current state of the timeline selection."""
    status: str  # "ok" or "error"
    state: str
    frame_count: int = 0
    start_frame: FrameInfo | None = None
    end_frame: FrameInfo | None = None
    current_frame: FrameInfo | None = None
    duration_ms: int | None = None
    message: str = ""
