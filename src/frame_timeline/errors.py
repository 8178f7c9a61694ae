"""Error types raised by the extraction pipeline."""


class ExtractionError(Exception):
    """Base error for a failed extraction run."""
    pass


class WorkspaceError(ExtractionError):
    """I/O failure while preparing or removing the frames workspace."""
    pass


class ProbeError(ExtractionError):
    """Video duration could not be determined."""
    pass


class DecodeError(ExtractionError):
    """ffmpeg failed while decoding frames."""

    def __init__(self, message: str, diagnostic: str = ""):
        super().__init__(message)
        self.diagnostic = diagnostic


class ExtractionBusyError(ExtractionError):
    """An extraction is already running against the workspace."""
    pass


class ExtractionSupersededError(ExtractionError):
    """A newer extraction took over the workspace before this one finished."""
    pass
