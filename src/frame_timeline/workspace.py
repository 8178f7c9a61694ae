"""Ephemeral on-disk area holding the frames of one extraction run."""

import logging
import shutil
import tempfile
from pathlib import Path

from frame_timeline.errors import WorkspaceError
from frame_timeline.models import OutputFormat

logger = logging.getLogger(__name__)


def default_workspace_path() -> Path:
    """Frames directory under the system temp dir."""
    return Path(tempfile.gettempdir()) / "video-frames"


class Workspace:
    """A single directory that is wiped before every extraction."""

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path) if path is not None else default_workspace_path()

    @property
    def exists(self) -> bool:
        return self.path.is_dir()

    def _remove(self) -> None:
        # Symlinks count as non-directories and are unlinked, never followed
        if self.path.is_dir() and not self.path.is_symlink():
            shutil.rmtree(self.path)
        else:
            self.path.unlink()

    def prepare(self) -> Path:
        """
        Return a guaranteed-empty workspace directory.

        Anything already at the path (left over frames from a previous
        run, or a stray file) is removed first.

        Raises:
            WorkspaceError: If the old contents cannot be removed or the
                directory cannot be created
        """
        try:
            self._remove()
            logger.info(f"Removed previous workspace at {self.path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            raise WorkspaceError(f"Could not clear workspace {self.path}: {e}") from e

        try:
            self.path.mkdir(parents=True)
        except OSError as e:
            raise WorkspaceError(f"Could not create workspace {self.path}: {e}") from e

        logger.info(f"Workspace ready: {self.path}")
        return self.path

    def teardown(self) -> None:
        """Remove the workspace and all its contents. A missing workspace is fine."""
        try:
            self._remove()
        except FileNotFoundError:
            return
        except OSError as e:
            raise WorkspaceError(f"Could not remove workspace {self.path}: {e}") from e
        logger.info(f"Workspace removed: {self.path}")

    def frame_files(self, output_format: OutputFormat = OutputFormat.JPG) -> list[Path]:
        """Image files of the given format currently in the workspace, unordered."""
        if not self.exists:
            return []
        suffix = f".{output_format.value}"
        return [p for p in self.path.iterdir() if p.is_file() and p.suffix.lower() == suffix]
