import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from common.errors import CleanupWarning
from common.job_schema import PROCESSED_PREFIX

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StagingPaths:
    """Local file names for one job. Derived from the object key, never stored."""

    object_key: str
    raw_path: Path
    processed_key: str
    processed_path: Path


class LocalStagingArea:
    """
    Scratch space for jobs: one directory for downloaded raw videos and one for
    encoded output. Every path is a pure function of the object key, so cleanup
    can always be re-derived after a failure.
    """

    def __init__(self, raw_dir: Path, processed_dir: Path):
        self.raw_dir = Path(raw_dir)
        self.processed_dir = Path(processed_dir)

    def ensure_directories(self) -> None:
        """Creates both directories (and parents) if missing. Called once at startup."""
        for directory in (self.raw_dir, self.processed_dir):
            if not directory.exists():
                directory.mkdir(parents=True, exist_ok=True)
                logger.info(f"Directory created at {directory}")

    def raw_path_for(self, object_key: str) -> Path:
        return self.raw_dir / object_key

    @staticmethod
    def processed_key_for(object_key: str) -> str:
        return f"{PROCESSED_PREFIX}{object_key}"

    def processed_path_for(self, processed_key: str) -> Path:
        return self.processed_dir / processed_key

    def paths_for(self, object_key: str) -> StagingPaths:
        processed_key = self.processed_key_for(object_key)
        return StagingPaths(
            object_key=object_key,
            raw_path=self.raw_path_for(object_key),
            processed_key=processed_key,
            processed_path=self.processed_path_for(processed_key),
        )

    def delete(self, path: Path) -> Optional[CleanupWarning]:
        """
        Best-effort delete. A missing file is a no-op; a filesystem error is
        logged and returned as a CleanupWarning instead of being raised, so that
        cleanup can never replace the error that triggered it.
        """
        path = Path(path)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug(f"File not found at {path}. Skipping delete.")
            return None
        except OSError as e:
            warning = CleanupWarning(path, e)
            logger.warning(str(warning))
            return warning
        logger.info(f"File deleted at {path}")
        return None
