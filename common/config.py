import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict

from common.job_schema import EncodingProfile

BASE_DIR = Path(__file__).resolve().parents[1]

# Storage mode: gcp / azure / local
DEFAULT_STORAGE_BACKEND = "gcp"

DEFAULT_RAW_BUCKET = "bt-yt-raw-videos"
DEFAULT_PROCESSED_BUCKET = "bt-yt-processed-videos"

DEFAULT_RAW_DIR = Path("./raw-videos")
DEFAULT_PROCESSED_DIR = Path("./processed-videos")
DEFAULT_LOCAL_STORAGE_ROOT = BASE_DIR / "data" / "buckets"

DEFAULT_PORT = 3000


class WorkerConfig(BaseModel):
    """Everything one worker process needs, built once at startup and passed down."""

    model_config = ConfigDict(frozen=True)

    storage_backend: str = DEFAULT_STORAGE_BACKEND
    raw_bucket: str = DEFAULT_RAW_BUCKET
    processed_bucket: str = DEFAULT_PROCESSED_BUCKET

    raw_dir: Path = DEFAULT_RAW_DIR
    processed_dir: Path = DEFAULT_PROCESSED_DIR

    # Only used when storage_backend="local"
    local_storage_root: Path = DEFAULT_LOCAL_STORAGE_ROOT
    # Only used when storage_backend="azure"
    azure_connection_string: Optional[str] = None

    encoding_profile: EncodingProfile = EncodingProfile()
    ffmpeg_binary: str = "ffmpeg"

    port: int = DEFAULT_PORT
    log_level: str = "INFO"
    log_dir: Optional[Path] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "WorkerConfig":
        """Reads the worker configuration from environment variables."""
        env = os.environ if environ is None else environ
        log_dir = env.get("LOG_DIR")
        return cls(
            storage_backend=env.get("STORAGE_BACKEND", DEFAULT_STORAGE_BACKEND).lower(),
            raw_bucket=env.get("RAW_BUCKET", DEFAULT_RAW_BUCKET),
            processed_bucket=env.get("PROCESSED_BUCKET", DEFAULT_PROCESSED_BUCKET),
            raw_dir=Path(env.get("LOCAL_RAW_DIR", str(DEFAULT_RAW_DIR))),
            processed_dir=Path(env.get("LOCAL_PROCESSED_DIR", str(DEFAULT_PROCESSED_DIR))),
            local_storage_root=Path(env.get("LOCAL_STORAGE_ROOT", str(DEFAULT_LOCAL_STORAGE_ROOT))),
            azure_connection_string=env.get("AZURE_STORAGE_CONNECTION_STRING"),
            encoding_profile=EncodingProfile(scale=env.get("VIDEO_SCALE", EncodingProfile().scale)),
            ffmpeg_binary=env.get("FFMPEG_BINARY", "ffmpeg"),
            port=int(env.get("PORT", DEFAULT_PORT)),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            log_dir=Path(log_dir) if log_dir else None,
        )
