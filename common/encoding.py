import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List

from common.errors import EncodingError
from common.job_schema import EncodingProfile

logger = logging.getLogger(__name__)

STDERR_TAIL_CHARS = 2000


class EncodingCapability(ABC):
    """Transforms one local file into another. Completes once: returns on success, raises on failure."""

    @abstractmethod
    async def transform(self, source: Path, destination: Path, profile: EncodingProfile) -> None:
        pass


class FfmpegEncoder(EncodingCapability):
    """Runs the ffmpeg binary as a subprocess and waits for it to exit."""

    def __init__(self, binary: str = "ffmpeg"):
        self.binary = binary

    def build_command(self, source: Path, destination: Path, profile: EncodingProfile) -> List[str]:
        return [
            self.binary,
            "-y",
            "-hide_banner",
            "-loglevel", "error",
            "-i", str(source),
            "-vf", profile.video_filter,
            str(destination),
        ]

    async def run_command(self, cmd: List[str]) -> tuple[int, str, str]:
        """Run a command and return exit code, stdout, stderr"""
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await process.communicate()
        except BaseException:
            # Cancelled or failed while waiting: the child must not outlive the job.
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()
            raise
        return process.returncode, stdout.decode(errors="ignore"), stderr.decode(errors="ignore")

    async def transform(self, source: Path, destination: Path, profile: EncodingProfile) -> None:
        if not Path(source).is_file():
            raise EncodingError(f"Input file not found: {source}")

        cmd = self.build_command(source, destination, profile)
        logger.info(f"Encoding {source} -> {destination} ({profile.video_filter})")

        try:
            returncode, _, stderr = await self.run_command(cmd)
        except FileNotFoundError as e:
            raise EncodingError(f"Encoder binary not available: {self.binary}") from e

        if returncode != 0:
            raise EncodingError(f"ffmpeg exited with {returncode}: {stderr[-STDERR_TAIL_CHARS:].strip()}")

        if not Path(destination).exists():
            raise EncodingError(f"Output file not created: {destination}")

        logger.info("Video processed successfully!")
