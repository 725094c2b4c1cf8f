import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Mapping, Union

from pydantic import ValidationError

from common.config import WorkerConfig
from common.encoding import EncodingCapability, FfmpegEncoder
from common.errors import FetchError, JobValidationError, PipelineStepError, PublishError, TransformError
from common.job_schema import EncodingProfile, JobDescriptor, PipelineOutcome
from common.staging import LocalStagingArea, StagingPaths
from common.storage import ObjectStore, create_object_store

logger = logging.getLogger(__name__)


class KeyedLocks:
    """One asyncio.Lock per key, dropped once nobody holds or waits for it."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._locks

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


def parse_descriptor(payload: Union[Mapping[str, Any], JobDescriptor, None]) -> JobDescriptor:
    """Turns a decoded job payload into a JobDescriptor, or raises JobValidationError."""
    if isinstance(payload, JobDescriptor):
        return payload
    if not isinstance(payload, Mapping):
        raise JobValidationError("job payload must be an object")
    if "name" not in payload:
        raise JobValidationError("missing filename.")
    try:
        return JobDescriptor.model_validate(dict(payload))
    except ValidationError as e:
        reasons = "; ".join(err["msg"] for err in e.errors())
        raise JobValidationError(f"invalid filename: {reasons}") from e


class JobPipeline:
    """
    Runs one job: fetch the raw video, encode it, publish the result, reclaim disk.

    Steps run strictly in order. Whatever happens after validation, both local
    staging files are deleted before `run` returns, and a cleanup problem never
    replaces the error reported for the job.
    """

    def __init__(
        self,
        staging: LocalStagingArea,
        store: ObjectStore,
        encoder: EncodingCapability,
        raw_bucket: str,
        processed_bucket: str,
        profile: EncodingProfile = EncodingProfile(),
    ):
        self.staging = staging
        self.store = store
        self.encoder = encoder
        self.raw_bucket = raw_bucket
        self.processed_bucket = processed_bucket
        self.profile = profile
        # Same object key -> same local filenames, so those jobs take turns.
        self.locks = KeyedLocks()

    @classmethod
    def from_config(cls, config: WorkerConfig) -> "JobPipeline":
        return cls(
            staging=LocalStagingArea(config.raw_dir, config.processed_dir),
            store=create_object_store(config),
            encoder=FfmpegEncoder(config.ffmpeg_binary),
            raw_bucket=config.raw_bucket,
            processed_bucket=config.processed_bucket,
            profile=config.encoding_profile,
        )

    async def run(self, payload: Union[Mapping[str, Any], JobDescriptor, None]) -> PipelineOutcome:
        try:
            descriptor = parse_descriptor(payload)
        except JobValidationError as e:
            logger.warning(f"Rejected job: {e}")
            return PipelineOutcome.bad_request(str(e))

        object_key = descriptor.object_key
        paths = self.staging.paths_for(object_key)

        async with self.locks.hold(object_key):
            try:
                await self._fetch(paths)
                await self._transform(paths)
                await self._publish(paths)
            except PipelineStepError as e:
                logger.error(f"Job {object_key} failed at {e.step}: {e.__cause__ or e.reason}")
                return PipelineOutcome.processing_failure(object_key, str(e), failed_step=e.step)
            finally:
                await self._reclaim(paths)

        logger.info(f"Job {object_key} published as {self.processed_bucket}/{paths.processed_key}")
        return PipelineOutcome.success(object_key)

    async def _fetch(self, paths: StagingPaths) -> None:
        try:
            await self.store.download(self.raw_bucket, paths.object_key, paths.raw_path)
        except Exception as e:
            raise FetchError(paths.object_key, str(e)) from e

    async def _transform(self, paths: StagingPaths) -> None:
        try:
            await self.encoder.transform(paths.raw_path, paths.processed_path, self.profile)
        except Exception as e:
            raise TransformError(paths.object_key, str(e)) from e

    async def _publish(self, paths: StagingPaths) -> None:
        try:
            await self.store.upload(self.processed_bucket, paths.processed_path, paths.processed_key)
            await self.store.make_public(self.processed_bucket, paths.processed_key)
        except Exception as e:
            raise PublishError(paths.object_key, str(e)) from e

    async def _reclaim(self, paths: StagingPaths) -> None:
        # Disjoint paths: both deletes are attempted, side by side.
        targets = (paths.raw_path, paths.processed_path)
        results = await asyncio.gather(
            *(asyncio.to_thread(self.staging.delete, path) for path in targets),
            return_exceptions=True,
        )
        for path, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning(f"Cleanup of {path} raised unexpectedly: {result}")
