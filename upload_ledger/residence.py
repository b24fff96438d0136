import abc
import asyncio
import logging
from typing import Dict, List, Optional

from minio import Minio
from minio.error import S3Error

from . import config
from .errors import ResidenceError
from .schemas import DEFAULT_NAMESPACE

logger = logging.getLogger(__name__)


class Residence(abc.ABC):
    """A storage backend/location that physically holds upload objects."""

    name: str
    location: Optional[str] = None

    @abc.abstractmethod
    async def destroy(self, upload) -> None:
        """Delete the upload's object. Deleting an absent object succeeds."""


class MinioResidence(Residence):
    def __init__(self, client: Minio, name: str, location: Optional[str] = None):
        self.client = client
        self.name = name
        self.location = location

    def _remove(self, bucket: str, key: str) -> None:
        try:
            self.client.remove_object(bucket, key)
        except S3Error as e:
            if e.code == "NoSuchKey":
                logger.debug("%s/%s already absent", bucket, key)
                return
            raise ResidenceError(f"remove_object {bucket}/{key} failed: {e.code}") from e

    async def destroy(self, upload) -> None:
        # TODO: abort the pending multipart session for unfinished resumable uploads
        await asyncio.to_thread(self._remove, upload.bucket_name, upload.object_key)
        logger.info(
            "removed %s/%s from %s", upload.bucket_name, upload.object_key, self.name
        )

    def __repr__(self):
        return f"MinioResidence(name={self.name!r}, location={self.location!r})"


class ResidenceRegistry:
    """Residences grouped by namespace and provider name.

    A lookup with a location needs an exact location match; without one the
    first residence registered for the provider wins.
    """

    def __init__(self):
        self._residences: Dict[str, Dict[str, List[Residence]]] = {}

    def register(self, residence: Residence, namespace: Optional[str] = None) -> None:
        namespace = namespace or DEFAULT_NAMESPACE
        providers = self._residences.setdefault(namespace, {})
        providers.setdefault(residence.name, []).append(residence)

    def get_residence(
        self,
        name: str,
        namespace: Optional[str] = None,
        location: Optional[str] = None,
    ) -> Optional[Residence]:
        candidates = self._residences.get(namespace or DEFAULT_NAMESPACE, {}).get(name, [])
        if location:
            for residence in candidates:
                if residence.location == location:
                    return residence
            return None
        return candidates[0] if candidates else None


def make_minio_client() -> Minio:
    return Minio(
        config.MINIO_ENDPOINT,
        access_key=config.MINIO_ACCESS_KEY,
        secret_key=config.MINIO_SECRET_KEY,
        secure=config.MINIO_SECURE,
    )


def registry_from_env(client: Minio) -> ResidenceRegistry:
    registry = ResidenceRegistry()
    registry.register(
        MinioResidence(client, config.MINIO_PROVIDER_NAME, config.MINIO_LOCATION),
        namespace=config.MINIO_PROVIDER_NAMESPACE,
    )
    return registry
