"""Pydantic models for ollie."""

from __future__ import annotations

from enum import Enum
from pathlib import PurePosixPath

from pydantic import BaseModel, ConfigDict, Field

from .config import DEFAULT_HOST, DEFAULT_NAMESPACE, DEFAULT_TAG

__all__ = [
    "Descriptor",
    "Manifest",
    "ModelReference",
    "Ownership",
    "OwnershipStatus",
    "normalize_digest",
]

_DEFAULT_ALGORITHM = "sha256"


def normalize_digest(digest: str) -> str:
    """Return the on-disk blob filename for *digest* (``sha256:ab`` -> ``sha256-ab``)."""
    algorithm, sep, value = digest.partition(":")
    if not sep:
        return f"{_DEFAULT_ALGORITHM}-{digest}"
    return f"{algorithm}-{value}"


class ModelReference(BaseModel):
    """A fully-qualified model name: ``host/namespace/model:tag``."""

    model_config = ConfigDict(frozen=True)

    host: str = DEFAULT_HOST
    namespace: str = DEFAULT_NAMESPACE
    model: str = Field(min_length=1)
    tag: str = DEFAULT_TAG

    @property
    def manifest_path(self) -> PurePosixPath:
        """Manifest location relative to the model storage root."""
        return PurePosixPath(
            "manifests", self.host, self.namespace, self.model, self.tag
        )

    def __str__(self) -> str:
        return f"{self.host}/{self.namespace}/{self.model}:{self.tag}"


class Descriptor(BaseModel):
    """A content descriptor inside a manifest; only the digest is used."""

    digest: str | None = None


class Manifest(BaseModel):
    """
    An Ollama model manifest.

    Only ``config.digest`` and ``layers[].digest`` are read; every other
    field (media types, sizes, schema version) is ignored.
    """

    config: Descriptor | None = None
    layers: list[Descriptor] | None = None

    def blob_names(self) -> list[str]:
        """Normalised blob filenames: config first, then layers in order."""
        descriptors = [self.config] if self.config is not None else []
        descriptors.extend(self.layers or [])
        return [normalize_digest(d.digest) for d in descriptors if d.digest]


class Ownership(BaseModel):
    """Numeric owner applied to extracted files."""

    model_config = ConfigDict(frozen=True)

    uid: int
    gid: int


class OwnershipStatus(str, Enum):
    """Outcome of a single ownership change."""

    APPLIED = "applied"
    SKIPPED = "skipped"   # service account does not exist
    FAILED = "failed"
