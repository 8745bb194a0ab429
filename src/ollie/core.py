"""Core logic for ollie: resolve a model, save it to a tar stream, load it back."""

from __future__ import annotations

import grp
import logging
import lzma
import os
import pwd
import re
import tarfile
import zlib
from collections.abc import Iterator
from pathlib import Path, PurePosixPath
from typing import BinaryIO

from pydantic import ValidationError

from .config import SERVICE_ACCOUNT
from .errors import (
    ArchiveReadError,
    ArchiveWriteError,
    ExtractWriteError,
    InvalidReference,
    ManifestParseError,
    ManifestReadError,
    RefusedTerminalOutput,
    UnsupportedFormat,
)
from .models import Manifest, ModelReference, Ownership, OwnershipStatus

__all__ = [
    "ModelPackager",
    "ModelUnpackager",
    "apply_ownership",
    "detect_codec",
    "ensure_not_terminal",
    "get_file_paths",
    "lookup_service_account",
    "parse_manifest",
    "parse_model_name",
    "read_manifest",
]

logger = logging.getLogger(__name__)

_BLOBS_DIR = "blobs"
_CHUNK_SIZE = 1024 * 1024

# Tried in order, first match wins.
_NAME_PATTERNS = (
    # host/namespace/model:tag
    re.compile(
        r"^(?P<host>[^/]+)/(?P<namespace>[^/:]+)/(?P<model>[^/:]+):(?P<tag>[^/:]+)$"
    ),
    # namespace/model:tag
    re.compile(r"^(?P<namespace>[^/:]+)/(?P<model>[^/:]+):(?P<tag>[^/:]+)$"),
    # namespace/model
    re.compile(r"^(?P<namespace>[^/:]+)/(?P<model>[^/:]+)$"),
    # model:tag
    re.compile(r"^(?P<model>[^/:]+):(?P<tag>[^/:]+)$"),
    # model
    re.compile(r"^(?P<model>[^/:]+)$"),
)

# Archive suffix -> tarfile stream mode.
_CODECS: dict[str, str] = {
    ".tar": "r|",
    ".tar.gz": "r|gz",
    ".tar.bz": "r|bz2",
    ".tar.bz2": "r|bz2",
    ".tar.xz": "r|xz",
}

_READ_ERRORS = (tarfile.TarError, EOFError, OSError, lzma.LZMAError, zlib.error)


# ------------------------------------------------------------------
# Name resolution and manifests
# ------------------------------------------------------------------


def parse_model_name(name: str) -> ModelReference:
    """
    Parse an Ollama model name into a fully-qualified reference.

    Accepted forms, most specific first::

        host/namespace/model:tag
        namespace/model:tag
        namespace/model
        model:tag
        model

    Omitted parts default to ``registry.ollama.ai``, ``library`` and
    ``latest``.
    """
    for pattern in _NAME_PATTERNS:
        match = pattern.match(name)
        if match:
            return ModelReference(**match.groupdict())
    raise InvalidReference(f"invalid model name format: {name!r}")


def read_manifest(path: str | os.PathLike[str]) -> Manifest:
    """Load and validate the manifest JSON at *path*."""
    try:
        raw = Path(path).read_bytes()
    except OSError as exc:
        raise ManifestReadError(f"failed to read manifest {path}: {exc}") from exc

    try:
        return Manifest.model_validate_json(raw)
    except ValidationError as exc:
        raise ManifestParseError(f"failed to parse manifest {path}: {exc}") from exc


def parse_manifest(path: str | os.PathLike[str]) -> list[str]:
    """Return the blob filenames named by the manifest at *path*."""
    return read_manifest(path).blob_names()


def get_file_paths(
    reference: ModelReference, models_path: str | os.PathLike[str]
) -> list[PurePosixPath]:
    """
    Relative paths of every file that makes up *reference*.

    The manifest comes first, followed by the config blob and the layer
    blobs in manifest order. The manifest must exist under *models_path*.
    """
    manifest_path = reference.manifest_path
    blobs = parse_manifest(Path(models_path).joinpath(*manifest_path.parts))
    return [manifest_path] + [PurePosixPath(_BLOBS_DIR, blob) for blob in blobs]


# ------------------------------------------------------------------
# Ownership
# ------------------------------------------------------------------


def lookup_service_account(name: str = SERVICE_ACCOUNT) -> Ownership | None:
    """
    Return the uid/gid of the user and group called *name*.

    ``None`` means either one is missing and ownership should be left alone.
    """
    try:
        user = pwd.getpwnam(name)
        group = grp.getgrnam(name)
    except KeyError:
        logger.debug("No %r user/group on this host, keeping file ownership", name)
        return None
    return Ownership(uid=user.pw_uid, gid=group.gr_gid)


def apply_ownership(
    path: str | os.PathLike[str], owner: Ownership | None
) -> OwnershipStatus:
    """chown *path* to *owner*; a missing owner is a skip, not an error."""
    if owner is None:
        return OwnershipStatus.SKIPPED
    try:
        os.chown(path, owner.uid, owner.gid)
    except OSError as exc:
        logger.error("chown %s to %d:%d failed: %s", path, owner.uid, owner.gid, exc)
        return OwnershipStatus.FAILED
    return OwnershipStatus.APPLIED


# ------------------------------------------------------------------
# Save
# ------------------------------------------------------------------


def ensure_not_terminal(stream: BinaryIO, name: str = "MODEL") -> None:
    """Raise ``RefusedTerminalOutput`` when *stream* is an interactive terminal."""
    isatty = getattr(stream, "isatty", None)
    if isatty is not None and isatty():
        raise RefusedTerminalOutput(
            "refusing to write binary tarball to terminal\n"
            f"Please redirect output to a file: ollie save {name} > output.tar"
        )


class ModelPackager:
    """
    Streams a locally stored model into an uncompressed tar archive.

    Archive layout (paths relative to the model storage root)::

        manifests/<host>/<namespace>/<model>/<tag>
        blobs/sha256-<hex>
        ...
    """

    def __init__(self, models_path: str | os.PathLike[str]) -> None:
        self.models_path = Path(models_path)

    def save(self, name: str, stream: BinaryIO) -> list[PurePosixPath]:
        """
        Write the archive for model *name* to *stream*.

        Returns the relative paths that were archived.
        """
        ensure_not_terminal(stream, name)
        reference = parse_model_name(name)
        logger.debug("Resolved %r to %s", name, reference)

        paths = get_file_paths(reference, self.models_path)
        logger.debug("Archiving %d files for %s", len(paths), reference)
        self.write_archive(paths, stream)
        return paths

    def write_archive(
        self, relative_paths: list[PurePosixPath], stream: BinaryIO
    ) -> None:
        """Stream each file under the storage root into a tar on *stream*."""
        try:
            with tarfile.open(fileobj=stream, mode="w|", dereference=True) as tar:
                for rel_path in relative_paths:
                    self._add_file(tar, rel_path)
            stream.flush()
        except OSError as exc:
            raise ArchiveWriteError(f"failed to write archive: {exc}") from exc

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _add_file(self, tar: tarfile.TarFile, rel_path: PurePosixPath) -> None:
        abs_path = self.models_path.joinpath(*rel_path.parts)
        try:
            info = tar.gettarinfo(name=str(abs_path), arcname=str(rel_path))
        except OSError as exc:
            raise ArchiveWriteError(f"failed to stat {abs_path}: {exc}") from exc

        try:
            fh = open(abs_path, "rb")
        except OSError as exc:
            raise ArchiveWriteError(f"failed to open {abs_path}: {exc}") from exc

        with fh:
            try:
                tar.addfile(info, fh)
            except OSError as exc:
                raise ArchiveWriteError(
                    f"failed to write {rel_path} to tarball: {exc}"
                ) from exc
        logger.debug("Added %s (%d bytes)", rel_path, info.size)


# ------------------------------------------------------------------
# Load
# ------------------------------------------------------------------


def detect_codec(archive_path: str | os.PathLike[str]) -> str:
    """Return the tarfile stream mode for *archive_path* based on its suffix."""
    name = os.fspath(archive_path)
    for suffix, mode in _CODECS.items():
        if name.endswith(suffix):
            return mode
    raise UnsupportedFormat(f"unsupported file extension for {name}")


class ModelUnpackager:
    """
    Extracts a model archive into the model storage root.

    Entries are written in archive order. Files and the directories created
    for them are chowned to the service account when it exists.
    """

    def __init__(self, account: str = SERVICE_ACCOUNT) -> None:
        self.account = account

    def load(
        self,
        archive_path: str | os.PathLike[str],
        dest_path: str | os.PathLike[str],
    ) -> list[str]:
        """
        Extract *archive_path* into *dest_path*.

        Returns the names of the extracted entries. A failure part way
        through leaves the entries written so far in place.
        """
        mode = detect_codec(archive_path)
        owner = lookup_service_account(self.account)
        dest = Path(dest_path)
        logger.debug("Extracting %s (mode %r) into %s", archive_path, mode, dest)

        try:
            fh = open(archive_path, "rb")
        except OSError as exc:
            raise ArchiveReadError(f"failed to open file {archive_path}: {exc}") from exc

        extracted: list[str] = []
        with fh:
            try:
                tar = tarfile.open(fileobj=fh, mode=mode)
            except _READ_ERRORS as exc:
                raise ArchiveReadError(
                    f"failed to read archive {archive_path}: {exc}"
                ) from exc
            with tar:
                for member in self._members(tar):
                    if self._extract_member(tar, member, dest, owner):
                        extracted.append(member.name)
        return extracted

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _members(tar: tarfile.TarFile) -> Iterator[tarfile.TarInfo]:
        members = iter(tar)
        while True:
            try:
                member = next(members)
            except StopIteration:
                return
            except _READ_ERRORS as exc:
                raise ArchiveReadError(f"failed to read tar header: {exc}") from exc
            yield member

    def _extract_member(
        self,
        tar: tarfile.TarFile,
        member: tarfile.TarInfo,
        dest: Path,
        owner: Ownership | None,
    ) -> bool:
        target = _target_path(dest, member.name)

        if member.isdir():
            created = _make_dirs(target)
            self._chown(owner, *created, target)
            logger.debug("Created directory %s", target)
            return True

        if not member.isreg():
            logger.warning(
                "Skipping %s: unsupported entry type %r", member.name, member.type
            )
            return False

        created = _make_dirs(target.parent)
        self._chown(owner, *created, target.parent)
        self._write_file(tar, member, target)
        self._chown(owner, target)
        logger.debug("Extracted %s (%d bytes)", target, member.size)
        return True

    @staticmethod
    def _write_file(
        tar: tarfile.TarFile, member: tarfile.TarInfo, target: Path
    ) -> None:
        try:
            source = tar.extractfile(member)
        except _READ_ERRORS as exc:
            raise ArchiveReadError(f"failed to read {member.name}: {exc}") from exc
        if source is None:
            raise ArchiveReadError(f"no content for {member.name}")

        flags = os.O_CREAT | os.O_WRONLY | os.O_TRUNC
        try:
            fd = os.open(target, flags, member.mode & 0o7777)
            with os.fdopen(fd, "wb") as out:
                while True:
                    try:
                        chunk = source.read(_CHUNK_SIZE)
                    except _READ_ERRORS as exc:
                        raise ArchiveReadError(
                            f"failed to read {member.name}: {exc}"
                        ) from exc
                    if not chunk:
                        break
                    out.write(chunk)
        except OSError as exc:
            raise ExtractWriteError(f"failed to write file {target}: {exc}") from exc

    @staticmethod
    def _chown(owner: Ownership | None, *paths: Path) -> None:
        for path in dict.fromkeys(paths):
            if apply_ownership(path, owner) is OwnershipStatus.FAILED:
                raise ExtractWriteError(f"failed to set ownership for {path}")


def _target_path(dest: Path, name: str) -> Path:
    """Join an entry name onto *dest*, refusing names that escape it."""
    relative = PurePosixPath(name)
    if relative.is_absolute() or ".." in relative.parts:
        raise ArchiveReadError(f"refusing to extract {name!r} outside {dest}")
    return dest.joinpath(*relative.parts)


def _make_dirs(path: Path) -> list[Path]:
    """mkdir -p *path*; return the directories that had to be created."""
    missing: list[Path] = []
    current = path
    while not current.exists() and current != current.parent:
        missing.append(current)
        current = current.parent
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ExtractWriteError(f"failed to create directory {path}: {exc}") from exc
    return list(reversed(missing))
