"""Shared test fixtures for ollie."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

import ollie.core
from ollie.core import ModelPackager, ModelUnpackager


CONFIG_DIGEST = "sha256:" + "a" * 64
LAYER_DIGESTS = ["sha256:" + "b" * 64, "sha256:" + "c" * 64]
MANIFEST_REL = "manifests/registry.ollama.ai/library/llama2/latest"


# ---------------------------------------------------------------------------
# Ownership: never chown during tests unless a test opts in
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def no_service_account(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(ollie.core, "lookup_service_account", lambda name: None)


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    package_logger = logging.getLogger("ollie")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True


# ---------------------------------------------------------------------------
# Model storage root with one installed model
# ---------------------------------------------------------------------------


def write_model(root: Path, manifest_rel: str = MANIFEST_REL) -> dict[str, bytes]:
    """Install a fake model under *root*; return {relative path: content}."""
    blobs = {
        CONFIG_DIGEST: b'{"model_format": "gguf", "model_family": "llama"}',
        LAYER_DIGESTS[0]: b"\x00GGUF" + b"\x01\x02\x03\x04" * 1024,
        LAYER_DIGESTS[1]: b"{{ .Prompt }}",
    }
    manifest = {
        "schemaVersion": 2,
        "mediaType": "application/vnd.docker.distribution.manifest.v2+json",
        "config": {"digest": CONFIG_DIGEST, "size": len(blobs[CONFIG_DIGEST])},
        "layers": [
            {"digest": d, "size": len(blobs[d])} for d in LAYER_DIGESTS
        ],
    }
    manifest_bytes = json.dumps(manifest).encode("utf-8")
    manifest_path = root / manifest_rel
    manifest_path.parent.mkdir(parents=True, exist_ok=True)
    manifest_path.write_bytes(manifest_bytes)

    files = {manifest_rel: manifest_bytes}
    blobs_dir = root / "blobs"
    blobs_dir.mkdir(parents=True, exist_ok=True)
    for digest, content in blobs.items():
        name = "blobs/" + digest.replace(":", "-")
        (root / name).write_bytes(content)
        files[name] = content
    return files


@pytest.fixture()
def models_root(tmp_path: Path) -> Path:
    root = tmp_path / "models"
    root.mkdir()
    return root


@pytest.fixture()
def installed_model(models_root: Path) -> dict[str, bytes]:
    return write_model(models_root)


# ---------------------------------------------------------------------------
# Core objects
# ---------------------------------------------------------------------------


@pytest.fixture()
def packager(models_root: Path) -> ModelPackager:
    return ModelPackager(models_root)


@pytest.fixture()
def unpacker() -> ModelUnpackager:
    return ModelUnpackager()


@pytest.fixture()
def make_model():
    return write_model
