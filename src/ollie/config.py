"""Model storage location and fixed names used by ollie."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from .errors import ModelsPathError

__all__ = [
    "DEFAULT_HOST",
    "DEFAULT_NAMESPACE",
    "DEFAULT_TAG",
    "MODELS_ENV_VAR",
    "SERVICE_ACCOUNT",
    "SYSTEM_MODELS_PATH",
    "resolve_models_path",
]

DEFAULT_HOST = "registry.ollama.ai"
DEFAULT_NAMESPACE = "library"
DEFAULT_TAG = "latest"

MODELS_ENV_VAR = "OLLAMA_MODELS"
SYSTEM_MODELS_PATH = Path("/usr/share/ollama/.ollama/models")

# User and group that own a system-wide Ollama install.
SERVICE_ACCOUNT = "ollama"


def resolve_models_path(environ: Mapping[str, str] | None = None) -> Path:
    """
    Return the Ollama model storage root.

    ``$OLLAMA_MODELS`` wins when set. Otherwise the system-wide install
    location is used if it exists, falling back to ``~/.ollama/models``.
    """
    env = os.environ if environ is None else environ
    configured = env.get(MODELS_ENV_VAR)
    if configured:
        return Path(configured)

    if SYSTEM_MODELS_PATH.exists():
        return SYSTEM_MODELS_PATH

    try:
        home = Path.home()
    except RuntimeError as exc:
        raise ModelsPathError(f"failed to get home directory: {exc}") from exc
    return home / ".ollama" / "models"
