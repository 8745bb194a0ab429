"""CLI entry point for ollie."""

from __future__ import annotations

import sys

import click

from .config import resolve_models_path
from .core import ModelPackager, ModelUnpackager, ensure_not_terminal
from .errors import OllieError
from .logger import setup_logging


@click.group()
@click.version_option(package_name="ollie")
@click.option(
    "--log-level",
    default="WARNING",
    show_default=True,
    envvar="OLLIE_LOG_LEVEL",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level; log output goes to stderr.",
)
def main(log_level: str) -> None:
    """Ollie: a CLI helper toolset for Ollama models."""
    setup_logging(log_level)


@main.command("save")
@click.argument("model_name")
def save_command(model_name: str) -> None:
    """Save an Ollama model to a tarball.

    The manifest and blob files of MODEL_NAME are written as a tar stream
    to stdout, so redirect it to a file or pipe it elsewhere.

    \b
    Examples:
      ollie save llama2 > llama2.tar
      ollie save library/llama2:latest > llama2.tar
      ollie save registry.ollama.ai/library/llama2:latest > llama2.tar
    """
    stream = click.get_binary_stream("stdout")
    try:
        ensure_not_terminal(stream, model_name)
        packager = ModelPackager(resolve_models_path())
        packager.save(model_name, stream)
    except OllieError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


@main.command("load")
@click.argument(
    "archive_path",
    metavar="TARBALL_FILE",
    type=click.Path(exists=True, dir_okay=False),
)
def load_command(archive_path: str) -> None:
    """Load an Ollama model from a tarball.

    Extracts TARBALL_FILE into the Ollama models directory ($OLLAMA_MODELS,
    or ~/.ollama/models if not set). Supports .tar, .tar.gz, .tar.bz,
    .tar.bz2 and .tar.xz.

    \b
    Examples:
      ollie load llama2.tar
      ollie load llama2.tar.gz
      ollie load llama2.tar.xz
    """
    try:
        models_path = resolve_models_path()
        ModelUnpackager().load(archive_path, models_path)
    except OllieError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    click.echo(
        f"Successfully loaded model from {archive_path} to {models_path}", err=True
    )


if __name__ == "__main__":
    main()
