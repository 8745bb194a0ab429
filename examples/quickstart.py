"""
ollie quickstart: save a model to a tarball and load it into a fresh store.

Run directly:

    python examples/quickstart.py

The demo builds a fake Ollama model store in a temporary directory and
cleans up after itself.
"""

from __future__ import annotations

import hashlib
import io
import json
import pathlib
import tempfile


# ---------------------------------------------------------------------------
# Demo 1: Resolve model names
# ---------------------------------------------------------------------------

def demo_parse_names() -> None:
    """Show how short model names expand to fully-qualified references."""
    print("\n=== Demo 1: Resolve model names ===")

    from ollie.core import parse_model_name

    for name in ["llama2", "llama2:13b", "jmorgan/tinyllama", "h.example.com/ns/model:q4"]:
        ref = parse_model_name(name)
        print(f"  {name:<28} -> {ref}")


def _install_fake_model(root: pathlib.Path) -> None:
    blobs = [b'{"model_format": "gguf"}', b"GGUF" + b"\x00" * 4096]
    digests = ["sha256:" + hashlib.sha256(b).hexdigest() for b in blobs]
    (root / "blobs").mkdir(parents=True)
    for digest, content in zip(digests, blobs):
        (root / "blobs" / digest.replace(":", "-")).write_bytes(content)

    manifest = root / "manifests/registry.ollama.ai/library/tiny/latest"
    manifest.parent.mkdir(parents=True)
    manifest.write_text(
        json.dumps(
            {
                "schemaVersion": 2,
                "config": {"digest": digests[0], "size": len(blobs[0])},
                "layers": [{"digest": digests[1], "size": len(blobs[1])}],
            }
        ),
        encoding="utf-8",
    )


# ---------------------------------------------------------------------------
# Demo 2: Save and load
# ---------------------------------------------------------------------------

def demo_save_and_load() -> None:
    """Save a model from one store and load it into another."""
    print("\n=== Demo 2: Save and load ===")

    from ollie.core import ModelPackager, ModelUnpackager

    with tempfile.TemporaryDirectory() as tmp:
        tmp_path = pathlib.Path(tmp)
        source = tmp_path / "source-models"
        _install_fake_model(source)

        buf = io.BytesIO()
        paths = ModelPackager(source).save("tiny", buf)
        print(f"  Archived {len(paths)} files ({len(buf.getvalue()):,} bytes):")
        for path in paths:
            print(f"    {path}")

        archive = tmp_path / "tiny.tar"
        archive.write_bytes(buf.getvalue())

        dest = tmp_path / "dest-models"
        extracted = ModelUnpackager().load(archive, dest)
        print(f"\n  Extracted {len(extracted)} entries into {dest}")
        same = all(
            (dest / str(p)).read_bytes() == (source / str(p)).read_bytes()
            for p in paths
        )
        print(f"  Files identical after round trip: {same}")


if __name__ == "__main__":
    demo_parse_names()
    demo_save_and_load()
