#!/usr/bin/env python3
"""
Fileflow Quick Start Example

This example demonstrates the most common pipelines fileflow runs.
Everything happens in a temporary folder; run this script to see
fileflow in action!
"""

import gzip
import io
import logging
import tempfile
import zipfile
from pathlib import Path

import yaml

from fileflow import (
    Channel,
    GlobRead,
    GunzipFile,
    Substitute,
    UnzipFile,
    WriteFile,
    build_pipeline,
    run_pipeline,
)


def example_concatenate_gzip(workdir: Path):
    """Example 1: Decompress many gzip files into one."""
    print("\n" + "="*60)
    print("Example 1: Concatenate gzip files")
    print("="*60)

    logs = workdir / "logs"
    logs.mkdir()
    for day in range(1, 4):
        (logs / f"day{day}.log.gz").write_bytes(
            gzip.compress(f"day {day}: all good\n".encode())
        )

    raw, plain = Channel("raw"), Channel("plain")
    stats = run_pipeline([
        GlobRead(glob_pattern=str(logs / "*.gz"), outputs=[raw]),
        GunzipFile(inputs=[raw], outputs=[plain]),
        WriteFile(path=str(workdir / "all.log"), inputs=[plain]),
    ])

    print(f"\nResult ({stats.elapsed_seconds:.3f}s):")
    print((workdir / "all.log").read_text())


def example_unzip_and_rewrite(workdir: Path):
    """Example 2: Extract an archive and rewrite its text."""
    print("\n" + "="*60)
    print("Example 2: Unzip, substitute, write")
    print("="*60)

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("greeting.txt", "Hello {NAME}!\n")
        archive.writestr("farewell.txt", "Goodbye {NAME}!\n")
    (workdir / "bundle.zip").write_bytes(buffer.getvalue())
    (workdir / "broken.zip").write_bytes(b"this is not an archive")

    files, entries, text = Channel("files"), Channel("entries"), Channel("text")
    stats = run_pipeline([
        GlobRead(glob_pattern=str(workdir / "*.zip"), outputs=[files]),
        UnzipFile(inputs=[files], outputs=[entries], name="unzip"),
        Substitute(source="{NAME}", replace="world", inputs=[entries], outputs=[text]),
        WriteFile(path=str(workdir / "messages.txt"), inputs=[text]),
    ])

    print("\nResult:")
    print((workdir / "messages.txt").read_text())
    print(f"Skipped {stats.item_errors} corrupt archive(s)")


def example_from_yaml(workdir: Path):
    """Example 3: Describe a pipeline in YAML."""
    print("\n" + "="*60)
    print("Example 3: YAML pipeline with environment variables")
    print("="*60)

    templates = workdir / "templates"
    templates.mkdir()
    (templates / "app.conf").write_text("user=${USER}\nhome=${HOME}\n")

    description = yaml.safe_load(f"""
channels: [files, rendered]
stages:
  - type: ReadFolder
    output: files
    folder: {templates}
  - type: Envsub
    input: files
    output: rendered
  - type: WriteFile
    input: rendered
    path: {workdir / "rendered.conf"}
    overwrite: true
""")

    build_pipeline(description).run()

    print("\nResult:")
    print((workdir / "rendered.conf").read_text())


def main():
    """Run all examples."""
    logging.basicConfig(level=logging.WARNING)

    print("\n" + "="*60)
    print("FILEFLOW QUICK START EXAMPLES")
    print("="*60)

    with tempfile.TemporaryDirectory() as tmp:
        workdir = Path(tmp)
        example_concatenate_gzip(workdir)
        example_unzip_and_rewrite(workdir)
        example_from_yaml(workdir)

    print("\n" + "="*60)
    print("All examples completed!")
    print("="*60)


if __name__ == "__main__":
    main()
