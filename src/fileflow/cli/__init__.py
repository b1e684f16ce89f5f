#!/usr/bin/env python3
"""Fileflow CLI - Command line interface for file pipelines.

Usage:
    fileflow run PIPELINE.yaml [--no-progress] [-v | -q]
    fileflow inspect PATTERN_OR_FOLDER [--threshold SIZE]
    fileflow config --generate [-o OUT]

Examples:
    # Run a pipeline description
    fileflow run pipeline.yaml

    # See how files would be transported
    fileflow inspect "logs/**/*.gz" --threshold 1MiB

    # Write a sample pipeline file
    fileflow config --generate -o pipeline.yaml
"""

import argparse
import glob
import json
import logging
import os
import sys
from pathlib import Path

from tqdm import tqdm

from fileflow import __version__
from fileflow.config import DEFAULT_THRESHOLD_BYTES
from fileflow.errors import FileflowError, format_error
from fileflow.loader import load_pipeline, stage_types
from fileflow.stages.sources import expand_glob, walk_folder
from fileflow.streaming.reader import choose_transport
from fileflow.utils import format_bytes, parse_size

logger = logging.getLogger(__name__)

SAMPLE_PIPELINE = """# Fileflow pipeline
# Channels connect exactly one producing stage to one consuming stage.
channels:
  - archives
  - entries
  - rewritten

stages:
  # Emit every zip file; files above the threshold are streamed.
  - type: GlobRead
    name: source
    output: archives
    glob_pattern: "input/**/*.zip"
    threshold_bytes: 5MiB
    chunk_size: 1KiB
    memory_ceiling_bytes: 3GiB
    pause_ms: 5000

  # One buffer per archive entry; corrupt archives are logged and skipped.
  - type: UnzipFile
    name: unzip
    input: archives
    output: entries

  # Interpolate ${NAME} environment variables.
  - type: Envsub
    name: envsub
    input: entries
    output: rewritten

  - type: WriteFile
    name: sink
    input: rewritten
    path: output/combined.txt
    overwrite: true
"""


def print_error(message: str):
    """Print an error message."""
    print(f"✗ {message}", file=sys.stderr)


def print_success(message: str):
    """Print a success message."""
    print(f"✓ {message}")


def print_info(message: str):
    """Print an info message."""
    print(f"ℹ {message}")


def configure_logging(verbose: int = 0, quiet: bool = False):
    """Set up root logging for command line use."""
    if quiet:
        level = logging.ERROR
    elif verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    logging.getLogger("fileflow").setLevel(level)


def cmd_run(args) -> int:
    """Handle the run command."""
    pipeline_path = Path(args.pipeline)

    if not pipeline_path.exists():
        print_error(f"Pipeline file not found: {pipeline_path}")
        print_info("Hint: Run `fileflow config --generate` to create one.")
        return 1

    progress_bar = None
    if not args.no_progress:
        progress_bar = tqdm(desc="Writing", unit="B", unit_scale=True, unit_divisor=1024)

    try:
        pipeline = load_pipeline(
            pipeline_path,
            progress=progress_bar.update if progress_bar is not None else None,
        )
        stats = pipeline.run()
    except FileflowError as e:
        print_error("Pipeline failed")
        print(format_error(e), file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print_error("Interrupted")
        return 130
    finally:
        if progress_bar is not None:
            progress_bar.close()

    if args.format == "json":
        print(json.dumps(stats.to_dict(), indent=2))
        return 0

    print()
    print_success(f"Pipeline complete in {stats.elapsed_seconds:.2f}s")
    print()
    print(f"  {'Stage':<24} {'In':>8} {'Out':>8} {'Dropped':>8} {'Errors':>8}")
    print(f"  {'-'*24} {'-'*8} {'-'*8} {'-'*8} {'-'*8}")
    for name, stage_stats in stats.stages.items():
        print(
            f"  {name:<24} {stage_stats['items_in']:>8} {stage_stats['items_out']:>8} "
            f"{stage_stats['items_dropped']:>8} {stage_stats['errors']:>8}"
        )

    if stats.item_errors:
        print()
        print_info(f"{stats.item_errors} item error(s) were logged and skipped")
    return 0


def cmd_inspect(args) -> int:
    """Handle the inspect command."""
    try:
        threshold = parse_size(args.threshold)
    except ValueError as e:
        print_error(str(e))
        return 1

    try:
        if os.path.isdir(args.source):
            descriptors = walk_folder(args.source)
        else:
            descriptors = expand_glob(args.source)
    except (FileflowError, OSError) as e:
        print(format_error(e), file=sys.stderr)
        return 1

    if not descriptors:
        print_info(f"No files match {args.source}")
        return 0

    if args.format == "json":
        rows = [
            {
                "path": d.path,
                "size_bytes": d.size_bytes,
                "transport": choose_transport(d.size_bytes, threshold).value,
            }
            for d in descriptors
        ]
        print(json.dumps(rows, indent=2))
        return 0

    print(f"\nFiles for {args.source} (threshold {format_bytes(threshold)}):\n")
    print(f"  {'Path':<50} {'Size':>12} {'Transport'}")
    print(f"  {'-'*50} {'-'*12} {'-'*9}")
    total = 0
    for d in descriptors:
        transport = choose_transport(d.size_bytes, threshold).value
        print(f"  {d.path:<50} {format_bytes(d.size_bytes):>12} {transport}")
        total += d.size_bytes

    print(f"\n  Total: {len(descriptors)} file(s), {format_bytes(total)}")
    return 0


def cmd_config(args) -> int:
    """Handle the config command."""
    if args.list_stages:
        for type_name in stage_types():
            print(type_name)
        return 0

    if args.generate:
        output_path = Path(args.output)

        if output_path.exists() and not args.force:
            print_error(f"File already exists: {output_path}")
            print_info("Use --force to overwrite it")
            return 1

        with open(output_path, "w", encoding="utf-8") as f:
            f.write(SAMPLE_PIPELINE)

        print_success(f"Generated pipeline file: {output_path}")
        print_info("Edit this file and run it with: fileflow run " + str(output_path))
        return 0

    print_info("Use --generate to create a sample pipeline file")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="fileflow",
        description="""
Fileflow - Memory-bounded file processing pipelines.

Quick Start:
    fileflow config --generate          # Write a sample pipeline.yaml
    fileflow run pipeline.yaml          # Run it
    fileflow inspect "data/*.gz"        # Show sizes and transports
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase log output (-v info, -vv debug)"
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Only log errors"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Run command
    run_parser = subparsers.add_parser(
        "run",
        help="Run a pipeline description"
    )
    run_parser.add_argument("pipeline", help="Pipeline YAML file")
    run_parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable the bytes-written progress bar"
    )
    run_parser.add_argument(
        "--format",
        choices=["table", "json"],
        default="table",
        help="Summary output format"
    )

    # Inspect command
    inspect_parser = subparsers.add_parser(
        "inspect",
        help="List files and how each would be transported"
    )
    inspect_parser.add_argument("source", help="Glob pattern or folder")
    inspect_parser.add_argument(
        "-t", "--threshold",
        default=str(DEFAULT_THRESHOLD_BYTES),
        help="Largest size emitted as one buffer (default: 5MiB)"
    )
    inspect_parser.add_argument(
        "--format",
        choices=["table", "json"],
        default="table",
        help="Output format"
    )

    # Config command
    config_parser = subparsers.add_parser(
        "config",
        help="Pipeline file utilities"
    )
    config_parser.add_argument(
        "--generate",
        action="store_true",
        help="Generate a sample pipeline file"
    )
    config_parser.add_argument(
        "-o", "--output",
        default="pipeline.yaml",
        help="Output file name (default: pipeline.yaml)"
    )
    config_parser.add_argument(
        "-f", "--force",
        action="store_true",
        help="Overwrite an existing file"
    )
    config_parser.add_argument(
        "--list-stages",
        action="store_true",
        help="List the available stage types"
    )

    return parser


def main(argv=None):
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose, args.quiet)

    if args.command == "run":
        return cmd_run(args)

    elif args.command == "inspect":
        return cmd_inspect(args)

    elif args.command == "config":
        return cmd_config(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
