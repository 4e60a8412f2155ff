#!/usr/bin/env python3
"""Decode GLB files, migrate legacy technique extensions, and write them back.

Usage:
    python -m glb_pipeline.convert_glb <input> [-o <output>] [--format glb|gltf] [--strict]

Examples:
    # Convert a single file
    python -m glb_pipeline.convert_glb tileset/model.glb -o ./output

    # Convert all GLB files in a directory to .gltf + .bin
    python -m glb_pipeline.convert_glb ./models/ -o ./output --format gltf

    # Fail when any material value or technique parameter is left unresolved
    python -m glb_pipeline.convert_glb model.glb --strict
"""
import argparse
import logging
import os
import sys
from pathlib import Path

from .errors import GlbError
from .glb_parser import GlbParser
from .gltf_writer import write_glb, write_gltf

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(asctime)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Decode GLB files and migrate KHR_technique_webgl to KHR_techniques_webgl"
    )
    parser.add_argument(
        "input",
        help="Input GLB file or directory containing GLB files",
    )
    parser.add_argument(
        "-o", "--output",
        default="./output",
        help="Output directory (default: ./output)",
    )
    parser.add_argument(
        "--format",
        choices=["glb", "gltf"],
        default="glb",
        help="Output format (default: glb)",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with an error if any reference could not be migrated",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output",
    )

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    os.makedirs(args.output, exist_ok=True)

    input_path = Path(args.input)
    if input_path.is_file():
        files = [input_path]
    elif input_path.is_dir():
        files = sorted(input_path.glob("**/*.glb"))
        if not files:
            print(f"No GLB files found in {input_path}", file=sys.stderr)
            return 1
    else:
        print(f"Input not found: {args.input}", file=sys.stderr)
        return 1

    glb_parser = GlbParser()
    success_count = 0
    fail_count = 0

    for glb_file in files:
        output_file = Path(args.output) / f"{glb_file.stem}.{args.format}"

        try:
            document = glb_parser.parse_file(glb_file)
        except (GlbError, OSError) as e:
            print(f"Failed: {glb_file} - {e}", file=sys.stderr)
            fail_count += 1
            continue

        for diagnostic in document.diagnostics:
            logger.warning("%s: %s", glb_file, diagnostic)

        try:
            if args.format == "glb":
                write_glb(document, output_file)
            else:
                write_gltf(document, output_file)
        except (ValueError, OSError) as e:
            print(f"Failed: {glb_file} - {e}", file=sys.stderr)
            fail_count += 1
            continue

        if args.verbose:
            print(f"Converted: {glb_file} -> {output_file}")

        if args.strict and document.has_diagnostics:
            print(
                f"Unresolved: {glb_file} - {len(document.diagnostics)} reference(s)",
                file=sys.stderr,
            )
            fail_count += 1
        else:
            success_count += 1

    total = success_count + fail_count
    print(f"\nConverted {success_count}/{total} files to {args.output}")

    return 0 if fail_count == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
