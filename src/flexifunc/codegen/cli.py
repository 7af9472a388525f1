#!/usr/bin/env python3
"""
Command line interface for flexifunc twin generation.

Usage:
    python -m flexifunc.codegen -m <module> [-m <module> ...]
    # Or use the CLI entrypoint:
    flexifunc -m <module> [-m <module> ...]

The CLI imports the specified modules, which causes them to register functions
with their Module objects, then generates each registered function together with
its async twin into the Module's target module.

Examples:
    # Generate twins from a single module
    flexifunc -m my.package._io

    # Generate twins from multiple modules into an output directory
    flexifunc -m package._a -m package._b -o generated/
"""

import argparse
import importlib
import logging
import subprocess
import sys
import tempfile
from pathlib import Path

from ..exceptions import MalformedRequest
from ..module import Module
from .compile import compile_modules
from .writer import write_modules


def run_ruff_on_file(file_path: Path) -> None:
    """
    Run ruff check --fix and ruff format on a single file.

    Args:
        file_path: Path to the file to format
    """
    subprocess.run(["ruff", "check", "--fix", str(file_path)], capture_output=True, text=True)
    subprocess.run(["ruff", "format", str(file_path)], capture_output=True, text=True)


def import_module(module_name: str):
    """
    Import a module to trigger registration of twinned functions.

    Args:
        module_name: Qualified module name (e.g., 'my_lib._io')
    """
    try:
        return importlib.import_module(module_name)
    except ImportError as e:
        raise ImportError(f"Could not import module '{module_name}': {e}")


def find_module_objects(module_names: list[str]) -> list[Module]:
    module_objects = []
    for module_name in module_names:
        print(f"  Importing module: {module_name}", file=sys.stderr)
        imported_module = import_module(module_name)
        for attr_name in dir(imported_module):
            attr = getattr(imported_module, attr_name)
            if isinstance(attr, Module) and attr not in module_objects:
                module_objects.append(attr)
                print(
                    f"  Found Module: {attr.target_module} with {len(attr.module_items())} items",
                    file=sys.stderr,
                )
    return module_objects


def print_modules(modules: dict[str, str], ruff: bool) -> None:
    if ruff:
        print("Running ruff to format generated files...", file=sys.stderr)
        with tempfile.TemporaryDirectory() as tmpdir:
            tmppath = Path(tmpdir)
            temp_files = {}
            for module_name, module_path in zip(modules, write_modules(tmppath, modules)):
                run_ruff_on_file(module_path)
                temp_files[module_name] = module_path
                print(f"  Formatted: {module_name}", file=sys.stderr)
            modules = {name: path.read_text() for name, path in temp_files.items()}

    for module_name in sorted(modules.keys()):
        module_path = module_name.replace(".", "/") + ".py"
        print(f"# File: {module_path}\n")
        print(modules[module_name])
        print()  # Blank line between modules


def main(argv=None) -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Generate functions and their async twins for modules using flexifunc.Module",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Generate twins to files (default)
  flexifunc -m my.package._module

  # Generate twins to a specific directory
  flexifunc -m my.package._module -o output/

  # Generate and format with ruff
  flexifunc -m my.package._module --ruff

  # Print all modules to stdout
  flexifunc -m my.package._module --stdout
        """,
    )
    parser.add_argument(
        "-m",
        "--module",
        action="append",
        dest="modules",
        required=True,
        help="Qualified module name to import (can be specified multiple times)",
    )
    parser.add_argument(
        "-o",
        "--output-dir",
        default=".",
        help="Output directory for generated files (default: current directory)",
    )
    parser.add_argument(
        "--stdout",
        action="store_true",
        help="Print all modules to stdout with file headers instead of writing files",
    )
    parser.add_argument(
        "--ruff",
        action="store_true",
        help="Run ruff to autofix and format the generated files (works with both file output and --stdout)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output to stderr")

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr)

    print("Importing modules...", file=sys.stderr)
    module_objects = find_module_objects(args.modules)

    if not module_objects:
        print("\nError: No Module objects found in the specified modules.", file=sys.stderr)
        print("Make sure you have created a Module instance and decorated your functions with it:", file=sys.stderr)
        print("  wrapper_module = Module('my_module')", file=sys.stderr)
        print("  @wrapper_module.twin", file=sys.stderr)
        sys.exit(1)

    total_items = sum(len(m.module_items()) for m in module_objects)
    print(f"\nTotal registered items: {total_items}", file=sys.stderr)
    print("Generating twins...", file=sys.stderr)

    try:
        modules = compile_modules(module_objects)
    except MalformedRequest as exc:
        print(f"\nError: {exc}", file=sys.stderr)
        sys.exit(1)

    if not modules:
        print("No modules generated", file=sys.stderr)
        sys.exit(1)

    print(f"Generated {len(modules)} module(s)", file=sys.stderr)

    if args.stdout:
        print_modules(modules, args.ruff)
        return

    output_dir = Path(args.output_dir)
    written_files = []
    for module_path in write_modules(output_dir, modules):
        written_files.append(module_path)
        print(f"  Wrote: {module_path}", file=sys.stderr)

    if args.ruff:
        print("\nRunning ruff to format generated files...", file=sys.stderr)
        for file_path in written_files:
            run_ruff_on_file(file_path)
            print(f"  Formatted: {file_path}", file=sys.stderr)

    print("\nGeneration completed successfully!", file=sys.stderr)


if __name__ == "__main__":
    main()
