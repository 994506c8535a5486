"""
CLI entrypoint for copcon package.
"""
import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from colorama import Fore

from . import __version__
from .core import (
    assemble_report,
    build_rules,
    check_root,
    echo,
    warn,
    InvalidRootError,
    OutputError,
)
from .sinks import ClipboardSink, FileSink, Sink, StdoutSink

WARN_BYTES = 10_000_000


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="copcon",
        description="Generate a report of directory structure and file contents.",
    )
    p.add_argument("directory", type=Path, help="The directory to process")
    p.add_argument(
        "-d",
        "--depth",
        type=int,
        default=-1,
        help="Depth of directory tree to display (-1 for unlimited)",
    )
    p.add_argument(
        "--exclude-hidden",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Exclude hidden files from the contents section (default: on)",
    )
    p.add_argument(
        "--ignore-dirs",
        nargs="+",
        action="extend",
        default=[],
        metavar="NAME",
        help="Additional directory names to ignore (globs such as 'tmp*' are matched as patterns)",
    )
    p.add_argument(
        "--ignore-files",
        nargs="+",
        action="extend",
        default=[],
        metavar="NAME",
        help="Additional file names to ignore (globs such as '*.log' are matched as patterns)",
    )
    p.add_argument(
        "--copconignore",
        type=Path,
        help="Path to .copconignore file (default: <directory>/.copconignore)",
    )
    p.add_argument(
        "--gitignore",
        action="store_true",
        help="Also apply patterns from <directory>/.gitignore",
    )
    out = p.add_mutually_exclusive_group()
    out.add_argument("--stdout", action="store_true", help="Print the report instead of copying it")
    out.add_argument("--out", type=Path, help="Write the report to this file instead of copying it")
    p.add_argument(
        "--warn-bytes",
        type=int,
        default=WARN_BYTES,
        help="Warn when the report is larger than this many characters (default 10M)",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p.parse_args(argv)


def _make_sink(ns: argparse.Namespace) -> Sink:
    if ns.stdout:
        return StdoutSink()
    if ns.out is not None:
        return FileSink(ns.out)
    return ClipboardSink()


def main(argv: Optional[Sequence[str]] = None) -> None:
    try:
        ns = _parse_args(argv)

        try:
            root = check_root(ns.directory)
        except InvalidRootError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

        if ns.verbose:
            echo(f"Scanning {root} …")

        rules = build_rules(
            root,
            extra_dirs=ns.ignore_dirs,
            extra_files=ns.ignore_files,
            ignore_file=ns.copconignore.resolve() if ns.copconignore else None,
            use_gitignore=ns.gitignore,
            verbose=ns.verbose,
        )
        report = assemble_report(
            root,
            ns.depth,
            rules,
            exclude_hidden=ns.exclude_hidden,
            verbose=ns.verbose,
        )
        if len(report) > ns.warn_bytes:
            warn(
                f"Report is {len(report)} characters; the whole tree is held in "
                "memory, consider narrowing it with --ignore-dirs or .copconignore."
            )

        try:
            confirmation = _make_sink(ns).write(report)
        except OutputError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

        if ns.verbose:
            echo("Done.", Fore.GREEN)
        if confirmation:
            print(confirmation)

    except KeyboardInterrupt:
        print("\nCancelled.", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
