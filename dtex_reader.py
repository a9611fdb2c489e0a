from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Iterator

from config_loader import DtexConfig, load_config_or_default
from dtex_parser import DtexParseError, DtexState, finish_dtex, parse_dtex_line
from helper import format_event, print_event_gray

DTEX_SUFFIX = ".d.tex"


def safe_input_path(raw: str, *, root: Path | None = None) -> Path:
    """
    Parse and validate a user-supplied path.

    Goals:
    - reject obvious malicious / malformed inputs (NUL, empty)
    - avoid directory traversal surprises when a root is given
    - resolve symlinks and return an absolute path
    """
    if not raw or raw.strip() == "":
        raise ValueError("Empty input path.")

    if "\x00" in raw:
        raise ValueError("NUL byte in path is not allowed.")

    p = Path(raw).expanduser()

    if any(part == ".." for part in p.parts):
        raise ValueError("Path traversal ('..') is not allowed.")

    # strict=False so a missing file is reported below, not as OSError
    resolved = p.resolve(strict=False)

    if root is not None:
        root_resolved = root.resolve(strict=True)
        try:
            resolved.relative_to(root_resolved)
        except ValueError as e:
            raise ValueError(f"Input path must be within root: {root_resolved}") from e

    if not resolved.exists():
        raise FileNotFoundError(f"File not found: {resolved}")
    if not resolved.is_file():
        raise IsADirectoryError(f"Not a file: {resolved}")

    return resolved


def is_dtex_path(path: Path) -> bool:
    """Return True if the file name carries the .d.tex extension."""
    return path.name.endswith(DTEX_SUFFIX) and len(path.name) > len(DTEX_SUFFIX)


def require_dtex_path(path: Path) -> Path:
    if not is_dtex_path(path):
        raise ValueError(f"Input file must be a {DTEX_SUFFIX} file: {path.name}")
    return path


def _sibling_with_suffix(path: Path, suffix: str) -> Path:
    require_dtex_path(path)
    return path.with_name(path.name[: -len(DTEX_SUFFIX)] + suffix)


def tex_output_path(path: Path) -> Path:
    """foo.d.tex -> foo.tex"""
    return _sibling_with_suffix(path, ".tex")


def pdf_output_path(path: Path) -> Path:
    """foo.d.tex -> foo.pdf"""
    return _sibling_with_suffix(path, ".pdf")


def read_dtex_lines(path: Path) -> Iterator[str]:
    """
    Iterate over a .d.tex file line-by-line (without line endings).
    """
    with Path(path).open(encoding="utf-8") as f:
        for raw_line in f:
            yield raw_line.rstrip("\n")


def dump_events(path: Path, cfg: DtexConfig) -> None:
    """
    Print every parser event of a document in gray (debug aid).
    """
    state = DtexState()
    for line in read_dtex_lines(path):
        state, events = parse_dtex_line(line, cfg, state)
        for event in events:
            print_event_gray(format_event(event))
    for event in finish_dtex(state):
        print_event_gray(format_event(event))


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dtex_reader.py",
        description="Stream a .d.tex file and print the parser events.",
    )
    parser.add_argument(
        "input",
        help="Document to read (extension must be .d.tex)",
    )
    parser.add_argument(
        "--config",
        default="config.yml",
        help="Path to config.yml (default: config.yml, built-in defaults if missing)",
    )
    parser.add_argument(
        "--root",
        default=None,
        help="Optional root directory: input file must be within this directory.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)

    try:
        cfg = load_config_or_default(Path(args.config))
    except Exception as e:
        print(f"[dtex_reader] Failed to load config: {e}", file=sys.stderr)
        return 2

    root_dir: Path | None = None
    if args.root:
        try:
            root_dir = Path(args.root).expanduser().resolve(strict=True)
        except OSError as e:
            print(f"[dtex_reader] Invalid --root: {e}", file=sys.stderr)
            return 2

    try:
        input_path = require_dtex_path(safe_input_path(args.input, root=root_dir))
    except (ValueError, OSError) as e:
        print(f"[dtex_reader] Invalid input path: {e}", file=sys.stderr)
        return 2

    try:
        dump_events(input_path, cfg)
    except (DtexParseError, UnicodeDecodeError, OSError) as e:
        print(f"[dtex_reader] {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
