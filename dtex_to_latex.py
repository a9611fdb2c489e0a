#!/usr/bin/env python3
"""
dtex_to_latex.py

.d.tex -> LaTeX (and PDF) converter built on the parser pipeline:

- config_loader.load_config_or_default() for grammars + rendering knobs
- dtex_reader.read_dtex_lines() for input
- dtex_parser.parse_dtex_line() for front matter, decorators, scopes,
  inline macros and table rows
- pdf_renderer.render_latex_to_pdf() for the optional PDF

The parser decides *what* happens on each line; this module owns the
output line sequence (caption placement, align row endings, tabular rows).
"""
from __future__ import annotations
from config_loader import load_config_or_default, DtexConfig, DEFAULT_CONFIG
from pathlib import Path
from typing import Iterable
import argparse
import sys

from dtex_parser import (
    DocumentMetadata,
    DtexEvent,
    DtexParseError,
    DtexState,
    LINE_CONTINUATION,
    Scope,
    ScopeKind,
    finish_dtex,
    parse_dtex_line,
)
from dtex_reader import (
    pdf_output_path,
    read_dtex_lines,
    require_dtex_path,
    safe_input_path,
    tex_output_path,
)
from pdf_renderer import PdfRenderError, render_latex_to_pdf


def render_package(spec: str) -> str:
    """
    Map a dotted package specifier to a \\usepackage line.

      amsmath  -> \\usepackage{amsmath}
      a.b.c    -> \\usepackage[b][a]{c}
    """
    parts = spec.split(".")[::-1]
    options = "".join(f"[{opt}]" for opt in parts[1:])
    return f"\\usepackage{options}{{{parts[0]}}}"


def render_braced_args(args: list[str]) -> str:
    return "".join(f"{{{arg}}}" for arg in args)


def render_preamble(metadata: DocumentMetadata, cfg: DtexConfig) -> list[str]:
    """Document class, packages and (optionally) the title block."""
    options = cfg.class_options.replace("{fontsize}", metadata.fontsize)
    lines = [f"\\documentclass[{options}]{{{cfg.document_class}}}"]
    lines.extend(render_package(spec) for spec in metadata.packages)

    cover = metadata.cover
    if cover is not None:
        lines.append(f"\\title{{{cover.title}}}")
        lines.append(f"\\author{{{cover.author}}}")
        date = cfg.default_date if cover.date is None else cover.date
        lines.append(f"\\date{{{date}}}")
        lines.append(r"\begin{document}")
        lines.append(r"\maketitle")
    else:
        lines.append(r"\begin{document}")
    return lines


def render_table_begin(args: list[str], cfg: DtexConfig) -> list[str]:
    return [
        f"\\begin{{table}}[{cfg.table_placement}]",
        r"\centering",
        f"\\begin{{tabular}}{render_braced_args(args)}",
    ]


def build_csv_table(records: list[list[str]]) -> list[str]:
    """
    Render parsed table records as tabular rows.

    The first row is set off by a double rule; the block is closed with
    \\hline, \\end{tabular} and \\end{table}.
    """
    lines: list[str] = []
    for idx, record in enumerate(records):
        lines.append(" & ".join(record) + " " + LINE_CONTINUATION)
        if idx == 0:
            lines.append(r"\hline \hline")
    lines.append(r"\hline")
    lines.append(r"\end{tabular}")
    lines.append(r"\end{table}")
    return lines


def render_dtex_to_latex(
    lines: Iterable[str],
    cfg: DtexConfig = DEFAULT_CONFIG,
) -> str:
    """
    Convert .d.tex lines into a complete LaTeX document.

    Raises DtexParseError on the first problem; nothing partial is returned.
    """
    state = DtexState()
    latex_out: list[str] = []

    def insert_caption(caption: str) -> None:
        # goes in front of the \begin{tabular} line emitted last
        tabular = latex_out.pop()
        latex_out.append(f"\\caption{{{caption}}}")
        latex_out.append(tabular)
        latex_out.append(r"\hline")

    def strip_line_continuation() -> None:
        if latex_out and latex_out[-1].endswith(LINE_CONTINUATION):
            latex_out[-1] = latex_out[-1][: -len(LINE_CONTINUATION)]

    def close_scope(scope: Scope, records: list[list[str]] | None) -> None:
        if scope.kind is ScopeKind.TABLE:
            latex_out.extend(build_csv_table(records or []))
            return
        if scope.kind is ScopeKind.MATH and scope.is_align:
            strip_line_continuation()
        latex_out.append(f"\\end{{{scope.name}}}")

    def apply_event(ev: DtexEvent) -> None:
        if ev.type == "front_matter_end":
            latex_out.extend(render_preamble(ev.data["metadata"], cfg))

        elif ev.type == "command":
            latex_out.append(f"\\{ev.data['name']}{render_braced_args(ev.data['args'])}")

        elif ev.type == "env_begin":
            latex_out.append(
                f"\\begin{{{ev.data['name']}}}{render_braced_args(ev.data['args'])}"
            )

        elif ev.type == "table_begin":
            latex_out.extend(render_table_begin(ev.data["args"], cfg))

        elif ev.type == "table_caption":
            insert_caption(ev.data["caption"])

        elif ev.type == "content":
            latex_out.append(ev.data["text"])

        elif ev.type == "scope_end":
            close_scope(ev.data["scope"], ev.data.get("records"))

        # front_matter_line / table_row produce no output of their own

    for line in lines:
        state, events = parse_dtex_line(line, cfg, state)
        for ev in events:
            apply_event(ev)

    for ev in finish_dtex(state):
        apply_event(ev)

    latex_out.append(r"\end{document}")
    return "\n".join(latex_out)


def dtex_text_to_latex(text: str, cfg: DtexConfig = DEFAULT_CONFIG) -> str:
    """Convenience wrapper for in-memory documents."""
    return render_dtex_to_latex(text.splitlines(), cfg)


def dtex_to_latex(
    input_path: Path,
    cfg: DtexConfig,
    *,
    write_tex: bool = False,
    write_pdf: bool = True,
) -> str:
    """
    Convert a .d.tex file. Optionally writes foo.tex and renders foo.pdf
    next to the input. Returns the LaTeX source.
    """
    latex = render_dtex_to_latex(read_dtex_lines(input_path), cfg)

    if write_tex:
        tex_output_path(input_path).write_text(latex, encoding="utf-8")

    if write_pdf:
        render_latex_to_pdf(latex, pdf_output_path(input_path), engine=cfg.pdf_engine)

    return latex


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="texd",
        description="Convert a .d.tex document to LaTeX and PDF.",
    )
    parser.add_argument("input", help="Input file (extension must be .d.tex)")
    parser.add_argument("-t", "--tex", action="store_true", help="Also write the .tex file")
    parser.add_argument("--no-pdf", action="store_true", help="Do not render the .pdf file")
    parser.add_argument(
        "-c",
        "--config",
        default="config.yml",
        help="Config YAML file (default: config.yml, built-in defaults if missing)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)

    try:
        cfg = load_config_or_default(Path(args.config))
    except Exception as e:
        print(f"[texd] Failed to load config: {e}", file=sys.stderr)
        return 2

    try:
        input_path = require_dtex_path(safe_input_path(args.input))
    except (ValueError, OSError) as e:
        print(f"[texd] Invalid input path: {e}", file=sys.stderr)
        return 2

    try:
        dtex_to_latex(input_path, cfg, write_tex=args.tex, write_pdf=not args.no_pdf)
    except DtexParseError as e:
        print(f"[texd] {input_path.name}: {e}", file=sys.stderr)
        return 1
    except UnicodeDecodeError as e:
        print(f"[texd] {input_path.name}: not valid UTF-8: {e}", file=sys.stderr)
        return 1
    except PdfRenderError as e:
        print(f"[texd] PDF rendering failed: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"[texd] Error while writing output: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
