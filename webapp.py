#!/usr/bin/env python3
from __future__ import annotations
from hashlib import sha1
from pathlib import Path

from dataclasses import dataclass, field
from urllib.parse import quote
import html as _html

from flask import Flask, abort, render_template_string, send_from_directory

from pdf_renderer import PdfRenderError, render_latex_to_pdf
from config_loader import load_config_or_default
from dtex_parser import DtexParseError
from dtex_reader import is_dtex_path, read_dtex_lines
from dtex_to_latex import render_dtex_to_latex

BASE_DIR = Path.cwd()
CONFIG_PATH = BASE_DIR / "config.yml"
DTEX_DIR = BASE_DIR / "dtex"
PDF_CACHE = BASE_DIR / ".pdf-cache"

app = Flask(__name__)
cfg = load_config_or_default(CONFIG_PATH)


LAYOUT_TEMPLATE = """
<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>{{ page_title }}</title>
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <style>
    .layout { display: flex; gap: 2rem; }
    .sidebar { min-width: 14rem; }
    .fm-file.active a { font-weight: bold; }
    pre.latex { background: #f6f6f6; padding: 1rem; overflow-x: auto; }
    pre.error { color: #a00; }
  </style>
</head>
<body>
  <div class="layout">
    <aside class="sidebar">
      <div class="sidebar-title"><a href="/">texd preview</a></div>
      <div class="sidebar-section">
        <div class="sidebar-label">dtex/</div>
        {{ file_tree|safe }}
      </div>
    </aside>

    <main class="content">
    {{ content|safe }}
    </main>
  </div>
</body>
</html>
"""

@dataclass
class FileTreeNode:
    dirs: dict[str, "FileTreeNode"] = field(default_factory=dict)
    files: list[str] = field(default_factory=list)

def _insert_path(root: FileTreeNode, rel_parts: tuple[str, ...]) -> None:
    node = root
    for part in rel_parts[:-1]:
        node = node.dirs.setdefault(part, FileTreeNode())
    node.files.append(rel_parts[-1])

def build_dtex_tree(dtex_dir: Path) -> FileTreeNode:
    root = FileTreeNode()
    if not dtex_dir.exists():
        return root

    for p in sorted(dtex_dir.glob("**/*.d.tex")):
        # skip hidden dirs
        if any(seg.startswith(".") for seg in p.relative_to(dtex_dir).parts):
            continue
        _insert_path(root, p.relative_to(dtex_dir).parts)
    return root

def render_tree_html(node: FileTreeNode, *, prefix: str, current_file: str) -> str:
    """
    prefix: path inside dtex/ (e.g. '' or 'chapter1')
    current_file: path inside dtex/ of the open document
    """
    out: list[str] = []

    for dirname in sorted(node.dirs.keys()):
        child_prefix = f"{prefix}/{dirname}".strip("/")
        open_attr = " open" if current_file.startswith(child_prefix + "/") else ""
        out.append(f'<details class="fm-dir"{open_attr}>')
        out.append(f"<summary>{_html.escape(dirname)}/</summary>")
        out.append('<div class="fm-children">')
        out.append(render_tree_html(node.dirs[dirname], prefix=child_prefix, current_file=current_file))
        out.append("</div></details>")

    for fname in sorted(node.files):
        rel = f"{prefix}/{fname}".strip("/")
        href = "/view/" + quote(rel)
        active = " active" if rel == current_file else ""
        out.append(f'<div class="fm-file{active}"><a href="{href}">{_html.escape(fname)}</a></div>')

    return "".join(out)


def _resolve_document(filename: str) -> Path:
    """Map a URL path to a .d.tex file inside DTEX_DIR, or 404."""
    dtex_root = DTEX_DIR.resolve()
    doc_path = (dtex_root / filename).resolve()
    try:
        doc_path.relative_to(dtex_root)
    except ValueError:
        abort(404)

    if not doc_path.is_file() or not is_dtex_path(doc_path):
        abort(404)
    return doc_path


def _render_page(title: str, content: str, current_file: str = "", status: int = 200):
    file_tree_html = render_tree_html(build_dtex_tree(DTEX_DIR), prefix="", current_file=current_file)
    page = render_template_string(
        LAYOUT_TEMPLATE,
        page_title=title,
        file_tree=file_tree_html,
        content=content,
    )
    return page, status


@app.route("/")
def index():
    content = """
      <h1>texd preview</h1>
      <p>Pick a document on the left.</p>
    """
    return _render_page("texd preview", content)


@app.route("/view/<path:filename>")
def view_file(filename: str):
    doc_path = _resolve_document(filename)
    current_rel = str(doc_path.relative_to(DTEX_DIR.resolve()))

    try:
        latex = render_dtex_to_latex(read_dtex_lines(doc_path), cfg)
    except (DtexParseError, UnicodeDecodeError) as e:
        content = f'<h1>{_html.escape(current_rel)}</h1><pre class="error">{_html.escape(str(e))}</pre>'
        return _render_page(current_rel, content, current_rel, status=422)

    pdf_href = "/pdf/" + quote(current_rel)
    content = (
        f"<h1>{_html.escape(current_rel)}</h1>"
        f'<p><a href="{pdf_href}">PDF</a></p>'
        f'<pre class="latex">{_html.escape(latex)}</pre>'
    )
    return _render_page(current_rel, content, current_rel)


@app.route("/pdf/<path:filename>")
def pdf_file(filename: str):
    doc_path = _resolve_document(filename)

    try:
        latex = render_dtex_to_latex(read_dtex_lines(doc_path), cfg)
    except (DtexParseError, UnicodeDecodeError):
        abort(422)

    # cache by content, so edits re-render
    digest = sha1(latex.encode("utf-8")).hexdigest()
    pdf_path = PDF_CACHE / f"{digest}.pdf"

    if not pdf_path.exists():
        try:
            render_latex_to_pdf(latex, pdf_path, engine=cfg.pdf_engine)
        except PdfRenderError:
            abort(500)

    return send_from_directory(PDF_CACHE.resolve(), pdf_path.name, mimetype="application/pdf")


if __name__ == "__main__":
    # Run in dev mode
    app.run(debug=False)
