# pdf_renderer.py
from __future__ import annotations

from pathlib import Path
import shutil
import subprocess
import tempfile

from config_loader import DEFAULT_CONFIG


class PdfRenderError(RuntimeError):
    """The external LaTeX engine is missing or failed."""


def render_latex_to_pdf(
    latex_src: str,
    out_path: Path,
    *,
    engine: list[str] | None = None,
) -> None:
    """
    Render a complete LaTeX document to PDF with an external engine.

    - latex_src: full document, \\documentclass ... \\end{document}
    - out_path: final PDF path, e.g. "paper.pdf"
    - engine: argv prefix; the .tex file name is appended,
      e.g. ["tectonic"] or ["xelatex", "-interaction=nonstopmode", "-halt-on-error"]

    The engine must write <name>.pdf next to the .tex file.
    """
    out_path = out_path.resolve()
    out_path.parent.mkdir(parents=True, exist_ok=True)

    cmd = list(engine or DEFAULT_CONFIG.pdf_engine)

    with tempfile.TemporaryDirectory(prefix="texd-") as tmp:
        workdir = Path(tmp)
        tex_path = workdir / "document.tex"
        tex_path.write_text(latex_src, encoding="utf-8")

        try:
            subprocess.run(
                [*cmd, tex_path.name],
                cwd=workdir,
                check=True,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as e:
            raise PdfRenderError(f"PDF engine not found: {cmd[0]}") from e
        except subprocess.CalledProcessError as e:
            raise PdfRenderError(
                f"{cmd[0]} failed with exit code {e.returncode}\n{e.stdout or ''}{e.stderr or ''}"
            ) from e

        pdf_path = tex_path.with_suffix(".pdf")
        if not pdf_path.exists():
            raise PdfRenderError(f"{cmd[0]} did not produce {pdf_path.name}")

        shutil.copyfile(pdf_path, out_path)
