# test_pdf_renderer.py
#
# Run:
#   python -m unittest -v

import subprocess
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import pdf_renderer as m
from config_loader import DEFAULT_CONFIG

LATEX = "\\documentclass{article}\n\\begin{document}\nHi\n\\end{document}"


def fake_engine(cmd, *, cwd, **kwargs):
    """Stand-in for the engine: writes <name>.pdf next to the .tex file."""
    tex_path = Path(cwd) / cmd[-1]
    assert tex_path.read_text(encoding="utf-8") == LATEX
    tex_path.with_suffix(".pdf").write_bytes(b"%PDF-1.5 fake")
    return subprocess.CompletedProcess(cmd, 0, "", "")


class TestRenderLatexToPdf(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def test_copies_engine_output(self):
        out = self.root / "out" / "paper.pdf"
        with mock.patch.object(m.subprocess, "run", side_effect=fake_engine) as run:
            m.render_latex_to_pdf(LATEX, out, engine=["xelatex", "-halt-on-error"])
        self.assertEqual(out.read_bytes(), b"%PDF-1.5 fake")
        self.assertEqual(run.call_args.args[0], ["xelatex", "-halt-on-error", "document.tex"])
        self.assertTrue(run.call_args.kwargs["check"])

    def test_default_engine_comes_from_config(self):
        with mock.patch.object(m.subprocess, "run", side_effect=fake_engine) as run:
            m.render_latex_to_pdf(LATEX, self.root / "a.pdf")
        self.assertEqual(run.call_args.args[0], [*DEFAULT_CONFIG.pdf_engine, "document.tex"])

    def test_missing_engine(self):
        with mock.patch.object(m.subprocess, "run", side_effect=FileNotFoundError("nope")):
            with self.assertRaises(m.PdfRenderError) as ctx:
                m.render_latex_to_pdf(LATEX, self.root / "a.pdf", engine=["no-such-engine"])
        self.assertIn("no-such-engine", str(ctx.exception))

    def test_failed_run_keeps_engine_output(self):
        err = subprocess.CalledProcessError(1, ["tectonic"], output="log", stderr="! Undefined control sequence.")
        with mock.patch.object(m.subprocess, "run", side_effect=err):
            with self.assertRaises(m.PdfRenderError) as ctx:
                m.render_latex_to_pdf(LATEX, self.root / "a.pdf")
        self.assertIn("Undefined control sequence", str(ctx.exception))
        self.assertFalse((self.root / "a.pdf").exists())

    def test_engine_without_output(self):
        ok = subprocess.CompletedProcess(["tectonic"], 0, "", "")
        with mock.patch.object(m.subprocess, "run", return_value=ok):
            with self.assertRaises(m.PdfRenderError):
                m.render_latex_to_pdf(LATEX, self.root / "a.pdf")


if __name__ == "__main__":
    unittest.main(verbosity=2)
