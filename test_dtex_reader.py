# test_dtex_reader.py
#
# Run:
#   python -m unittest -v

import io
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path

import dtex_reader as m


class TestDtexReader(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name).resolve()

    def tearDown(self) -> None:
        self.tmp.cleanup()

    # ---------- helpers ----------
    def write(self, rel: str, content: str) -> Path:
        """
        Write `content` to a file relative to the temporary test directory.

        Returns:
            The absolute Path to the written file.
        """
        p = self.root / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content, encoding="utf-8")
        return p

    # ---------- safe_input_path ----------
    def test_safe_input_path_resolves_existing_file(self):
        p = self.write("doc.d.tex", "")
        self.assertEqual(m.safe_input_path(str(p)), p)

    def test_safe_input_path_rejects_empty_and_nul(self):
        with self.assertRaises(ValueError):
            m.safe_input_path("  ")
        with self.assertRaises(ValueError):
            m.safe_input_path("doc\x00.d.tex")

    def test_safe_input_path_rejects_traversal(self):
        with self.assertRaises(ValueError):
            m.safe_input_path(str(self.root / "sub" / ".." / "doc.d.tex"))

    def test_safe_input_path_missing_and_directory(self):
        with self.assertRaises(FileNotFoundError):
            m.safe_input_path(str(self.root / "missing.d.tex"))
        with self.assertRaises(IsADirectoryError):
            m.safe_input_path(str(self.root))

    def test_safe_input_path_root_restriction(self):
        p = self.write("outside.d.tex", "")
        inner = self.root / "inner"
        inner.mkdir()
        with self.assertRaises(ValueError):
            m.safe_input_path(str(p), root=inner)

    # ---------- extensions ----------
    def test_is_dtex_path(self):
        self.assertTrue(m.is_dtex_path(Path("paper.d.tex")))
        self.assertFalse(m.is_dtex_path(Path("paper.tex")))
        self.assertFalse(m.is_dtex_path(Path(".d.tex")))
        self.assertFalse(m.is_dtex_path(Path("paper.d.tex.bak")))

    def test_output_paths(self):
        src = Path("/data/paper.d.tex")
        self.assertEqual(m.tex_output_path(src), Path("/data/paper.tex"))
        self.assertEqual(m.pdf_output_path(src), Path("/data/paper.pdf"))

    def test_output_paths_require_dtex(self):
        with self.assertRaises(ValueError):
            m.tex_output_path(Path("paper.tex"))

    # ---------- read_dtex_lines ----------
    def test_read_dtex_lines_strips_line_endings(self):
        p = self.write("doc.d.tex", "a\n\nb\n")
        self.assertEqual(list(m.read_dtex_lines(p)), ["a", "", "b"])

    # ---------- main ----------
    def test_main_prints_events(self):
        p = self.write("doc.d.tex", "config:\n  packages: []\n---\n@@center\nHi\n")
        out = io.StringIO()
        with redirect_stdout(out):
            code = m.main([str(p), "--config", str(self.root / "none.yml")])
        self.assertEqual(code, 0)
        text = out.getvalue()
        self.assertIn("front_matter_end", text)
        self.assertIn("env_begin", text)
        self.assertIn("scope_end", text)

    def test_main_reports_invalid_utf8(self):
        p = self.root / "bad.d.tex"
        p.write_bytes(b"config:\n  packages: []\n---\nhello \xff\n")
        with redirect_stdout(io.StringIO()), redirect_stderr(io.StringIO()) as err:
            code = m.main([str(p), "--config", str(self.root / "none.yml")])
        self.assertEqual(code, 1)
        self.assertIn("utf-8", err.getvalue())

    def test_main_rejects_non_dtex(self):
        p = self.write("doc.txt", "")
        self.assertEqual(m.main([str(p), "--config", str(self.root / "none.yml")]), 2)


if __name__ == "__main__":
    unittest.main(verbosity=2)
