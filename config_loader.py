# config_loader.py
from __future__ import annotations

from pathlib import Path
from typing import Any
import re

try:
    import yaml  # PyYAML
except ImportError as e:
    raise SystemExit(
        "Missing dependency: PyYAML\n"
        "Install with: python -m pip install pyyaml"
    ) from e


class DtexConfig:
    """
    Immutable-ish container for the .d.tex transpiler configuration.
    """

    def __init__(
        self,
        *,
        decorator_re: re.Pattern,
        blank_line_re: re.Pattern,
        math_env_re: re.Pattern,
        front_matter_end_re: re.Pattern,
        document_class: str,
        class_options: str,
        default_fontsize: str,
        default_date: str,
        table_placement: str,
        pdf_engine: list[str],
    ):
        self.decorator_re = decorator_re
        self.blank_line_re = blank_line_re
        self.math_env_re = math_env_re
        self.front_matter_end_re = front_matter_end_re
        self.document_class = document_class
        self.class_options = class_options
        self.default_fontsize = default_fontsize
        self.default_date = default_date
        self.table_placement = table_placement
        self.pdf_engine = pdf_engine


# ---------------- Defaults ---------------------------------------------------

DEFAULT_CONFIG = DtexConfig(
    decorator_re=re.compile(r"^(@{1,2})([a-zA-Z][0-9a-zA-Z]+)(\s+\S+)*\s*$"),
    blank_line_re=re.compile(r"^\s*$"),
    math_env_re=re.compile(r"^(equation|align)\*?$"),
    front_matter_end_re=re.compile(r"^---"),
    document_class="bxjsarticle",
    class_options="a4paper,{fontsize},xelatex,ja=standard",
    default_fontsize="12pt",
    default_date=r"\today",
    table_placement="hbtp",
    pdf_engine=["tectonic"],
)

# ---------------- Loader -----------------------------------------------------


def _as_str(value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a string")
    return value


def _as_str_list(value: Any, name: str) -> list[str]:
    if isinstance(value, str):
        return value.split()
    if not isinstance(value, list) or not value:
        raise TypeError(f"{name} must be a non-empty list of strings")
    return [str(v) for v in value]


def load_config(path: Path) -> DtexConfig:
    """
    Load YAML config and return a DtexConfig instance.

    Every key is optional; missing keys fall back to DEFAULT_CONFIG.
    """
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise TypeError("Config root must be a mapping")

    regex = raw.get("regex") or {}
    if not isinstance(regex, dict):
        raise TypeError("regex must be a mapping")

    return DtexConfig(
        decorator_re=re.compile(
            regex.get("decorator_re", DEFAULT_CONFIG.decorator_re.pattern)
        ),
        blank_line_re=re.compile(
            regex.get("blank_line_re", DEFAULT_CONFIG.blank_line_re.pattern)
        ),
        math_env_re=re.compile(
            regex.get("math_env_re", DEFAULT_CONFIG.math_env_re.pattern)
        ),
        front_matter_end_re=re.compile(
            regex.get("front_matter_end_re", DEFAULT_CONFIG.front_matter_end_re.pattern)
        ),
        document_class=_as_str(
            raw.get("document_class", DEFAULT_CONFIG.document_class),
            "document_class",
        ),
        class_options=_as_str(
            raw.get("class_options", DEFAULT_CONFIG.class_options),
            "class_options",
        ),
        default_fontsize=_as_str(
            raw.get("default_fontsize", DEFAULT_CONFIG.default_fontsize),
            "default_fontsize",
        ),
        default_date=_as_str(
            raw.get("default_date", DEFAULT_CONFIG.default_date),
            "default_date",
        ),
        table_placement=_as_str(
            raw.get("table_placement", DEFAULT_CONFIG.table_placement),
            "table_placement",
        ),
        pdf_engine=_as_str_list(
            raw.get("pdf_engine", list(DEFAULT_CONFIG.pdf_engine)),
            "pdf_engine",
        ),
    )


def load_config_or_default(path: Path) -> DtexConfig:
    """Like load_config(), but a missing file yields DEFAULT_CONFIG."""
    if not path.exists():
        return DEFAULT_CONFIG
    return load_config(path)
