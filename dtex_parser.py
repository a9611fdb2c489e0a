#!/usr/bin/env python3
from __future__ import annotations

import csv
import datetime
import io
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Any

import yaml

from config_loader import DtexConfig

TABLE_SCOPE_NAME = "csv"
LINE_CONTINUATION = "\\\\"


# ---------------- Errors -----------------------------------------------------


class DtexParseError(Exception):
    """
    Base class for everything the transpiler rejects.

    `line_no` is filled in by parse_dtex_line() for errors raised while a
    body or front matter line is processed.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        self.line_no: Optional[int] = None

    def __str__(self) -> str:
        if self.line_no is not None:
            return f"ParseError: line {self.line_no}: {self.message}"
        return f"ParseError: {self.message}"


class UnexpectedEOFError(DtexParseError):
    def __init__(self):
        super().__init__("unexpected end of file")


class UnexpectedCharError(DtexParseError):
    def __init__(self, char: str):
        super().__init__(f"unexpected character: {char}")
        self.char = char


class UnsupportedIdentifierError(DtexParseError):
    def __init__(self, identifier: str):
        super().__init__(f"unsupported identifier: {identifier}")
        self.identifier = identifier


class MetadataError(DtexParseError):
    def __init__(self, message: str):
        super().__init__(f"yaml load error: {message}")


class TableError(DtexParseError):
    def __init__(self, message: str):
        super().__init__(f"csv error: {message}")


# ---------------- Data model -------------------------------------------------


@dataclass
class DtexEvent:
    """
    A structured event emitted by the .d.tex parser.

    type:
      - "front_matter_line"
      - "front_matter_end"   (data["metadata"]: DocumentMetadata)
      - "command"            (@name args)
      - "env_begin"          (@@name args)
      - "table_begin"        (@@csv colspec)
      - "table_caption"
      - "table_row"
      - "content"
      - "scope_end"          (data["scope"]: Scope, data["records"] for tables)
    """
    type: str
    data: dict[str, Any]


@dataclass(frozen=True)
class CoverPage:
    title: str
    author: str
    date: Optional[str] = None


@dataclass(frozen=True)
class DocumentMetadata:
    """
    Parsed front matter. Built once when the `---` line is reached.
    """
    fontsize: str
    packages: tuple[str, ...] = ()
    cover: Optional[CoverPage] = None


class ScopeKind(Enum):
    PLAIN = "plain"
    MATH = "math"
    TABLE = "table"


@dataclass
class Scope:
    """
    One entry of the scope stack.

    MATH scopes are equation/align environments; TABLE scopes collect
    their raw rows until the closing blank line.
    """
    name: str
    kind: ScopeKind
    is_align: bool = False
    caption_pending: bool = False
    rows: list[str] = field(default_factory=list)


@dataclass
class DtexState:
    """
    Mutable parser state for a single forward pass over a document.

    Only `in_math` is a free flag: `$` toggles it inside a line and it
    carries over to the next one. Align and table modes are read off the
    scope stack.
    """
    # Front matter
    is_in_front_matter: bool = True
    front_matter_lines: list[str] = field(default_factory=list)
    metadata: Optional[DocumentMetadata] = None

    # Scopes (LIFO)
    scope_stack: list[Scope] = field(default_factory=list)

    in_math: bool = False
    line_no: int = 0

    @property
    def in_align(self) -> bool:
        for scope in reversed(self.scope_stack):
            if scope.kind is ScopeKind.MATH:
                return scope.is_align
        return False

    @property
    def active_table(self) -> Optional[Scope]:
        for scope in reversed(self.scope_stack):
            if scope.kind is ScopeKind.TABLE:
                return scope
        return None

    @property
    def in_table(self) -> bool:
        return self.active_table is not None


# ---------------- Front matter -----------------------------------------------


def _required_text(mapping: dict, key: str) -> str:
    value = mapping.get(key)
    if not isinstance(value, str):
        raise MetadataError(f"{key} is not specified")
    return value


def _optional_date(value: Any) -> Optional[str]:
    # PyYAML turns an unquoted 2020-01-01 into a date object
    if value is None:
        return None
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    if isinstance(value, str):
        return value
    raise MetadataError("date must be a string")


def parse_front_matter(text: str, cfg: DtexConfig) -> DocumentMetadata:
    """
    Parse the YAML block in front of the `---` line.

    Expected keys:
      config.fontsize   (optional, cfg.default_fontsize)
      config.packages   (required list of dotted specifiers)
      cover.title / cover.author (required when `cover` is present)
      cover.date        (optional)
    """
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise MetadataError(f"front matter is not valid YAML: {e}") from e

    if not isinstance(raw, dict):
        raise MetadataError("front matter must be a mapping")

    config = raw.get("config")
    if not isinstance(config, dict):
        raise MetadataError("config is not specified")

    fontsize = config.get("fontsize")
    if fontsize is None:
        fontsize = cfg.default_fontsize
    elif not isinstance(fontsize, str):
        raise MetadataError("fontsize must be a string")

    packages = config.get("packages")
    if not isinstance(packages, list):
        raise MetadataError("packages is not specified")
    for package in packages:
        if not isinstance(package, str):
            raise MetadataError(f"package must be a string: {package!r}")

    cover = None
    if "cover" in raw:
        cover_raw = raw["cover"] if isinstance(raw["cover"], dict) else {}
        cover = CoverPage(
            title=_required_text(cover_raw, "title"),
            author=_required_text(cover_raw, "author"),
            date=_optional_date(cover_raw.get("date")),
        )

    return DocumentMetadata(fontsize=fontsize, packages=tuple(packages), cover=cover)


def _handle_front_matter_if_applicable(
    line: str,
    cfg: DtexConfig,
    state: DtexState,
) -> Optional[DtexEvent]:
    """
    Collect lines until the `---` terminator, then parse them once.
    """
    if not state.is_in_front_matter:
        return None

    if not cfg.front_matter_end_re.match(line):
        state.front_matter_lines.append(line)
        return DtexEvent(type="front_matter_line", data={"raw": line})

    state.metadata = parse_front_matter("\n".join(state.front_matter_lines), cfg)
    state.is_in_front_matter = False
    return DtexEvent(type="front_matter_end", data={"metadata": state.metadata})


# ---------------- Inline content ---------------------------------------------


def expand_inline_macro(call: str) -> str:
    """
    Turn the inside of an inline macro call into a LaTeX command.

    Example: 'SI 163 cm' -> '\\SI{163}{cm}'
    """
    name, *args = call.split(" ")
    return "\\" + name + "".join("{" + arg + "}" for arg in args)


def scan_inline(text: str, *, in_math: bool, in_align: bool) -> tuple[str, bool]:
    """
    Scan one content line character by character.

      $            -> toggles math mode, kept as is
      @name args@  -> \\name{arg}... (math mode only)
      =            -> &= while inside an align environment

    Returns (converted_text, in_math_after_line).
    """
    out: list[str] = []

    i = 0
    while i < len(text):
        ch = text[i]

        if ch == "$":
            in_math = not in_math
            out.append(ch)
            i += 1
            continue

        if ch == "@" and in_math:
            end = text.find("@", i + 1)
            call = text[i + 1 :] if end == -1 else text[i + 1 : end]
            if "$" in call:
                raise UnexpectedCharError("$")
            if end == -1:
                raise UnexpectedEOFError()
            out.append(expand_inline_macro(call))
            i = end + 1
            continue

        if in_align and ch == "=":
            out.append("&")
        out.append(ch)
        i += 1

    return "".join(out), in_math


# ---------------- Tables -----------------------------------------------------


def parse_table_rows(rows: list[str]) -> list[list[str]]:
    """
    Parse buffered table rows as plain comma-separated records.

    All records must have the same number of fields.
    """
    raw = "".join(row + "\n" for row in rows)
    try:
        records = [record for record in csv.reader(io.StringIO(raw), strict=True) if record]
    except csv.Error as e:
        raise TableError(str(e)) from e

    for idx, record in enumerate(records):
        if len(record) != len(records[0]):
            raise TableError(
                f"row {idx + 1} has {len(record)} fields, expected {len(records[0])}"
            )
    return records


# ---------------- Line handlers ----------------------------------------------


def _handle_decorator_if_present(
    line: str,
    cfg: DtexConfig,
    state: DtexState,
) -> Optional[DtexEvent]:
    """
    Detect decorator lines:

      @name a b    -> standalone command
      @@name a b   -> environment, pushed on the scope stack
      @@csv ccc    -> table/tabular pair, caption expected on the next line
    """
    match = cfg.decorator_re.match(line)
    if not match:
        return None

    marker = match.group(1)
    name = match.group(2)
    args = line[match.end(2) :].split()

    if marker not in ("@", "@@"):
        raise UnexpectedCharError(marker[0])

    if name == TABLE_SCOPE_NAME:
        scope = Scope(name=name, kind=ScopeKind.TABLE, caption_pending=True)
        state.scope_stack.append(scope)
        return DtexEvent(type="table_begin", data={"name": name, "args": args})

    if marker == "@":
        return DtexEvent(type="command", data={"name": name, "args": args})

    if cfg.math_env_re.match(name):
        scope = Scope(name=name, kind=ScopeKind.MATH, is_align=name.startswith("align"))
        state.in_math = True
    else:
        scope = Scope(name=name, kind=ScopeKind.PLAIN)
    state.scope_stack.append(scope)

    return DtexEvent(type="env_begin", data={"name": name, "args": args})


def _close_all_scopes(state: DtexState) -> list[DtexEvent]:
    """
    Drain the scope stack top to bottom. A blank line never closes only
    part of the stack.
    """
    events: list[DtexEvent] = []
    while state.scope_stack:
        scope = state.scope_stack.pop()
        data: dict[str, Any] = {"name": scope.name, "scope": scope}

        if scope.kind is ScopeKind.TABLE:
            data["records"] = parse_table_rows(scope.rows)
        elif scope.kind is ScopeKind.MATH:
            state.in_math = False

        events.append(DtexEvent(type="scope_end", data=data))
    return events


def _handle_content_line(line: str, state: DtexState) -> DtexEvent:
    text, state.in_math = scan_inline(line, in_math=state.in_math, in_align=state.in_align)

    table = state.active_table
    if table is not None:
        if table.caption_pending:
            table.caption_pending = False
            return DtexEvent(type="table_caption", data={"caption": text})
        table.rows.append(text)
        return DtexEvent(type="table_row", data={"row": text})

    if state.in_align:
        text += LINE_CONTINUATION
    return DtexEvent(type="content", data={"text": text})


def parse_dtex_line(
    line: str,
    cfg: DtexConfig,
    state: DtexState,
) -> tuple[DtexState, list[DtexEvent]]:
    state.line_no += 1
    events: list[DtexEvent] = []

    try:
        front_matter_event = _handle_front_matter_if_applicable(line, cfg, state)
        if front_matter_event:
            events.append(front_matter_event)
            return state, events

        # No display math shorthand, anywhere in the body
        if "$$" in line:
            raise UnsupportedIdentifierError("$$")

        decorator_event = _handle_decorator_if_present(line, cfg, state)
        if decorator_event:
            events.append(decorator_event)
        elif cfg.blank_line_re.match(line):
            events.extend(_close_all_scopes(state))
        else:
            events.append(_handle_content_line(line, state))
    except DtexParseError as err:
        if err.line_no is None:
            err.line_no = state.line_no
        raise

    return state, events


def finish_dtex(state: DtexState) -> list[DtexEvent]:
    """
    End of input: close whatever is still open.
    """
    if state.is_in_front_matter:
        raise MetadataError("front matter is not terminated by a '---' line")
    return _close_all_scopes(state)
