"""Column and row extraction from a MySQL logical dump."""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field
from pathlib import Path

from migration.common.errors import PrerequisiteError, SchemaNotFound
from migration.common.fs import read_text
from migration.common.logging import RunLog

RawRow = dict[str, "str | None"]

KEY_DEFINITION_PREFIXES = {
    "PRIMARY",
    "KEY",
    "INDEX",
    "UNIQUE",
    "CONSTRAINT",
    "FOREIGN",
    "FULLTEXT",
    "SPATIAL",
    "CHECK",
}
QUOTE_CHARS = ("'", '"')
BACKSLASH_ESCAPES = {
    "0": "\0",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "b": "\b",
    "Z": "\x1a",
}


@dataclass
class TableParse:
    table: str
    columns: tuple[str, ...]
    rows: list[RawRow] = field(default_factory=list)
    statements: int = 0
    malformed_rows: int = 0
    truncated_statements: int = 0
    column_mismatch_statements: int = 0

    def stats(self) -> dict:
        return {
            "columns": len(self.columns),
            "rows": len(self.rows),
            "statements": self.statements,
            "malformed_rows": self.malformed_rows,
            "truncated_statements": self.truncated_statements,
            "column_mismatch_statements": self.column_mismatch_statements,
        }


@dataclass
class _Field:
    raw: list[str] = field(default_factory=list)
    decoded: list[str] = field(default_factory=list)

    def value(self) -> str | None:
        raw = "".join(self.raw).strip()
        if len(raw) >= 2 and raw[0] in QUOTE_CHARS and raw[-1] == raw[0]:
            return "".join(self.decoded)
        if raw.upper() == "NULL":
            return None
        return raw

    def is_empty(self) -> bool:
        return not "".join(self.raw).strip()


def quote_sql_string(value: str, quote_char: str = "'") -> str:
    """Inverse of value decoding: wrap in quotes, doubling embedded quote chars."""
    return quote_char + value.replace(quote_char, quote_char * 2) + quote_char


def _table_name_pattern(table: str) -> str:
    return r"`?" + re.escape(table) + r"`?"


def _find_closing_paren(text: str, open_pos: int) -> int:
    depth = 0
    in_quote = False
    quote_char = ""
    idx = open_pos
    length = len(text)
    while idx < length:
        ch = text[idx]
        if in_quote:
            if ch == "\\":
                idx += 2
                continue
            if ch == quote_char:
                if idx + 1 < length and text[idx + 1] == quote_char:
                    idx += 2
                    continue
                in_quote = False
        elif ch in QUOTE_CHARS or ch == "`":
            in_quote = True
            quote_char = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return idx
        idx += 1
    return -1


def _split_top_level(body: str) -> list[str]:
    parts: list[str] = []
    current: list[str] = []
    depth = 0
    in_quote = False
    quote_char = ""
    for ch in body:
        if in_quote:
            current.append(ch)
            if ch == quote_char:
                in_quote = False
            continue
        if ch in QUOTE_CHARS or ch == "`":
            in_quote = True
            quote_char = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif ch == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(ch)
    parts.append("".join(current))
    return parts


def _definition_column_name(definition: str) -> str | None:
    definition = definition.strip()
    if not definition:
        return None
    if definition.startswith("`"):
        end = definition.find("`", 1)
        if end == -1:
            return None
        return definition[1:end]
    first = definition.split(None, 1)[0]
    if first.upper() in KEY_DEFINITION_PREFIXES:
        return None
    return first.strip('"')


def extract_columns(dump_text: str, table: str) -> tuple[str, ...]:
    pattern = re.compile(
        r"CREATE\s+TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?" + _table_name_pattern(table) + r"\s*\(",
        re.IGNORECASE,
    )
    match = pattern.search(dump_text)
    if match is None:
        raise SchemaNotFound(table)
    open_pos = match.end() - 1
    close_pos = _find_closing_paren(dump_text, open_pos)
    if close_pos == -1:
        raise SchemaNotFound(table)

    columns: list[str] = []
    for definition in _split_top_level(dump_text[open_pos + 1 : close_pos]):
        name = _definition_column_name(definition)
        if name is not None:
            columns.append(name)
    if not columns:
        raise SchemaNotFound(table)
    return tuple(columns)


def scan_values(text: str, start: int, *, backslash_escapes: bool = False) -> tuple[list[list[str | None]], int, bool]:
    """Scan a VALUES list beginning at ``start``.

    Returns the decoded rows, the position just past the terminating ``;``
    and whether the terminator was found. Rows open and close at paren depth 1;
    a value ends at a depth-1 comma or at the row's closing paren. Inside a
    quoted value a doubled quote char is one literal quote char.
    """
    rows: list[list[str | None]] = []
    fields: list[str | None] = []
    current = _Field()
    depth = 0
    in_quote = False
    quote_char = ""
    idx = start
    length = len(text)

    while idx < length:
        ch = text[idx]

        if in_quote:
            if backslash_escapes and ch == "\\" and idx + 1 < length:
                nxt = text[idx + 1]
                current.raw.append(text[idx : idx + 2])
                current.decoded.append(BACKSLASH_ESCAPES.get(nxt, nxt))
                idx += 2
                continue
            if ch == quote_char:
                if idx + 1 < length and text[idx + 1] == quote_char:
                    current.raw.append(text[idx : idx + 2])
                    current.decoded.append(ch)
                    idx += 2
                    continue
                in_quote = False
                current.raw.append(ch)
                idx += 1
                continue
            current.raw.append(ch)
            current.decoded.append(ch)
            idx += 1
            continue

        if depth == 0:
            if ch == "(":
                depth = 1
                fields = []
                current = _Field()
            elif ch == ";":
                return rows, idx + 1, True
            idx += 1
            continue

        if ch in QUOTE_CHARS:
            in_quote = True
            quote_char = ch
            current.raw.append(ch)
        elif ch == "(":
            depth += 1
            current.raw.append(ch)
        elif ch == ")":
            if depth == 1:
                if fields or not current.is_empty():
                    fields.append(current.value())
                rows.append(fields)
                current = _Field()
            else:
                current.raw.append(ch)
            depth -= 1
        elif ch == "," and depth == 1:
            fields.append(current.value())
            current = _Field()
        else:
            current.raw.append(ch)
        idx += 1

    return rows, length, False


def parse_table(
    dump_text: str,
    table: str,
    *,
    backslash_escapes: bool = False,
    log: RunLog | None = None,
) -> TableParse:
    """Parse every INSERT statement for ``table`` into rows keyed by column name.

    Rows whose value count differs from the column count are dropped and
    counted in ``malformed_rows``.
    """
    columns = extract_columns(dump_text, table)
    result = TableParse(table=table, columns=columns)
    insert_pattern = re.compile(
        r"INSERT\s+(?:IGNORE\s+)?INTO\s+" + _table_name_pattern(table) + r"\s*(?:\(([^)]*)\))?\s*VALUES\s*",
        re.IGNORECASE,
    )

    pos = 0
    while True:
        match = insert_pattern.search(dump_text, pos)
        if match is None:
            break
        statement_columns = columns
        if match.group(1):
            statement_columns = tuple(c.strip().strip("`\"") for c in match.group(1).split(","))

        rows, pos, terminated = scan_values(dump_text, match.end(), backslash_escapes=backslash_escapes)
        result.statements += 1
        if not terminated:
            result.truncated_statements += 1
            if log is not None:
                log.warning(
                    f"unterminated INSERT statement for {table}",
                    event="DUMP_TRUNCATED_STATEMENT",
                    rows_in=len(rows),
                )

        if set(statement_columns) != set(columns) or len(statement_columns) != len(columns):
            # A partial or foreign column list cannot yield a full row.
            result.column_mismatch_statements += 1
            if log is not None:
                log.warning(
                    f"dropping statement {result.statements} in {table}: column list "
                    f"{list(statement_columns)} does not match declared columns {list(columns)}",
                    event="DUMP_COLUMN_MISMATCH",
                    rows_in=len(rows),
                )
            continue

        for row_index, values in enumerate(rows):
            if len(values) != len(statement_columns):
                result.malformed_rows += 1
                if log is not None:
                    log.warning(
                        f"dropping row {row_index} of statement {result.statements} in {table}: "
                        f"{len(values)} values for {len(statement_columns)} columns",
                        event="DUMP_MALFORMED_ROW",
                    )
                continue
            by_name = dict(zip(statement_columns, values))
            result.rows.append({column: by_name[column] for column in columns})

    return result


class DumpSource:
    """Lazily reads a dump file once and caches parsed tables for the run."""

    def __init__(
        self,
        path: Path | None = None,
        *,
        text: str | None = None,
        backslash_escapes: bool = False,
        log: RunLog | None = None,
    ) -> None:
        if path is None and text is None:
            raise ValueError("DumpSource needs a path or text")
        self.path = path
        self._text = text
        self.backslash_escapes = backslash_escapes
        self.log = log
        self._tables: dict[str, TableParse] = {}
        self._lock = threading.Lock()

    @property
    def text(self) -> str:
        if self._text is None:
            if not self.path.exists():
                raise PrerequisiteError(f"Dump file not found: {self.path}")
            self._text = read_text(self.path)
        return self._text

    def table(self, name: str) -> TableParse:
        with self._lock:
            cached = self._tables.get(name)
            if cached is not None:
                return cached
            parsed = parse_table(
                self.text,
                name,
                backslash_escapes=self.backslash_escapes,
                log=self.log,
            )
            self._tables[name] = parsed
        if self.log is not None:
            self.log.event(
                f"parsed table {name}",
                event="DUMP_TABLE_PARSED",
                rows_out=len(parsed.rows),
                status="ok" if parsed.malformed_rows == 0 and parsed.column_mismatch_statements == 0 else "warning",
            )
        return parsed

    def rows(self, name: str) -> list[RawRow]:
        return self.table(name).rows

    def stats(self) -> dict[str, dict]:
        with self._lock:
            return {name: parsed.stats() for name, parsed in sorted(self._tables.items())}
