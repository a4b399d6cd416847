"""
search_replace.py
Database-wide find-and-replace that understands PHP-serialized values.

Serialized strings carry their byte length (`s:5:"hello";`), so a plain text
replace inside them corrupts the value whenever old and new differ in length.
Serialized values are decoded, rewritten recursively and re-encoded instead.
"""

from __future__ import annotations

import fnmatch
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import phpserialize

from .db import Database, escape_like, quote_identifier
from .output import warning
from .sites import Site

PAT_SERIALIZED = re.compile(r"^(?:N;|b:[01];|i:-?\d+;|d:[^;]+;|s:\d+:\".*\";|[aO]:\d+:.*[;}])$", re.DOTALL)
PAT_SITE_TABLE = re.compile(r"^\d+_")


@dataclass
class SearchReplaceReport:
    old: str
    new: str
    tables: Dict[str, int] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(self.tables.values())


# ---------- Value rewriting ----------
def is_serialized(value: str) -> bool:
    return bool(PAT_SERIALIZED.match(value.strip()))


def _replace_recursive(data: Any, old: str, new: str) -> Tuple[Any, int]:
    if isinstance(data, str):
        # Serialized data nested inside serialized data is common in options.
        if is_serialized(data):
            inner, n = replace_value(data, old, new)
            if n:
                return inner, n
        count = data.count(old)
        return (data.replace(old, new), count) if count else (data, 0)

    if isinstance(data, dict):
        total = 0
        out = {}
        for key, val in data.items():
            new_val, n = _replace_recursive(val, old, new)
            out[key] = new_val
            total += n
        return out, total

    if isinstance(data, (list, tuple)):
        items = []
        total = 0
        for val in data:
            new_val, n = _replace_recursive(val, old, new)
            items.append(new_val)
            total += n
        return type(data)(items), total

    if isinstance(data, phpserialize.phpobject):
        new_vars, n = _replace_recursive(data.__php_vars__, old, new)
        if n:
            return phpserialize.phpobject(data.__name__, new_vars), n
        return data, 0

    return data, 0


def replace_value(value: str, old: str, new: str) -> Tuple[str, int]:
    """Return (`value` with `old` replaced by `new`, number of replacements)."""
    if not old or old not in value:
        return value, 0

    if is_serialized(value):
        try:
            data = phpserialize.loads(
                value.encode("utf-8"), decode_strings=True, object_hook=phpserialize.phpobject
            )
        except ValueError:
            data = None
        else:
            new_data, n = _replace_recursive(data, old, new)
            if not n:
                return value, 0
            return phpserialize.dumps(new_data).decode("utf-8"), n

    return value.replace(old, new), value.count(old)


# ---------- Table scoping ----------
def parse_table_patterns(tables: str | List[str]) -> List[str]:
    if isinstance(tables, str):
        tables = tables.split(",")
    return [t.strip() for t in tables if t and t.strip()]


def site_tables(all_tables: List[str], base_prefix: str, site: Site) -> List[str]:
    """Tables that belong to one site: `wp_2_*` for site 2, unnumbered `wp_*` for the main site."""
    if site.blog_id > 1:
        return [t for t in all_tables if t.startswith(site.prefix)]
    return [
        t for t in all_tables
        if t.startswith(base_prefix) and not PAT_SITE_TABLE.match(t[len(base_prefix):])
    ]


def scoped_tables(
    db: Database,
    patterns: str | List[str],
    base_prefix: str,
    site: Site,
    network: bool = False,
) -> List[str]:
    all_tables = db.tables_like(base_prefix)
    candidates = all_tables if network else site_tables(all_tables, base_prefix, site)

    out: List[str] = []
    for pattern in parse_table_patterns(patterns):
        matched = [t for t in candidates if fnmatch.fnmatchcase(t, pattern)]
        for t in matched:
            if t not in out:
                out.append(t)
    return out


# ---------- Search & replace ----------
def _column_has_serialized(db: Database, table: str, column: str) -> bool:
    found = db.get_var(
        f"SELECT COUNT(*) FROM {quote_identifier(table)} WHERE {quote_identifier(column)} REGEXP %s",
        (r"^[aiO]:[1-9]",),
    )
    return bool(found)


def _replace_column_sql(db: Database, table: str, column: str, old: str, new: str) -> int:
    col = quote_identifier(column)
    return max(
        db.query(
            f"UPDATE {quote_identifier(table)} SET {col} = REPLACE({col}, %s, %s) WHERE {col} LIKE BINARY %s",
            (old, new, f"%{escape_like(old)}%"),
        ),
        0,
    )


def _replace_column_rows(db: Database, table: str, column: str, keys: List[str], old: str, new: str) -> int:
    col = quote_identifier(column)
    key_cols = ", ".join(quote_identifier(k) for k in keys)
    rows = db.get_results(
        f"SELECT {key_cols}, {col} AS `__value` FROM {quote_identifier(table)} WHERE {col} LIKE BINARY %s",
        (f"%{escape_like(old)}%",),
    )

    where = " AND ".join(f"{quote_identifier(k)} = %s" for k in keys)
    changed = 0
    for row in rows:
        value = row["__value"]
        if isinstance(value, (bytes, bytearray)):
            value = bytes(value).decode("utf-8", errors="replace")
        if not isinstance(value, str):
            continue
        new_value, n = replace_value(value, old, new)
        if not n or new_value == value:
            continue
        db.query(
            f"UPDATE {quote_identifier(table)} SET {col} = %s WHERE {where}",
            (new_value, *[row[k] for k in keys]),
        )
        changed += 1
    return changed


def search_replace(
    db: Database,
    old: str,
    new: str,
    tables: List[str],
    include_columns: str | List[str],
    *,
    precise: bool = False,
    error_log: Optional[Path] = None,
) -> SearchReplaceReport:
    """
    Replace `old` with `new` in the given columns of `tables`.

    Columns holding no serialized data are rewritten with one SQL REPLACE();
    otherwise (or with `precise`) rows are rewritten one by one through
    `replace_value`. Counts are changed rows per table. Does not commit.
    """
    report = SearchReplaceReport(old=old, new=new)
    wanted = parse_table_patterns(include_columns)
    if not old or old == new:
        return report

    for table in tables:
        keys = db.primary_keys(table)
        if not keys:
            warning(f"No primary keys for table '{table}', skipping.", error_log)
            report.skipped.append(table)
            continue

        columns = [c for c in db.columns(table) if not wanted or c in wanted]
        changed = 0
        for column in columns:
            if column in keys:
                continue
            if precise or _column_has_serialized(db, table, column):
                changed += _replace_column_rows(db, table, column, keys, old, new)
            else:
                changed += _replace_column_sql(db, table, column, old, new)
        report.tables[table] = changed

    return report
