import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pytest

from rename_images.config import WordPressConfig


class FakeDatabase:
    """
    In-memory stand-in for `rename_images.db.Database`.

    Posts, postmeta and options are plain dicts keyed by table prefix; generic
    tables (for search & replace) are {"keys": [...], "columns": [...], "rows": [...]}.
    Only the SQL shapes the package actually issues are understood.
    """

    def __init__(self) -> None:
        self.posts: Dict[tuple, Dict[str, Any]] = {}
        self.meta: Dict[tuple, str] = {}
        self.options: Dict[tuple, str] = {}
        self.blogs: List[int] = [1]
        self.tables: Dict[str, Dict[str, Any]] = {}
        self.commits = 0
        self.rollbacks = 0
        self.transactions = 0
        self.fail_on_update = False
        self.missing_tables: set = set()

    # ---------- seeding ----------
    def add_attachment(self, prefix: str, post_id: int, attached: str, *, mime: str = "image/jpeg",
                       post_type: str = "attachment", metadata: Optional[str] = None) -> None:
        self.posts[(prefix, post_id)] = {
            "ID": post_id,
            "post_type": post_type,
            "post_mime_type": mime,
            "guid": f"http://example.test/wp-content/uploads/{attached}",
        }
        self.meta[(prefix, post_id, "_wp_attached_file")] = attached
        if metadata is not None:
            self.meta[(prefix, post_id, "_wp_attachment_metadata")] = metadata

    def add_table(self, name: str, keys: List[str], columns: List[str], rows: List[Dict[str, Any]]) -> None:
        self.tables[name] = {"keys": keys, "columns": columns, "rows": rows}

    # ---------- Database API ----------
    def get_post(self, prefix: str, post_id: int) -> Optional[Dict[str, Any]]:
        return self.posts.get((prefix, post_id))

    def get_post_meta(self, prefix: str, post_id: int, key: str) -> Optional[str]:
        return self.meta.get((prefix, post_id, key))

    def update_post_meta(self, prefix: str, post_id: int, key: str, value: str) -> None:
        self.meta[(prefix, post_id, key)] = value

    def get_option(self, prefix: str, name: str, default: Any = None) -> Any:
        return self.options.get((prefix, name), default)

    def tables_like(self, prefix: str) -> List[str]:
        return [t for t in self.tables if t.startswith(prefix)]

    def columns(self, table: str) -> List[str]:
        return list(self.tables[table]["columns"])

    def primary_keys(self, table: str) -> List[str]:
        return list(self.tables[table]["keys"])

    def start_transaction(self) -> None:
        self.transactions += 1

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def get_col(self, sql: str, params: Sequence[Any] = ()) -> List[Any]:
        for table in self.missing_tables:
            if f"`{table}`" in sql:
                from mysql.connector.errors import ProgrammingError

                raise ProgrammingError(f"Table 'wordpress.{table}' doesn't exist")
        m = re.search(r"SELECT post_id FROM `([^`]+)postmeta`", sql)
        if m:
            prefix = m.group(1)
            key = params[0]
            pat = re.compile(r"-\d+x\d+\.(jpe?g|png|gif)$")
            return sorted(
                pid for (pfx, pid, k), v in self.meta.items()
                if pfx == prefix and k == key and pat.search(v)
            )
        if "SELECT blog_id FROM" in sql:
            limit, offset = params
            return sorted(self.blogs)[offset:offset + limit]
        raise AssertionError(f"unexpected get_col: {sql}")

    def get_var(self, sql: str, params: Sequence[Any] = ()) -> Any:
        m = re.search(r"FROM `([^`]+)` WHERE `([^`]+)` REGEXP", sql)
        if m:
            table, column = m.groups()
            pat = re.compile(r"^[aiO]:[1-9]")
            return sum(1 for r in self.tables[table]["rows"] if isinstance(r.get(column), str) and pat.match(r[column]))
        raise AssertionError(f"unexpected get_var: {sql}")

    def get_results(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        m = re.search(r"SELECT (.+), `([^`]+)` AS `__value` FROM `([^`]+)` WHERE", sql)
        if m:
            keys = re.findall(r"`([^`]+)`", m.group(1))
            column, table = m.group(2), m.group(3)
            needle = _unlike(params[0])
            out = []
            for r in self.tables[table]["rows"]:
                val = r.get(column)
                if isinstance(val, str) and needle in val:
                    row = {k: r[k] for k in keys}
                    row["__value"] = val
                    out.append(row)
            return out
        raise AssertionError(f"unexpected get_results: {sql}")

    def query(self, sql: str, params: Sequence[Any] = ()) -> int:
        if self.fail_on_update:
            from mysql.connector import Error

            raise Error("simulated failure")
        m = re.search(r"UPDATE `([^`]+)` SET `([^`]+)` = REPLACE", sql)
        if m:
            table, column = m.groups()
            old, new = params[0], params[1]
            n = 0
            for r in self.tables[table]["rows"]:
                val = r.get(column)
                if isinstance(val, str) and old in val:
                    r[column] = val.replace(old, new)
                    n += 1
            return n
        m = re.search(r"UPDATE `([^`]+)` SET `([^`]+)` = %s WHERE (.+)$", sql)
        if m:
            table, column = m.group(1), m.group(2)
            keys = re.findall(r"`([^`]+)` = %s", m.group(3))
            value, key_vals = params[0], params[1:]
            n = 0
            for r in self.tables[table]["rows"]:
                if all(r[k] == v for k, v in zip(keys, key_vals)):
                    r[column] = value
                    n += 1
            return n
        raise AssertionError(f"unexpected query: {sql}")


def _unlike(pattern: str) -> str:
    inner = pattern[1:-1]
    return inner.replace("\\%", "%").replace("\\_", "_").replace("\\\\", "\\")


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def wp_root(tmp_path: Path) -> Path:
    root = tmp_path / "wordpress"
    (root / "wp-content" / "uploads").mkdir(parents=True)
    return root


@pytest.fixture
def wp_config(wp_root: Path) -> WordPressConfig:
    return WordPressConfig(root=wp_root, db_name="wordpress", db_user="wp", table_prefix="wp_")
