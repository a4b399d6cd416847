from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import mysql.connector
from mysql.connector import Error

from .config import ConfigError, WordPressConfig


def quote_identifier(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class Database:
    """
    Thin wrapper over a mysql.connector connection.

    Helper names follow the platform's own database layer (get_col, get_var,
    get_row, query) so the migration reads like the platform code it replaces.
    Autocommit is off; callers commit or roll back explicitly.
    """

    def __init__(self, connection: Any) -> None:
        self._conn = connection

    @classmethod
    def connect(cls, config: WordPressConfig) -> "Database":
        try:
            conn = mysql.connector.connect(
                **config.connection_args(),
                autocommit=False,
                collation="utf8mb4_unicode_ci",
            )
        except Error as e:
            raise ConfigError(f"Database connection failed: {e}") from e
        return cls(conn)

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---------- Queries ----------
    def query(self, sql: str, params: Sequence[Any] = ()) -> int:
        cursor = self._conn.cursor()
        try:
            cursor.execute(sql, tuple(params) or None)
            return cursor.rowcount
        finally:
            cursor.close()

    def get_results(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        cursor = self._conn.cursor(dictionary=True)
        try:
            cursor.execute(sql, tuple(params) or None)
            return list(cursor.fetchall())
        finally:
            cursor.close()

    def get_row(self, sql: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        rows = self.get_results(sql, params)
        return rows[0] if rows else None

    def get_col(self, sql: str, params: Sequence[Any] = ()) -> List[Any]:
        cursor = self._conn.cursor()
        try:
            cursor.execute(sql, tuple(params) or None)
            return [row[0] for row in cursor.fetchall()]
        finally:
            cursor.close()

    def get_var(self, sql: str, params: Sequence[Any] = ()) -> Any:
        col = self.get_col(sql, params)
        return col[0] if col else None

    # ---------- Transactions ----------
    def start_transaction(self) -> None:
        if self._conn.in_transaction:
            self._conn.commit()
        self._conn.start_transaction()

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        try:
            self._conn.close()
        except Error:
            pass

    # ---------- Schema ----------
    def tables_like(self, prefix: str) -> List[str]:
        return [str(t) for t in self.get_col("SHOW TABLES LIKE %s", (escape_like(prefix) + "%",))]

    def columns(self, table: str) -> List[str]:
        return [str(c) for c in self.get_col(f"SHOW COLUMNS FROM {quote_identifier(table)}")]

    def primary_keys(self, table: str) -> List[str]:
        rows = self.get_results(f"SHOW KEYS FROM {quote_identifier(table)} WHERE Key_name = 'PRIMARY'")
        rows.sort(key=lambda r: int(r.get("Seq_in_index") or 0))
        return [str(r["Column_name"]) for r in rows]

    # ---------- Posts / postmeta ----------
    def get_post(self, prefix: str, post_id: int) -> Optional[Dict[str, Any]]:
        return self.get_row(
            f"SELECT ID, post_type, post_mime_type, guid FROM {quote_identifier(prefix + 'posts')} WHERE ID = %s",
            (post_id,),
        )

    def get_post_meta(self, prefix: str, post_id: int, key: str) -> Optional[str]:
        val = self.get_var(
            f"SELECT meta_value FROM {quote_identifier(prefix + 'postmeta')} "
            "WHERE post_id = %s AND meta_key = %s ORDER BY meta_id ASC LIMIT 1",
            (post_id, key),
        )
        if isinstance(val, (bytes, bytearray)):
            val = bytes(val).decode("utf-8", errors="replace")
        return val

    def update_post_meta(self, prefix: str, post_id: int, key: str, value: str) -> None:
        table = quote_identifier(prefix + "postmeta")
        existing = self.get_var(
            f"SELECT COUNT(*) FROM {table} WHERE post_id = %s AND meta_key = %s", (post_id, key)
        )
        if existing:
            self.query(
                f"UPDATE {table} SET meta_value = %s WHERE post_id = %s AND meta_key = %s",
                (value, post_id, key),
            )
        else:
            self.query(
                f"INSERT INTO {table} (post_id, meta_key, meta_value) VALUES (%s, %s, %s)",
                (post_id, key, value),
            )

    def get_option(self, prefix: str, name: str, default: Any = None) -> Any:
        val = self.get_var(
            f"SELECT option_value FROM {quote_identifier(prefix + 'options')} WHERE option_name = %s LIMIT 1",
            (name,),
        )
        if isinstance(val, (bytes, bytearray)):
            val = bytes(val).decode("utf-8", errors="replace")
        return default if val is None else val
