from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional


class ConfigError(Exception):
    """Raised when the WordPress install or its database settings can't be resolved."""


# ---------- wp-config.php parsing ----------
PAT_DEFINE = re.compile(
    r"""define\s*\(\s*['"](?P<name>[A-Z_]+)['"]\s*,\s*(?P<value>'[^']*'|"[^"]*"|true|false|\d+)\s*\)""",
    re.IGNORECASE,
)
PAT_TABLE_PREFIX = re.compile(r"""^\s*\$table_prefix\s*=\s*['"](?P<prefix>[^'"]*)['"]\s*;""", re.MULTILINE)
PAT_COMMENTS = re.compile(r"/\*.*?\*/|^\s*(?://|#).*?$", re.DOTALL | re.MULTILINE)

ENV_OVERRIDES = {
    "WORDPRESS_DB_HOST": "DB_HOST",
    "WORDPRESS_DB_NAME": "DB_NAME",
    "WORDPRESS_DB_USER": "DB_USER",
    "WORDPRESS_DB_PASSWORD": "DB_PASSWORD",
}
ENV_TABLE_PREFIX = "WORDPRESS_TABLE_PREFIX"


def _php_value(raw: str) -> str | bool:
    low = raw.lower()
    if low == "true":
        return True
    if low == "false":
        return False
    if raw[:1] in ("'", '"'):
        return raw[1:-1]
    return raw


def parse_wp_config(text: str) -> tuple[Dict[str, str | bool], Optional[str]]:
    """Return the `define()` constants and the `$table_prefix` found in a wp-config.php body."""
    text = PAT_COMMENTS.sub("", text)
    constants: Dict[str, str | bool] = {}
    for m in PAT_DEFINE.finditer(text):
        constants.setdefault(m.group("name").upper(), _php_value(m.group("value")))
    m = PAT_TABLE_PREFIX.search(text)
    return constants, (m.group("prefix") if m else None)


def split_db_host(host: str) -> tuple[str, Optional[int], Optional[str]]:
    """Split DB_HOST into (host, port, socket) the way WordPress reads it."""
    if ":" not in host:
        return host or "localhost", None, None
    name, _, rest = host.partition(":")
    name = name or "localhost"
    if rest.isdigit():
        return name, int(rest), None
    return name, None, rest or None


@dataclass
class WordPressConfig:
    root: Path
    db_name: str
    db_user: str
    db_password: str = ""
    db_host: str = "localhost"
    db_charset: str = "utf8mb4"
    table_prefix: str = "wp_"
    content_dir: Optional[Path] = None
    uploads: Optional[str] = None
    multisite: bool = False
    extra: Dict[str, str | bool] = field(default_factory=dict)

    @property
    def uploads_basedir(self) -> Path:
        if self.uploads:
            return self.root / self.uploads
        content = self.content_dir or (self.root / "wp-content")
        return content / "uploads"

    def connection_args(self) -> Dict[str, object]:
        host, port, socket = split_db_host(self.db_host)
        args: Dict[str, object] = {
            "host": host,
            "database": self.db_name,
            "user": self.db_user,
            "password": self.db_password,
            "charset": self.db_charset or "utf8mb4",
        }
        if port is not None:
            args["port"] = port
        if socket:
            args["unix_socket"] = socket
        return args


def load_wp_config(
    root: Path,
    *,
    overrides: Optional[Dict[str, Optional[str]]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> WordPressConfig:
    """
    Resolve database and path settings for the install at `root`.

    Precedence: explicit `overrides` (CLI flags, keyed by constant name) >
    WORDPRESS_* environment variables > wp-config.php. WordPress also looks
    for wp-config.php one directory above the root, so do we.
    """
    env = os.environ if environ is None else environ
    root = Path(root).expanduser().resolve()

    constants: Dict[str, str | bool] = {}
    prefix: Optional[str] = None
    for candidate in (root / "wp-config.php", root.parent / "wp-config.php"):
        if candidate.is_file():
            constants, prefix = parse_wp_config(candidate.read_text(encoding="utf-8", errors="replace"))
            break

    for env_name, const in ENV_OVERRIDES.items():
        val = env.get(env_name)
        if val:
            constants[const] = val
    if env.get(ENV_TABLE_PREFIX):
        prefix = env[ENV_TABLE_PREFIX]

    for const, val in (overrides or {}).items():
        if val is not None:
            constants[const] = val

    missing = [name for name in ("DB_NAME", "DB_USER") if not constants.get(name)]
    if missing:
        raise ConfigError(
            f"Missing database settings ({', '.join(missing)}): no usable wp-config.php under {root} "
            "and no override given"
        )

    content_dir = constants.get("WP_CONTENT_DIR")
    uploads = constants.get("UPLOADS")
    return WordPressConfig(
        root=root,
        db_name=str(constants["DB_NAME"]),
        db_user=str(constants["DB_USER"]),
        db_password=str(constants.get("DB_PASSWORD") or ""),
        db_host=str(constants.get("DB_HOST") or "localhost"),
        db_charset=str(constants.get("DB_CHARSET") or "utf8mb4"),
        table_prefix=prefix if prefix is not None else "wp_",
        content_dir=Path(content_dir) if isinstance(content_dir, str) and content_dir else None,
        uploads=uploads if isinstance(uploads, str) and uploads else None,
        multisite=constants.get("MULTISITE") in (True, "1", "true"),
        extra=constants,
    )
