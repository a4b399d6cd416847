from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List

from .config import WordPressConfig
from .db import Database, quote_identifier

SITES_PER_PAGE = 100


@dataclass(frozen=True)
class Site:
    blog_id: int
    prefix: str
    uploads_dir: Path


def blog_prefix(base_prefix: str, blog_id: int) -> str:
    if blog_id <= 1:
        return base_prefix
    return f"{base_prefix}{blog_id}_"


def uploads_dir_for(db: Database, config: WordPressConfig, blog_id: int) -> Path:
    """Absolute uploads directory for a site; a non-empty `upload_path` option wins."""
    prefix = blog_prefix(config.table_prefix, blog_id)
    upload_path = db.get_option(prefix, "upload_path", "")
    if upload_path and str(upload_path).strip() not in ("", "wp-content/uploads"):
        p = Path(str(upload_path).strip())
        return p if p.is_absolute() else config.root / p
    base = config.uploads_basedir
    if blog_id > 1:
        return base / "sites" / str(blog_id)
    return base


def make_site(db: Database, config: WordPressConfig, blog_id: int) -> Site:
    return Site(
        blog_id=blog_id,
        prefix=blog_prefix(config.table_prefix, blog_id),
        uploads_dir=uploads_dir_for(db, config, blog_id),
    )


def network_site_ids(db: Database, base_prefix: str, sites_page: int = 0) -> List[int]:
    offset = max(sites_page, 0) * SITES_PER_PAGE
    ids = db.get_col(
        f"SELECT blog_id FROM {quote_identifier(base_prefix + 'blogs')} ORDER BY blog_id ASC LIMIT %s OFFSET %s",
        (SITES_PER_PAGE, offset),
    )
    return [int(i) for i in ids]


def current_site_ids(
    db: Database,
    config: WordPressConfig,
    *,
    network: bool = False,
    sites_page: int = 0,
    blog_id: int = 1,
) -> List[int]:
    if not network:
        return [blog_id]
    return network_site_ids(db, config.table_prefix, sites_page)


def current_sites(
    db: Database,
    config: WordPressConfig,
    *,
    network: bool = False,
    sites_page: int = 0,
    blog_id: int = 1,
) -> List[Site]:
    ids = current_site_ids(db, config, network=network, sites_page=sites_page, blog_id=blog_id)
    return [make_site(db, config, i) for i in ids]
