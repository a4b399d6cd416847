"""
cli.py
Strip dimension suffixes from original attachment file names.

File names ending in dimensions, e.g. example-150x150.jpg, look exactly like
the derived sizes the media library generates itself. Uploaded as originals,
they stop image services from rewriting post content reliably and break
srcset/sizes generation. Only media uploaded before the platform started
rejecting such names is affected.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Optional

from .command import DEFAULT_INCLUDE_COLUMNS, Options, run
from .config import ConfigError, load_wp_config
from .db import Database
from .output import error, info


# ---------- CLI ----------
def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="rename-images",
        description="Copy media files named like 'photo-150x150.jpg' to 'photo.jpg', regenerate sizes, "
                    "and optionally rewrite references in the database.",
    )
    p.add_argument("--path", type=Path, default=Path("."), help="WordPress root containing wp-config.php (default: .).")
    p.add_argument("--network", action="store_true", help="Run the migration for all sites on the network.")
    p.add_argument("--sites-page", type=int, default=0,
                   help="With more than 100 sites, process the next 100 by incrementing this.")
    p.add_argument("--blog-id", type=int, default=1, help="Site to process when not using --network (default: 1).")
    p.add_argument("--search-replace", action="store_true", help="Rewrite references to the old names in the database.")
    p.add_argument("--tables", type=str, default=None,
                   help="Comma separated tables to search & replace on. Wildcards are supported. "
                        "Default: <prefix>*posts,<prefix>*postmeta.")
    p.add_argument("--include-columns", type=str, default=DEFAULT_INCLUDE_COLUMNS,
                   help=f"Columns to search & replace on (default: {DEFAULT_INCLUDE_COLUMNS}).")
    p.add_argument("--dry-run", action="store_true", help="Show what would be renamed without changing anything.")
    p.add_argument("--error-log", type=Path, default=Path("ERRORS.txt"), help="Where warnings and errors are collected.")
    p.add_argument("--no-progress", action="store_true", help="Disable progress UI.")
    p.add_argument("--db-host", type=str, default=None, help="Override DB_HOST.")
    p.add_argument("--db-name", type=str, default=None, help="Override DB_NAME.")
    p.add_argument("--db-user", type=str, default=None, help="Override DB_USER.")
    p.add_argument("--db-password", type=str, default=None, help="Override DB_PASSWORD.")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    if args.sites_page < 0:
        raise SystemExit("--sites-page must be 0 or greater")

    overrides = {
        "DB_HOST": args.db_host,
        "DB_NAME": args.db_name,
        "DB_USER": args.db_user,
        "DB_PASSWORD": args.db_password,
    }
    try:
        config = load_wp_config(args.path, overrides=overrides)
        db = Database.connect(config)
    except ConfigError as e:
        error(str(e), args.error_log)
        raise SystemExit(1) from e

    opts = Options(
        network=args.network,
        sites_page=args.sites_page,
        blog_id=args.blog_id,
        search_replace=args.search_replace,
        tables=args.tables,
        include_columns=args.include_columns,
        dry_run=args.dry_run,
        progress=not args.no_progress,
        error_log=args.error_log,
    )
    if args.dry_run:
        info("--dry-run enabled, no files or rows will be changed.")

    with db:
        summary = run(db, config, opts)

    info(
        f"\nSites: {summary.sites}  Found: {summary.found}  Renamed: {summary.renamed}  "
        f"Failed: {summary.failed}  Rows updated: {summary.replacements}"
    )
    if summary.failed:
        info(f"Check {args.error_log} for details.")


if __name__ == "__main__":
    main()
