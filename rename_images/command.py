from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from mysql.connector import Error
from rich.progress import (
    BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn, TimeRemainingColumn
)

from .config import WordPressConfig
from .db import Database
from .media import RenameError, RenameResult, find_candidates, rename_file
from .output import console, error, info, log, success
from .search_replace import scoped_tables, search_replace
from .sites import Site, current_site_ids, make_site

DEFAULT_INCLUDE_COLUMNS = "post_content,post_excerpt,meta_value"


def default_tables(base_prefix: str) -> str:
    return f"{base_prefix}*posts,{base_prefix}*postmeta"


@dataclass
class Options:
    network: bool = False
    sites_page: int = 0
    blog_id: int = 1
    search_replace: bool = False
    tables: Optional[str] = None
    include_columns: str = DEFAULT_INCLUDE_COLUMNS
    dry_run: bool = False
    progress: bool = True
    error_log: Optional[Path] = None


@dataclass
class Summary:
    sites: int = 0
    found: int = 0
    renamed: int = 0
    failed: int = 0
    replacements: int = 0
    results: List[RenameResult] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "sites": self.sites,
            "found": self.found,
            "renamed": self.renamed,
            "failed": self.failed,
            "replacements": self.replacements,
        }


def strip_extension(file: str) -> str:
    """`2019/01/photo-150x150.jpg` -> `2019/01/photo-150x150`, the form references are matched in."""
    ext = Path(file).suffix
    return file[: -len(ext)] if ext else file


def replace_references(
    db: Database,
    result: RenameResult,
    site: Site,
    config: WordPressConfig,
    opts: Options,
    summary: Summary,
) -> None:
    old = strip_extension(str(result.old.get("file", "")))
    new = strip_extension(str(result.new.get("file", "")))
    success(
        f"Renamed attachment {result.attachment_id} successfully, performing search & replace: {old} -> {new}"
    )
    if opts.dry_run:
        return

    # One transaction per image.
    try:
        tables = scoped_tables(
            db, opts.tables or default_tables(config.table_prefix), config.table_prefix, site, opts.network
        )
        db.start_transaction()
        report = search_replace(db, old, new, tables, opts.include_columns, error_log=opts.error_log)
    except Error as e:
        db.rollback()
        # The file copy stands, but its references were not rewritten.
        summary.renamed -= 1
        summary.failed += 1
        error(f"Search & replace failed for attachment {result.attachment_id}, rolled back: {e}", opts.error_log)
        return
    db.commit()
    summary.replacements += report.total


def handle_attachment(
    db: Database,
    site: Site,
    attachment_id: int,
    config: WordPressConfig,
    opts: Options,
    summary: Summary,
) -> None:
    try:
        result = rename_file(db, site, attachment_id, dry_run=opts.dry_run)
    except RenameError as e:
        summary.failed += 1
        error(str(e), opts.error_log)
        return
    except Error as e:
        db.rollback()
        summary.failed += 1
        error(f"Database error renaming attachment {attachment_id}: {e}", opts.error_log)
        return

    summary.renamed += 1
    summary.results.append(result)
    for note in result.notes:
        log(f"[RENAME] Attachment {attachment_id}: {note}", opts.error_log)
    if opts.dry_run:
        log(f"[RENAME] {result.old_path} -> {result.new_path} (dry run)")

    if not opts.search_replace:
        success(
            f"Renamed attachment {attachment_id} successfully: {result.old.get('file')} -> {result.new.get('file')}"
        )
        return

    replace_references(db, result, site, config, opts, summary)


def run(db: Database, config: WordPressConfig, opts: Options) -> Summary:
    summary = Summary()
    site_ids = current_site_ids(
        db, config, network=opts.network, sites_page=opts.sites_page, blog_id=opts.blog_id
    )

    progress: Optional[Progress] = None
    if opts.progress:
        progress = Progress(
            TextColumn("{task.description}"),
            BarColumn(bar_width=None),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TimeElapsedColumn(),
            TextColumn("•"),
            TimeRemainingColumn(),
            SpinnerColumn(),
            console=console,
            transient=True,
        )
        progress.start()

    try:
        for blog_id in site_ids:
            if opts.network:
                info(f"Processing site {blog_id}...")

            try:
                site = make_site(db, config, blog_id)
                attachments = find_candidates(db, site)
            except Error as e:
                error(f"Site {blog_id} skipped: {e}", opts.error_log)
                continue
            summary.sites += 1
            summary.found += len(attachments)
            info(f"Renaming {len(attachments)} attachments...")

            task_id = None
            if progress is not None:
                task_id = progress.add_task(f"[bold]Site {site.blog_id}[/]", total=len(attachments))

            for attachment_id in attachments:
                handle_attachment(db, site, attachment_id, config, opts, summary)
                if progress is not None and task_id is not None:
                    progress.update(task_id, advance=1)
    finally:
        if progress is not None:
            progress.stop()

    success("Done!")
    return summary
