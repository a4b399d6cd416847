from __future__ import annotations

import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

import phpserialize

from .db import Database, quote_identifier
from .metadata import MetadataError, generate_attachment_metadata, registered_sizes, relative_upload_path
from .sites import Site

ATTACHED_FILE_KEY = "_wp_attached_file"
METADATA_KEY = "_wp_attachment_metadata"

# Dimension suffix as found by the database (MySQL REGEXP) and when renaming.
SQL_DIMENSION_PATTERN = r"-[[:digit:]]+x[[:digit:]]+\.(jpe?g|png|gif)$"
DIMENSION_SUFFIX = re.compile(r"-\d+x\d+\.(jpe?g|png|gif)$")
IMAGE_EXTS = {".jpg", ".jpeg", ".jpe", ".gif", ".png", ".webp", ".bmp", ".tif", ".tiff", ".ico", ".heic"}


class RenameError(Exception):
    """A single attachment could not be renamed; the run carries on with the next one."""


@dataclass
class RenameResult:
    attachment_id: int
    old: Dict[str, Any]
    new: Dict[str, Any]
    old_path: Path
    new_path: Path
    dry_run: bool = False
    notes: List[str] = field(default_factory=list)


@dataclass
class PlannedRename:
    attachment_id: int
    src: Path
    dst: Path
    notes: List[str] = field(default_factory=list)


# ---------- Helpers ----------
def strip_dimensions(name: str) -> str:
    """`photo-150x150.jpg` -> `photo.jpg`; names without the suffix come back unchanged."""
    return DIMENSION_SUFFIX.sub(r".\1", name)


def unique_filename(directory: Path, filename: str) -> str:
    """
    First free name in `directory`: `name.ext`, then `name-1.ext`, `name-2.ext`, ...
    Comparison ignores case so two files differing only by case never collide
    on case-insensitive filesystems.
    """
    base = Path(filename)
    stem, ext = base.stem, base.suffix
    taken = {p.name.lower() for p in directory.iterdir()} if directory.is_dir() else set()
    candidate = filename
    n = 1
    while candidate.lower() in taken:
        candidate = f"{stem}-{n}{ext}"
        n += 1
    return candidate


def load_metadata(raw: Any) -> Dict[str, Any]:
    if not raw:
        return {}
    if isinstance(raw, str):
        raw = raw.encode("utf-8")
    try:
        data = phpserialize.loads(raw, decode_strings=True)
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def dump_metadata(meta: Dict[str, Any]) -> str:
    return phpserialize.dumps(meta).decode("utf-8")


def is_image(post: Dict[str, Any], attached: str) -> bool:
    mime = str(post.get("post_mime_type") or "")
    if mime.startswith("image/"):
        return True
    return Path(attached).suffix.lower() in IMAGE_EXTS


def attached_file_path(site: Site, attached: str) -> Path:
    p = Path(attached)
    return p if p.is_absolute() else site.uploads_dir / p


# ---------- Discovery ----------
def find_candidates(db: Database, site: Site) -> List[int]:
    """Attachment ids whose stored file name still ends in a dimension suffix."""
    ids = db.get_col(
        f"SELECT post_id FROM {quote_identifier(site.prefix + 'postmeta')} "
        "WHERE meta_key = %s AND meta_value REGEXP %s ORDER BY post_id ASC",
        (ATTACHED_FILE_KEY, SQL_DIMENSION_PATTERN),
    )
    return [int(i) for i in ids]


# ---------- Rename ----------
def plan_rename(db: Database, site: Site, attachment_id: int) -> PlannedRename:
    post = db.get_post(site.prefix, attachment_id)
    if not post:
        raise RenameError(f"Attachment ID {attachment_id} does not exist")

    attached = db.get_post_meta(site.prefix, attachment_id, ATTACHED_FILE_KEY) or ""
    if post.get("post_type") != "attachment" or not is_image(post, attached):
        raise RenameError(f"Attachment ID {attachment_id} is not an image")

    src = attached_file_path(site, attached)
    new_name = strip_dimensions(src.name)
    if new_name == src.name:
        raise RenameError(f"{src} does not need to be renamed")

    dst = src.parent / unique_filename(src.parent, new_name)
    plan = PlannedRename(attachment_id=attachment_id, src=src, dst=dst)
    if dst.name != new_name:
        plan.notes.append(f"{new_name} already exists, using {dst.name}")
    return plan


def rename_file(db: Database, site: Site, attachment_id: int, *, dry_run: bool = False) -> RenameResult:
    """
    Copy an attachment's file to its dimension-free name and repoint the attachment at it.

    The old file and its derived sizes are left in place so anything still
    linking to them keeps working. Returns the old and new metadata arrays.
    """
    plan = plan_rename(db, site, attachment_id)
    src, dst = plan.src, plan.dst

    old_meta = load_metadata(db.get_post_meta(site.prefix, attachment_id, METADATA_KEY))
    old_meta.setdefault("file", relative_upload_path(src, site.uploads_dir))

    if dry_run:
        return RenameResult(
            attachment_id=attachment_id,
            old=old_meta,
            new={"file": relative_upload_path(dst, site.uploads_dir)},
            old_path=src,
            new_path=dst,
            dry_run=True,
            notes=plan.notes,
        )

    try:
        shutil.copy2(src, dst)
    except OSError as e:
        raise RenameError(f"{src} could not be copied to {dst}") from e

    try:
        new_meta = generate_attachment_metadata(dst, site.uploads_dir, registered_sizes(db, site.prefix))
    except MetadataError as e:
        raise RenameError(f"Could not generate new attachment metadata for attachment ID {attachment_id}") from e
    if not new_meta:
        raise RenameError(f"Could not generate new attachment metadata for attachment ID {attachment_id}")

    db.update_post_meta(site.prefix, attachment_id, METADATA_KEY, dump_metadata(new_meta))
    db.update_post_meta(site.prefix, attachment_id, ATTACHED_FILE_KEY, relative_upload_path(dst, site.uploads_dir))
    db.commit()

    return RenameResult(
        attachment_id=attachment_id,
        old=old_meta,
        new=new_meta,
        old_path=src,
        new_path=dst,
        notes=plan.notes,
    )
