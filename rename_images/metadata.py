"""
metadata.py
Regenerate derived image sizes and the attachment metadata array for a file.

Size math mirrors the platform's own resize rules so regenerated names
(`photo-300x200.jpg`) match what the platform would have produced itself.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from PIL import ExifTags, Image, UnidentifiedImageError

from .db import Database

MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".jpe": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}
JPEG_QUALITY = 82


class MetadataError(Exception):
    """Raised when an image can't be read or a derived size can't be written."""


@dataclass(frozen=True)
class ImageSize:
    name: str
    width: int
    height: int
    crop: bool = False


DEFAULT_SIZES: List[ImageSize] = [
    ImageSize("thumbnail", 150, 150, True),
    ImageSize("medium", 300, 300),
    ImageSize("medium_large", 768, 0),
    ImageSize("large", 1024, 1024),
    ImageSize("1536x1536", 1536, 1536),
    ImageSize("2048x2048", 2048, 2048),
]


def _int_option(value: Any, default: int) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def registered_sizes(db: Database, prefix: str) -> List[ImageSize]:
    """Image sizes configured for a site, read from its options table."""
    sizes: List[ImageSize] = []
    for size in DEFAULT_SIZES:
        if size.name in ("1536x1536", "2048x2048"):
            sizes.append(size)
            continue
        w = _int_option(db.get_option(prefix, f"{size.name}_size_w"), size.width)
        h = _int_option(db.get_option(prefix, f"{size.name}_size_h"), size.height)
        crop = size.crop
        if size.name == "thumbnail":
            crop = str(db.get_option(prefix, "thumbnail_crop", "1")).strip() not in ("", "0")
        if w or h:
            sizes.append(ImageSize(size.name, w, h, crop))
    return sizes


# ---------- Dimension math ----------
def _round(x: float) -> int:
    # Half away from zero, as PHP rounds.
    return int(math.floor(x + 0.5))


def constrain_dimensions(cur_w: int, cur_h: int, max_w: int = 0, max_h: int = 0) -> Tuple[int, int]:
    if not max_w and not max_h:
        return cur_w, cur_h

    width_ratio = height_ratio = 1.0
    if max_w > 0 and cur_w > 0 and cur_w > max_w:
        width_ratio = max_w / cur_w
    if max_h > 0 and cur_h > 0 and cur_h > max_h:
        height_ratio = max_h / cur_h

    smaller = min(width_ratio, height_ratio)
    larger = max(width_ratio, height_ratio)
    if _round(cur_w * larger) > max_w or _round(cur_h * larger) > max_h:
        ratio = smaller
    else:
        ratio = larger

    return max(1, _round(cur_w * ratio)), max(1, _round(cur_h * ratio))


def resize_dimensions(
    orig_w: int, orig_h: int, dest_w: int, dest_h: int, crop: bool = False
) -> Optional[Tuple[int, int, int, int, int, int]]:
    """
    Output size and source crop box for a derived size.

    Returns (new_w, new_h, src_x, src_y, src_w, src_h), or None when the
    image is already at or below the requested size. A zero destination
    dimension is unbounded.
    """
    if orig_w <= 0 or orig_h <= 0:
        return None
    if dest_w <= 0 and dest_h <= 0:
        return None

    if crop:
        aspect = orig_w / orig_h
        new_w = min(dest_w, orig_w)
        new_h = min(dest_h, orig_h)
        if not new_w:
            new_w = _round(new_h * aspect)
        if not new_h:
            new_h = _round(new_w / aspect)
        size_ratio = max(new_w / orig_w, new_h / orig_h)
        crop_w = _round(new_w / size_ratio)
        crop_h = _round(new_h / size_ratio)
        s_x = (orig_w - crop_w) // 2
        s_y = (orig_h - crop_h) // 2
    else:
        crop_w, crop_h = orig_w, orig_h
        s_x = s_y = 0
        new_w, new_h = constrain_dimensions(orig_w, orig_h, dest_w, dest_h)

    if new_w >= orig_w and new_h >= orig_h:
        return None

    return int(new_w), int(new_h), int(s_x), int(s_y), int(crop_w), int(crop_h)


# ---------- image_meta ----------
def _ratio(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError, ZeroDivisionError):
        return 0.0


def _fmt_number(value: float) -> str:
    return f"{value:g}" if value else "0"


def read_image_meta(img: Image.Image) -> Dict[str, Any]:
    meta: Dict[str, Any] = {
        "aperture": "0",
        "credit": "",
        "camera": "",
        "caption": "",
        "created_timestamp": "0",
        "copyright": "",
        "focal_length": "0",
        "iso": "0",
        "shutter_speed": "0",
        "title": "",
        "orientation": "0",
        "keywords": [],
    }
    try:
        exif = img.getexif()
    except Exception:
        return meta
    if not exif:
        return meta

    base = ExifTags.Base
    detail = exif.get_ifd(ExifTags.IFD.Exif)

    meta["camera"] = str(exif.get(base.Model, "") or "").strip()
    meta["credit"] = str(exif.get(base.Artist, "") or "").strip()
    meta["copyright"] = str(exif.get(base.Copyright, "") or "").strip()
    description = str(exif.get(base.ImageDescription, "") or "").strip()
    if description:
        # Short descriptions are treated as titles, long ones as captions.
        if len(description) < 80:
            meta["title"] = description
        else:
            meta["caption"] = description
    meta["orientation"] = str(exif.get(base.Orientation, 0) or 0)

    meta["aperture"] = _fmt_number(round(_ratio(detail.get(base.FNumber)), 2))
    meta["focal_length"] = _fmt_number(_ratio(detail.get(base.FocalLength)))
    meta["shutter_speed"] = _fmt_number(_ratio(detail.get(base.ExposureTime)))
    iso = detail.get(base.ISOSpeedRatings)
    if isinstance(iso, (tuple, list)):
        iso = iso[0] if iso else 0
    meta["iso"] = str(iso or 0)

    taken = detail.get(base.DateTimeOriginal) or exif.get(base.DateTime)
    if taken:
        try:
            meta["created_timestamp"] = str(int(datetime.strptime(str(taken).strip(), "%Y:%m:%d %H:%M:%S").timestamp()))
        except ValueError:
            pass
    return meta


# ---------- Generation ----------
def _save_resized(img: Image.Image, box: Tuple[int, int, int, int, int, int], dest: Path, fmt: Optional[str]) -> None:
    new_w, new_h, s_x, s_y, crop_w, crop_h = box
    out = img.crop((s_x, s_y, s_x + crop_w, s_y + crop_h)).resize((new_w, new_h), Image.LANCZOS)
    if fmt == "JPEG":
        if out.mode not in ("RGB", "L"):
            out = out.convert("RGB")
        out.save(dest, format=fmt, quality=JPEG_QUALITY)
    elif fmt:
        out.save(dest, format=fmt)
    else:
        out.save(dest)


def relative_upload_path(path: Path, uploads_dir: Path) -> str:
    try:
        return Path(path).resolve().relative_to(Path(uploads_dir).resolve()).as_posix()
    except ValueError:
        return Path(path).as_posix()


def generate_attachment_metadata(path: Path, uploads_dir: Path, sizes: List[ImageSize]) -> Dict[str, Any]:
    """
    Build the attachment metadata array for `path`, writing each derived size
    beside it as `{stem}-{w}x{h}{ext}`. Sizes that resolve to the same
    dimensions share one file.
    """
    path = Path(path)
    ext = path.suffix
    mime = MIME_TYPES.get(ext.lower(), "image/jpeg")
    try:
        with Image.open(path) as img:
            img.load()
            width, height = img.size
            fmt = img.format
            image_meta = read_image_meta(img)

            generated: Dict[Tuple[int, int], Dict[str, Any]] = {}
            out_sizes: Dict[str, Dict[str, Any]] = {}
            for size in sizes:
                box = resize_dimensions(width, height, size.width, size.height, size.crop)
                if box is None:
                    continue
                dims = (box[0], box[1])
                if dims not in generated:
                    dest = path.with_name(f"{path.stem}-{box[0]}x{box[1]}{ext}")
                    _save_resized(img, box, dest, fmt)
                    generated[dims] = {
                        "file": dest.name,
                        "width": box[0],
                        "height": box[1],
                        "mime-type": mime,
                        "filesize": os.path.getsize(dest),
                    }
                out_sizes[size.name] = dict(generated[dims])
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise MetadataError(f"{path}: {e}") from e

    return {
        "width": width,
        "height": height,
        "file": relative_upload_path(path, uploads_dir),
        "filesize": os.path.getsize(path),
        "sizes": out_sizes,
        "image_meta": image_meta,
    }
