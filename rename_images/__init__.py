"""
rename_images
Strip pixel-dimension suffixes from legacy media-library image names
(photo-150x150.jpg -> photo.jpg), regenerate derived sizes and optionally
rewrite references to the old name in the database.
"""

__version__ = "1.0.0"
