"""
accounts/images.py -- Profile image filenames and blob storage.

The account record only stores the generated filename. Bytes live in an
ImageStore keyed by that name; DirectoryImageStore is the on-disk
implementation the HTTP layer uses.

Filename scheme: original stem with all whitespace removed, then a
uuid4().hex suffix (122 random bits), then the original extension.
E.g. "my photo.png" -> "myphoto3f2b...c9.png". Directory components in the
client-supplied name are discarded before anything else.
"""

from __future__ import annotations

import re
import uuid
from pathlib import Path, PurePosixPath

from core.errors import ValidationError

_WHITESPACE = re.compile(r"\s+")


def generate_image_filename(original_name: str) -> str:
    """Return a collision-resistant storage name derived from the uploaded file's name."""
    base = PurePosixPath((original_name or "").replace("\\", "/")).name
    path = PurePosixPath(base)
    stem = _WHITESPACE.sub("", path.stem)
    suffix = _WHITESPACE.sub("", path.suffix)
    return f"{stem}{uuid.uuid4().hex}{suffix}"


class DirectoryImageStore:
    """Store image blobs as files in one directory, keyed by generated filename."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, filename: str) -> Path:
        """Return the path a filename maps to. Raises ValidationError if it escapes the root."""
        if not filename or filename in (".", ".."):
            raise ValidationError("Invalid image filename.")
        path = (self.root / filename).resolve()
        if path.parent != self.root:
            raise ValidationError("Invalid image filename.")
        return path

    def save(self, filename: str, data: bytes) -> Path:
        path = self.path_for(filename)
        path.write_bytes(data)
        return path

    def exists(self, filename: str) -> bool:
        return self.path_for(filename).is_file()

    def delete(self, filename: str) -> None:
        """Remove a stored image. A name that is already gone is not an error."""
        self.path_for(filename).unlink(missing_ok=True)
