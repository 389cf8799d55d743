# Overview: Local object storage for product images; upload(path, file) -> public URL.

from __future__ import annotations

import os

from flask import current_app
from werkzeug.utils import secure_filename

from ..validation import ValidationError

ALLOWED_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "webp", "gif"}


def storage_root() -> str:
    root = current_app.config.get("UPLOAD_FOLDER") or "product-images"
    if not os.path.isabs(root):
        root = os.path.join(current_app.instance_path, root)
    return root


def _safe_relative_path(path: str) -> str:
    parts = [secure_filename(p) for p in str(path).replace("\\", "/").split("/")]
    parts = [p for p in parts if p]
    if not parts:
        raise ValidationError("Invalid storage path")
    return "/".join(parts)


def public_url(path: str) -> str:
    base = (current_app.config.get("MEDIA_BASE_URL") or "/media/product-images").rstrip("/")
    return f"{base}/{path}"


def upload(path: str, file) -> str:
    """
    Store file under path and return its public URL.

    file may be a werkzeug FileStorage (request.files) or raw bytes.
    Existing files are never overwritten.
    """
    rel = _safe_relative_path(path)
    dest = os.path.join(storage_root(), *rel.split("/"))
    if os.path.exists(dest):
        raise ValidationError(f"A file already exists at {rel}")
    os.makedirs(os.path.dirname(dest), exist_ok=True)

    if isinstance(file, (bytes, bytearray)):
        with open(dest, "wb") as fh:
            fh.write(file)
    else:
        file.save(dest)

    current_app.logger.info("Stored %s", rel)
    return public_url(rel)


def remove(path: str) -> bool:
    """Delete a stored file. False when there was nothing to delete."""
    rel = _safe_relative_path(path)
    dest = os.path.join(storage_root(), *rel.split("/"))
    if not os.path.exists(dest):
        return False
    os.remove(dest)
    current_app.logger.info("Removed %s", rel)
    return True


def image_extension(filename: str | None) -> str:
    ext = (filename or "").rsplit(".", 1)[-1].lower() if "." in (filename or "") else ""
    if ext not in ALLOWED_IMAGE_EXTENSIONS:
        raise ValidationError(
            f"Image must be one of: {', '.join(sorted(ALLOWED_IMAGE_EXTENSIONS))}"
        )
    return ext
