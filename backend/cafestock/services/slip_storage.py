# Overview: Disk storage for uploaded payment slips.

from __future__ import annotations

import os
import time

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from ..validation import NotFoundError, ValidationError

ALLOWED_SLIP_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp", "pdf"}


def slip_dir() -> str:
    path = current_app.config["SLIP_UPLOAD_DIR"]
    if not os.path.isabs(path):
        path = os.path.join(current_app.instance_path, path)
    os.makedirs(path, exist_ok=True)
    return path


def save_slip(file: FileStorage) -> str:
    """
    Write an uploaded slip to SLIP_UPLOAD_DIR and return its absolute path.

    Files are named <epoch ms>-<sanitized original name>. The write happens
    before the payment row exists; a later DB failure leaves the file behind.
    """
    original = secure_filename(file.filename or "") or "slip"
    ext = original.rsplit(".", 1)[-1].lower() if "." in original else ""
    if ext not in ALLOWED_SLIP_EXTENSIONS:
        raise ValidationError(
            f"Slip must be one of: {', '.join(sorted(ALLOWED_SLIP_EXTENSIONS))}"
        )

    stamp = int(time.time() * 1000)
    path = os.path.join(slip_dir(), f"{stamp}-{original}")
    file.save(path)
    return path


def resolve_slip(slip_path: str | None) -> str:
    """Return a stored slip path that is still inside the slip directory."""
    if not slip_path:
        raise NotFoundError("Slip not found")
    base = os.path.realpath(slip_dir())
    real = os.path.realpath(slip_path)
    if os.path.commonpath([base, real]) != base or not os.path.isfile(real):
        raise NotFoundError("Slip not found")
    return real
