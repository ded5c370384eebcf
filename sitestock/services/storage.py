"""
Local file storage for report/task photos and delivery invoices.

Paths are relative to UPLOAD_FOLDER and look like
`{account_id}/{area}/{owner}/{ts}-{rand}-{safe_name}`.
"""
from __future__ import annotations

import os
import secrets
import time
from typing import Optional

from flask import current_app

from sitestock.utils.validators import safe_file_name
from .common import ServiceError, INVALID

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".heic", ".pdf"}


def build_path(account_id: int, area: str, owner: str, filename: Optional[str]) -> str:
    ts = int(time.time() * 1000)
    rand = secrets.token_hex(4)
    return f"{account_id}/{area}/{owner}/{ts}-{rand}-{safe_file_name(filename)}"


def _root() -> str:
    return os.path.abspath(current_app.config["UPLOAD_FOLDER"])


def _abs(rel_path: str) -> str:
    root = _root()
    full = os.path.abspath(os.path.join(root, rel_path))
    if os.path.commonpath([root, full]) != root:
        raise ServiceError("Invalid file path.", INVALID)
    return full


def save_upload(file_storage, *, account_id: int, area: str, owner: str) -> str:
    name = getattr(file_storage, "filename", None) or ""
    ext = os.path.splitext(name)[1].lower()
    if not name or ext not in ALLOWED_EXTENSIONS:
        raise ServiceError(f"Unsupported file type: {name or 'unnamed'}.", INVALID, field="files")
    rel = build_path(account_id, area, owner, name)
    full = _abs(rel)
    os.makedirs(os.path.dirname(full), exist_ok=True)
    file_storage.save(full)
    return rel


def count_uploads(account_id: int, area: str, owner: str) -> int:
    """Files already stored for one owner (a draft has no row to count from)."""
    folder = _abs(f"{account_id}/{area}/{owner}")
    if not os.path.isdir(folder):
        return 0
    return sum(1 for entry in os.scandir(folder) if entry.is_file())


def delete_upload(rel_path: str) -> bool:
    full = _abs(rel_path)
    try:
        os.remove(full)
    except FileNotFoundError:
        current_app.logger.info("upload already gone path=%s", rel_path)
        return False
    return True


def open_path(rel_path: str) -> str:
    return _abs(rel_path)
