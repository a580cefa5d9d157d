"""
Local file storage for uploaded import files and export artifacts.
"""
import re
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

from bulkio.core.config import settings
from bulkio.core.timeutil import utcnow

_UNSAFE = re.compile(r"[^a-zA-Z0-9._-]")


def safe_filename(name: Optional[str], module: str, now: Optional[datetime] = None) -> str:
    """
    Sanitize a user-supplied file name.

    Falls back to ``{module}-export-{timestamp}.csv`` when no name is given.
    """
    if not name or not name.strip():
        stamp = (now or utcnow()).strftime("%Y%m%dT%H%M%S")
        name = f"{module}-export-{stamp}.csv"
    cleaned = _UNSAFE.sub("_", name.strip())
    if not cleaned.lower().endswith(".csv"):
        cleaned = f"{cleaned}.csv"
    return cleaned


def upload_dir() -> Path:
    path = Path(settings.STORAGE_PATH) / "imports"
    path.mkdir(parents=True, exist_ok=True)
    return path


def artifact_dir() -> Path:
    path = Path(settings.ARTIFACT_ROOT) / "exports"
    path.mkdir(parents=True, exist_ok=True)
    return path


def save_upload(content: bytes, original_filename: str) -> Path:
    """Persist an uploaded file under a collision-free name."""
    stored_name = f"{uuid.uuid4().hex}_{_UNSAFE.sub('_', original_filename or 'upload.csv')}"
    path = upload_dir() / stored_name
    path.write_bytes(content)
    return path
