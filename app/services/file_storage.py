# app/services/file_storage.py
import fnmatch
import os
import re
import shutil
import time
from pathlib import Path
from typing import List, Optional, Tuple
from fastapi import UploadFile, HTTPException
import logging

from app.config.security import SecurityConfig

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._ -]")


def sanitize_filename(filename: str) -> str:
    """Strip path components and characters that are unsafe on disk"""
    name = Path(filename or "").name
    name = _UNSAFE_CHARS.sub("_", name).strip(" .")
    return name or "file"


def file_type_allowed(filename: str, content_type: Optional[str], allowed: List[str]) -> bool:
    """
    Match a file against chat-style allow rules.

    Rules are MIME types ("application/pdf"), MIME wildcards ("image/*")
    or extensions (".docx").
    """
    if not allowed:
        return True
    extension = Path(filename or "").suffix.lower()
    mime = (content_type or SecurityConfig.mime_type_for(extension)).lower()
    for rule in allowed:
        rule = rule.strip().lower()
        if rule.startswith("."):
            if extension == rule:
                return True
        elif fnmatch.fnmatch(mime, rule):
            return True
    return False


class FileStorageService:
    """Service for handling file uploads, storage, and retrieval"""

    def __init__(self, upload_dir: Optional[str] = None, max_file_size: Optional[int] = None):
        self.upload_dir = Path(upload_dir or SecurityConfig.STORAGE['upload_dir'])
        self.max_file_size = max_file_size or SecurityConfig.FILE_UPLOAD['max_file_size']
        self.url_prefix = SecurityConfig.STORAGE['public_prefix'].rstrip("/")

    def validate_file(self, file: UploadFile, max_size: Optional[int] = None) -> Tuple[bool, str]:
        """
        Validate uploaded file for security and size constraints

        Returns:
            Tuple of (is_valid, error_message)
        """
        limit = max_size or self.max_file_size
        if getattr(file, 'size', None) and file.size > limit:
            return False, f"File size exceeds maximum allowed size of {limit / (1024*1024):.1f}MB"

        if not file.filename:
            return False, "File must have a filename"

        file_ext = Path(file.filename).suffix.lower()
        if SecurityConfig.is_extension_blocked(file_ext):
            return False, f"File type '{file_ext}' is blocked"
        if not SecurityConfig.is_extension_allowed(file_ext):
            return False, f"File type '{file_ext}' is not allowed"

        return True, ""

    def relative_path(self, *parts) -> Path:
        return Path(*[str(p) for p in parts if p not in (None, "")])

    def _stored_name(self, folder: Path, name: str) -> str:
        """<timestamp>-<name>, bumped until unused in the target folder"""
        stamp = int(time.time() * 1000)
        while (self.upload_dir / folder / f"{stamp}-{name}").exists():
            stamp += 1
        return f"{stamp}-{name}"

    def save_file(self, file: UploadFile, *folders, max_size: Optional[int] = None) -> Tuple[str, str, int]:
        """
        Save an upload as <upload_dir>/<folders...>/<timestamp>-<name>

        Returns:
            Tuple of (public_url, stored_name, file_size)
        """
        is_valid, error_msg = self.validate_file(file, max_size)
        if not is_valid:
            raise HTTPException(status_code=400, detail=error_msg)

        limit = max_size or self.max_file_size
        folder = self.relative_path(*folders)
        stored_name = self._stored_name(folder, sanitize_filename(file.filename))
        relative = folder / stored_name
        target = self.upload_dir / relative
        target.parent.mkdir(parents=True, exist_ok=True)

        try:
            with open(target, "wb") as buffer:
                shutil.copyfileobj(file.file, buffer)
        except Exception as e:
            logger.error(f"Error saving file {file.filename}: {str(e)}")
            raise HTTPException(status_code=500, detail=f"Error saving file: {str(e)}")

        file_size = target.stat().st_size
        if file_size > limit:
            target.unlink()
            raise HTTPException(
                status_code=400,
                detail=f"File size exceeds maximum allowed size of {limit / (1024*1024):.1f}MB"
            )

        logger.info(f"File saved successfully: {target}")
        return f"{self.url_prefix}/{relative.as_posix()}", stored_name, file_size

    def path_for_url(self, file_url: str) -> Optional[Path]:
        """Map a stored public URL back to its path on disk"""
        if not file_url or not file_url.startswith(self.url_prefix + "/"):
            return None
        relative = file_url[len(self.url_prefix) + 1:]
        path = (self.upload_dir / relative).resolve()
        if self.upload_dir.resolve() not in path.parents:
            return None
        return path

    def delete_file(self, file_url: str) -> bool:
        """Delete a stored file; returns False when it is not on local disk"""
        path = self.path_for_url(file_url)
        if path is None or not path.exists():
            logger.warning(f"File not found for deletion: {file_url}")
            return False
        try:
            path.unlink()
            logger.info(f"File deleted successfully: {file_url}")
            return True
        except OSError as e:
            logger.error(f"Error deleting file {file_url}: {str(e)}")
            return False

    def copy_file(self, file_url: str, *folders) -> Optional[str]:
        """Copy a stored file next to a new location; returns the new URL"""
        source = self.path_for_url(file_url)
        if source is None or not source.exists():
            return None
        folder = self.relative_path(*folders)
        stored_name = self._stored_name(folder, source.name.split('-', 1)[-1])
        relative = folder / stored_name
        target = self.upload_dir / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)
        return f"{self.url_prefix}/{relative.as_posix()}"

    def ensure_upload_dir(self):
        os.makedirs(self.upload_dir, exist_ok=True)

# Global instance
file_storage = FileStorageService()
