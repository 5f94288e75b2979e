"""
Image upload pipeline: validate, write to local disk, optionally forward to
Cloudinary. A failed Cloudinary upload falls back to the local copy.
"""
import logging
import os
import random
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List

import cloudinary
import cloudinary.uploader
from fastapi import UploadFile, status

import config
from errors import NotFoundError, UploadError

logger = logging.getLogger(__name__)

URL_PREFIX = "/uploads"

# Accepted image types: stored extension and leading file signatures
IMAGE_TYPES = {
    "image/png": (".png", (b"\x89PNG\r\n\x1a\n",)),
    "image/jpeg": (".jpg", (b"\xff\xd8\xff",)),
    "image/jpg": (".jpg", (b"\xff\xd8\xff",)),
    "image/gif": (".gif", (b"GIF87a", b"GIF89a")),
    "image/webp": (".webp", (b"RIFF",)),
}


def upload_dir() -> Path:
    path = Path(config.UPLOAD_PATH)
    path.mkdir(parents=True, exist_ok=True)
    return path


def _content_type(upload: UploadFile) -> str:
    return (upload.content_type or "").lower()


def unique_filename(field: str, content_type: str) -> str:
    # the extension follows the checked type, never the client's filename
    ext = IMAGE_TYPES[content_type][0]
    return f"{field}-{int(time.time() * 1000)}-{random.randint(0, 10 ** 9)}{ext}"


def _looks_like(content: bytes, content_type: str) -> bool:
    if not content.startswith(IMAGE_TYPES[content_type][1]):
        return False
    return content_type != "image/webp" or content[8:12] == b"WEBP"


def _read_validated(upload: UploadFile) -> bytes:
    content_type = _content_type(upload)
    if content_type not in IMAGE_TYPES:
        raise UploadError("Only image files are allowed")
    content = upload.file.read(config.MAX_FILE_SIZE + 1)
    if len(content) > config.MAX_FILE_SIZE:
        raise UploadError(f"File too large. Maximum size is {config.MAX_FILE_SIZE // (1024 * 1024)}MB")
    if not _looks_like(content, content_type):
        raise UploadError("Only image files are allowed")
    return content


def validate_uploads(uploads: List[UploadFile]) -> None:
    """Check every file before any is written, so a bad one leaves nothing behind."""
    for upload in uploads:
        _read_validated(upload)
        upload.file.seek(0)


def forward_to_cdn(info: Dict) -> Dict:
    """Push a stored file to Cloudinary; keep the local URL if that fails."""
    if not config.cloudinary_enabled():
        return info
    cloudinary.config(
        cloud_name=config.CLOUDINARY_CLOUD_NAME,
        api_key=config.CLOUDINARY_API_KEY,
        api_secret=config.CLOUDINARY_API_SECRET,
        secure=True,
    )
    try:
        result = cloudinary.uploader.upload(info["path"], folder=config.CLOUDINARY_FOLDER, resource_type="image")
    except Exception as e:
        logger.warning("Cloudinary upload failed for %s, serving local copy: %s", info["filename"], e)
        return info

    info.update({"url": result.get("secure_url") or result.get("url"), "publicId": result.get("public_id"),
                 "storage": "cloudinary"})
    if config.CLOUDINARY_DELETE_LOCAL:
        try:
            os.remove(info["path"])
            info["path"] = None
        except OSError as e:
            logger.warning("Could not remove local copy %s: %s", info["filename"], e)
    return info


def save_upload(upload: UploadFile, field: str) -> Dict:
    content = _read_validated(upload)
    filename = unique_filename(field, _content_type(upload))
    path = upload_dir() / filename
    try:
        path.write_bytes(content)
    except OSError as e:
        logger.error("Writing %s failed: %s", path, e)
        raise UploadError("Error uploading file", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    info = {
        "filename": filename,
        "originalname": upload.filename,
        "mimetype": upload.content_type,
        "size": len(content),
        "path": str(path),
        "url": f"{URL_PREFIX}/{filename}",
        "publicId": None,
        "storage": "local",
    }
    return forward_to_cdn(info)


def save_uploads(uploads: List[UploadFile], field: str) -> List[Dict]:
    if len(uploads) > config.MAX_FILES_PER_REQUEST:
        raise UploadError(f"Too many files. Maximum is {config.MAX_FILES_PER_REQUEST}")
    validate_uploads(uploads)
    return [save_upload(upload, field) for upload in uploads]


def local_path(filename: str) -> Path:
    if not filename or os.path.basename(filename) != filename or filename in (".", ".."):
        raise NotFoundError("File not found")
    path = Path(config.UPLOAD_PATH) / filename
    if not path.is_file():
        raise NotFoundError("File not found")
    return path


def _describe(path: Path) -> Dict:
    stats = path.stat()
    return {
        "filename": path.name,
        "path": str(path),
        "size": stats.st_size,
        "created": datetime.fromtimestamp(stats.st_ctime, tz=timezone.utc).isoformat(),
        "modified": datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc).isoformat(),
        "url": f"{URL_PREFIX}/{path.name}",
    }


def file_info(filename: str) -> Dict:
    return _describe(local_path(filename))


def list_files() -> List[Dict]:
    root = Path(config.UPLOAD_PATH)
    if not root.is_dir():
        return []
    return [_describe(p) for p in sorted(root.iterdir()) if p.is_file()]


def delete_file(filename: str) -> None:
    os.remove(local_path(filename))


def discard(info: Dict) -> None:
    """Remove the local copy of an already saved upload."""
    if not info.get("path"):
        return
    try:
        os.remove(info["path"])
    except OSError as e:
        logger.warning("Could not remove %s: %s", info["filename"], e)
