"""
File content validation before anything is pinned.

MIME type is sniffed from the bytes with libmagic first, then taken from the
extension, then from whatever the caller declared. A declared type that
contradicts the sniffed content is rejected rather than trusted.
"""

import os
from dataclasses import dataclass
from typing import Dict, List, Optional

import magic

MB = 1024 * 1024

# Per-category ceilings on decoded bytes. Over HTTP the request body limit
# (Config.MAX_REQUEST_BYTES) is sized so the largest of these still fits once
# base64-encoded.
SIZE_LIMITS = {
    "image": 10 * MB,
    "video": 100 * MB,
    "audio": 25 * MB,
    "document": 5 * MB,
    "default": 10 * MB,
}

SUPPORTED_MIME_TYPES: Dict[str, List[str]] = {
    "image": ["image/jpeg", "image/png", "image/gif", "image/webp", "image/svg+xml"],
    "video": ["video/mp4", "video/quicktime", "video/webm", "video/x-msvideo", "video/x-matroska"],
    "audio": ["audio/mpeg", "audio/wav", "audio/ogg", "audio/aac"],
    "document": ["application/json", "text/plain", "application/pdf", "text/markdown", "text/csv"],
}

EXTENSION_MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "mp4": "video/mp4",
    "avi": "video/x-msvideo",
    "mov": "video/quicktime",
    "webm": "video/webm",
    "mkv": "video/x-matroska",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
    "aac": "audio/aac",
    "json": "application/json",
    "txt": "text/plain",
    "pdf": "application/pdf",
    "md": "text/markdown",
    "csv": "text/csv",
}

# Non-canonical spellings, including the ones libmagic reports
MIME_ALIASES = {
    "image/jpg": "image/jpeg",
    "audio/mp3": "audio/mpeg",
    "audio/x-wav": "audio/wav",
    "audio/wave": "audio/wav",
    "audio/vnd.wave": "audio/wav",
    "audio/x-hx-aac-adts": "audio/aac",
    "audio/x-aac": "audio/aac",
    "video/avi": "video/x-msvideo",
    "video/msvideo": "video/x-msvideo",
}

# libmagic's answers for "could not tell"
UNDETERMINED_MIME_TYPES = {"application/octet-stream", "application/x-empty", "inode/x-empty"}

# libmagic reads no further than this by default
MAGIC_SAMPLE_BYTES = 1 * MB

# A sniffed family can legitimately carry several finer declared types
_COMPATIBLE = {
    "video/mp4": {"video/mp4", "video/quicktime", "audio/aac", "audio/mp4"},
    "video/webm": {"video/webm", "video/x-matroska"},
    "video/x-matroska": {"video/x-matroska", "video/webm"},
    "audio/ogg": {"audio/ogg", "video/ogg"},
    "video/ogg": {"video/ogg", "audio/ogg"},
    "application/ogg": {"audio/ogg", "video/ogg"},
    "text/plain": {"text/plain", "text/markdown", "text/csv", "application/json"},
    "text/csv": {"text/csv", "text/plain"},
    "application/json": {"application/json", "text/plain"},
    "text/xml": {"image/svg+xml"},
    "image/svg": {"image/svg+xml"},
}


@dataclass
class FileCheck:
    """Outcome of validating one file"""
    filename: str
    size: int
    mime_type: Optional[str]
    category: Optional[str]
    errors: List[str]

    @property
    def ok(self) -> bool:
        return not self.errors


def normalize_mime(mime_type: Optional[str]) -> Optional[str]:
    if not mime_type:
        return None
    base = mime_type.split(";")[0].strip().lower()
    return MIME_ALIASES.get(base, base)


def detect_mime_from_bytes(data: bytes) -> Optional[str]:
    """Sniff the content type with libmagic; None if it can't tell"""
    if not data:
        return None
    detected = normalize_mime(magic.from_buffer(data[:MAGIC_SAMPLE_BYTES], mime=True))
    if detected in UNDETERMINED_MIME_TYPES:
        return None
    return detected


def mime_from_extension(filename: str) -> Optional[str]:
    ext = os.path.splitext(filename)[1].lstrip(".").lower()
    return EXTENSION_MIME_TYPES.get(ext)


def category_for(mime_type: Optional[str]) -> Optional[str]:
    for category, types in SUPPORTED_MIME_TYPES.items():
        if mime_type in types:
            return category
    return None


def _conflicts(declared: str, detected: str) -> bool:
    if declared == detected:
        return False
    return declared not in _COMPATIBLE.get(detected, ())


def validate_file(data: bytes, filename: str, declared_type: Optional[str] = None) -> FileCheck:
    """
    Decide the effective MIME type and check it against category rules.

    Never raises; problems are collected in FileCheck.errors.
    """
    declared = normalize_mime(declared_type)
    by_extension = mime_from_extension(filename)
    detected = detect_mime_from_bytes(data)
    errors: List[str] = []

    if detected and declared and _conflicts(declared, detected):
        errors.append(f"{filename}: declared type {declared} does not match file content ({detected})")

    # declared or extension type wins when it is a finer name for what was sniffed
    finer = declared or by_extension
    if detected and finer and not _conflicts(finer, detected):
        mime_type = finer
    else:
        mime_type = detected or by_extension or declared

    category = category_for(mime_type)
    if category is None:
        errors.append(f"{filename}: unsupported file type {mime_type or 'unknown'}")

    limit = SIZE_LIMITS.get(category or "default", SIZE_LIMITS["default"])
    if len(data) > limit:
        errors.append(f"{filename}: file size {len(data)} bytes exceeds the {limit // MB}MB limit for {category or 'this'} files")

    if len(data) == 0:
        errors.append(f"{filename}: file is empty")

    return FileCheck(filename=filename, size=len(data), mime_type=mime_type, category=category, errors=errors)
