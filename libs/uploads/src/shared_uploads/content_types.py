from pathlib import PurePosixPath
from typing import Iterable, Optional

AUDIO_CONTENT_TYPES = frozenset({
    "audio/mpeg",
    "audio/mp4",
    "audio/wav",
    "audio/x-wav",
    "audio/wave",
    "audio/aac",
    "audio/ogg",
    "audio/flac",
    "audio/x-flac",
    "audio/webm",
})

IMAGE_CONTENT_TYPES = frozenset({"image/jpeg", "image/png", "image/webp"})

JSON_CONTENT_TYPE = "application/json"

# Only granted for album covers and manifests
STRUCTURED_CONTENT_TYPES = IMAGE_CONTENT_TYPES | {JSON_CONTENT_TYPE}

DEFAULT_ALLOWED_CONTENT_TYPES = AUDIO_CONTENT_TYPES | STRUCTURED_CONTENT_TYPES

# Browsers and pickers send these when they do not know the real type
GENERIC_CONTENT_TYPES = frozenset({"", "application/octet-stream", "binary/octet-stream"})

EXTENSION_CONTENT_TYPES = {
    "mp3": "audio/mpeg",
    "m4a": "audio/mp4",
    "mp4": "audio/mp4",
    "wav": "audio/wav",
    "wave": "audio/wav",
    "aac": "audio/aac",
    "ogg": "audio/ogg",
    "flac": "audio/flac",
    "webm": "audio/webm",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "json": JSON_CONTENT_TYPE,
}


def extension_of(file_name: str) -> str:
    """Lowercased extension without the dot, '' when there is none."""
    return PurePosixPath(file_name).suffix.lstrip(".").lower()


def strip_extension(file_name: str) -> str:
    if "." not in file_name.lstrip("."):
        return file_name
    return file_name.rsplit(".", 1)[0]


def normalize_content_type(content_type: Optional[str]) -> str:
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def resolve_content_type(file_name: str, declared: Optional[str]) -> Optional[str]:
    """
    The content type both sides must use for a file.
    A generic or missing declaration falls back to the file extension;
    returns None when neither gives anything usable.
    """
    normalized = normalize_content_type(declared)
    if normalized not in GENERIC_CONTENT_TYPES:
        return normalized
    return EXTENSION_CONTENT_TYPES.get(extension_of(file_name))


def is_allowed(content_type: str, allowed: Iterable[str] = DEFAULT_ALLOWED_CONTENT_TYPES) -> bool:
    return normalize_content_type(content_type) in set(allowed)


def is_audio(content_type: str) -> bool:
    return normalize_content_type(content_type) in AUDIO_CONTENT_TYPES
