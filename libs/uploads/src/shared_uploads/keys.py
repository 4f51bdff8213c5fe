"""
Storage key derivation and validation shared by the upload service and the upload client.

Layout of the bucket:
    music/{ownerId}/{epochMillis}-{random}-{sanitizedName}   ad hoc uploads
    music/{albumSlug}/cover.{ext}                             album cover
    music/{albumSlug}/{NN}. {trackFileName}                   album tracks, 1-based
    music/{albumSlug}/metadata.json                           album manifest, written last
"""
import re
import secrets
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from shared_uploads.content_types import (
    IMAGE_CONTENT_TYPES,
    JSON_CONTENT_TYPE,
    extension_of,
    is_audio,
    normalize_content_type,
    strip_extension,
)
from shared_uploads.errors import InvalidArgumentError

MUSIC_ROOT = "music"
MANIFEST_NAME = "metadata.json"
DEFAULT_COVER_EXTENSION = "jpg"
MAX_KEY_LENGTH = 1024
UNKNOWN_ARTIST = "Unknown Artist"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_NON_ALNUM_RUNS = re.compile(r"[^a-z0-9]+")
_SLUG = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
_AD_HOC_LEAF = re.compile(r"^\d+-[a-z0-9]+-(.+)$")
_TRACK_LEAF = re.compile(r"^(\d{2,})\. (.+)$")
_COVER_LEAF = re.compile(r"^cover\.([a-z0-9]+)$")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


class KeyScope(str, Enum):
    OWNER = "OWNER"
    ALBUM_COVER = "ALBUM_COVER"
    ALBUM_TRACK = "ALBUM_TRACK"
    ALBUM_MANIFEST = "ALBUM_MANIFEST"


@dataclass(frozen=True)
class KeyPlacement:
    object_key: str
    scope: KeyScope
    album_prefix: Optional[str] = None

    @property
    def is_album_object(self) -> bool:
        return self.scope != KeyScope.OWNER


def sanitize_file_name(file_name: str) -> str:
    return _UNSAFE_CHARS.sub("_", file_name)


def owner_segment(owner_id: str) -> str:
    return sanitize_file_name(str(owner_id))


def build_ad_hoc_key(owner_id: str, file_name: str, now: datetime, random_suffix: Optional[str] = None) -> str:
    suffix = random_suffix or secrets.token_hex(4)
    millis = int(now.timestamp() * 1000)
    return f"{MUSIC_ROOT}/{owner_segment(owner_id)}/{millis}-{suffix}-{sanitize_file_name(file_name)}"


def album_slug(album_title: str) -> str:
    slug = _NON_ALNUM_RUNS.sub("-", album_title.lower()).strip("-")
    if not slug:
        raise InvalidArgumentError("Album title must contain at least one letter or digit")
    return slug


def album_prefix(album_title: str) -> str:
    return f"{MUSIC_ROOT}/{album_slug(album_title)}"


def cover_key(prefix: str, cover_file_name: str) -> str:
    ext = extension_of(cover_file_name) or DEFAULT_COVER_EXTENSION
    return f"{prefix}/cover.{ext}"


def track_key(prefix: str, track_number: int, track_file_name: str) -> str:
    return f"{prefix}/{track_number:02d}. {track_file_name}"


def manifest_key(prefix: str) -> str:
    return f"{prefix}/{MANIFEST_NAME}"


def default_public_base(bucket: str, region: str) -> str:
    return f"https://{bucket}.s3.{region}.amazonaws.com"


def public_url(base_url: str, object_key: str) -> str:
    # Keys go in verbatim, the album manifest format depends on it
    return f"{base_url.rstrip('/')}/{object_key}"


def file_name_from_key(object_key: str) -> str:
    """The original file name as it was placed in storage."""
    leaf = object_key.rsplit("/", 1)[-1]
    ad_hoc = _AD_HOC_LEAF.match(leaf)
    if ad_hoc:
        return ad_hoc.group(1)
    track = _TRACK_LEAF.match(leaf)
    if track:
        return track.group(2)
    return leaf


def title_and_artist(file_name: str) -> Tuple[str, Optional[str]]:
    """'Artist - Title.mp3' -> ('Title', 'Artist'); anything else -> (stem, None)."""
    stem = strip_extension(file_name)
    parts = stem.split(" - ")
    if len(parts) == 2 and parts[0].strip() and parts[1].strip():
        return parts[1].strip(), parts[0].strip()
    return stem, None


def _check_normalized(object_key: str) -> None:
    if not object_key or len(object_key) > MAX_KEY_LENGTH:
        raise InvalidArgumentError("key is empty or too long")
    if object_key.startswith("/") or "\\" in object_key or _CONTROL_CHARS.search(object_key):
        raise InvalidArgumentError("key contains illegal characters")
    for segment in object_key.split("/"):
        if segment in ("", ".", ".."):
            raise InvalidArgumentError("key contains an empty or relative path segment")


def classify_key(owner_id: str, object_key: str) -> KeyPlacement:
    """
    Decide whether a caller may address `object_key` and in which role.
    Album objects are recognised by their fixed cover/track/manifest layout
    directly under music/{slug}/, anything else must sit in the caller's own
    music/{ownerId}/. Who may write into an album folder is decided by the
    folder claim, not here.
    """
    _check_normalized(object_key)
    parts = object_key.split("/")
    if parts[0] != MUSIC_ROOT or len(parts) < 3:
        raise InvalidArgumentError("key is outside the permitted namespace")
    if len(parts) == 3 and _SLUG.match(parts[1]):
        prefix = f"{MUSIC_ROOT}/{parts[1]}"
        leaf = parts[2]
        if leaf == MANIFEST_NAME:
            return KeyPlacement(object_key, KeyScope.ALBUM_MANIFEST, prefix)
        if _COVER_LEAF.match(leaf):
            return KeyPlacement(object_key, KeyScope.ALBUM_COVER, prefix)
        if _TRACK_LEAF.match(leaf):
            return KeyPlacement(object_key, KeyScope.ALBUM_TRACK, prefix)
    if parts[1] == owner_segment(owner_id):
        return KeyPlacement(object_key=object_key, scope=KeyScope.OWNER)
    raise InvalidArgumentError("key is outside the permitted namespace")


def check_content_type_for(placement: KeyPlacement, content_type: str) -> None:
    content_type = normalize_content_type(content_type)
    if placement.scope in (KeyScope.OWNER, KeyScope.ALBUM_TRACK):
        ok = is_audio(content_type)
    elif placement.scope == KeyScope.ALBUM_COVER:
        ok = content_type in IMAGE_CONTENT_TYPES
    else:
        ok = content_type == JSON_CONTENT_TYPE
    if not ok:
        raise InvalidArgumentError(f"Unsupported file type {content_type} for this key")
