from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional, Sequence, Tuple

from shared_schemas.contracts import AlbumManifest, ManifestSong
from shared_uploads.content_types import strip_extension
from shared_uploads.errors import InvalidArgumentError
from shared_uploads.keys import album_prefix, cover_key, manifest_key, track_key


@dataclass(frozen=True)
class AlbumItem:
    label: str
    object_key: str
    file_name: str
    track_number: Optional[int] = None

    @property
    def title(self) -> str:
        return strip_extension(self.file_name)


@dataclass(frozen=True)
class AlbumPlan:
    """Where every object of an album goes. Same inputs, same keys."""
    title: str
    artist: str
    prefix: str
    cover: AlbumItem
    tracks: Tuple[AlbumItem, ...]
    manifest_key: str


def plan_album(album_title: str, album_artist: str, cover_file_name: str,
               track_file_names: Sequence[str]) -> AlbumPlan:
    title = (album_title or "").strip()
    artist = (album_artist or "").strip()
    if not title:
        raise InvalidArgumentError("Album title is required")
    if not artist:
        raise InvalidArgumentError("Album artist is required")
    if not track_file_names:
        raise InvalidArgumentError("An album needs at least one track")

    prefix = album_prefix(title)
    cover_name = PurePosixPath(cover_file_name).name
    tracks = []
    for number, file_name in enumerate(track_file_names, start=1):
        name = PurePosixPath(file_name).name
        tracks.append(AlbumItem(
            label=f"track {number} ({name})",
            object_key=track_key(prefix, number, name),
            file_name=name,
            track_number=number
        ))
    return AlbumPlan(
        title=title,
        artist=artist,
        prefix=prefix,
        cover=AlbumItem(label="cover", object_key=cover_key(prefix, cover_name), file_name=cover_name),
        tracks=tuple(tracks),
        manifest_key=manifest_key(prefix)
    )


def build_manifest(plan: AlbumPlan, cover_url: str, track_urls: Sequence[str]) -> AlbumManifest:
    return AlbumManifest(
        title=plan.title,
        artist=plan.artist,
        cover=cover_url,
        songs=[ManifestSong(title=item.title, url=url) for item, url in zip(plan.tracks, track_urls)]
    )
