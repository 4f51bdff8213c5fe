from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional

from shared_schemas.contracts import AlbumManifest, MusicPayload
from shared_uploads.errors import UploadError

# (bytes_sent, total_bytes)
ProgressCallback = Callable[[int, int], None]
# (completed_items, total_items, fraction of the current item)
AlbumProgressCallback = Callable[[int, int, float], None]


class UploadState(str, Enum):
    IDLE = "IDLE"
    REQUESTING_GRANT = "REQUESTING_GRANT"
    TRANSFERRING = "TRANSFERRING"
    CONFIRMING = "CONFIRMING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class UploadGrant:
    object_key: str
    signed_url: str
    content_type: str
    expires_at_seconds: int
    # Signed x-amz-meta-* headers the PUT has to repeat
    headers: Dict[str, str] = field(default_factory=dict)

    def is_expired(self, now: datetime) -> bool:
        return now.timestamp() >= self.expires_at_seconds


@dataclass
class UploadResult:
    state: UploadState
    record: Optional[MusicPayload] = None
    error: Optional[UploadError] = None
    object_key: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state == UploadState.SUCCEEDED

    @property
    def reason(self) -> Optional[str]:
        return self.error.message if self.error else None


@dataclass
class AlbumUploadResult:
    state: UploadState
    manifest: Optional[AlbumManifest] = None
    failed_item: Optional[str] = None
    error: Optional[UploadError] = None
    uploaded: List[MusicPayload] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state == UploadState.SUCCEEDED
