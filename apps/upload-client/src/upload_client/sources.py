import asyncio
import io
import os
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, BinaryIO, Optional


@dataclass(frozen=True)
class UploadSource:
    """A byte stream with a known length, a name and whatever type the picker declared."""
    file_name: str
    size: int
    content_type: Optional[str] = None
    path: Optional[Path] = None
    data: Optional[bytes] = None

    @classmethod
    def from_path(cls, path: str | os.PathLike, content_type: Optional[str] = None,
                  file_name: Optional[str] = None) -> "UploadSource":
        resolved = Path(path)
        return cls(
            file_name=file_name or resolved.name,
            size=resolved.stat().st_size,
            content_type=content_type,
            path=resolved
        )

    @classmethod
    def from_bytes(cls, file_name: str, data: bytes, content_type: Optional[str] = None) -> "UploadSource":
        return cls(file_name=file_name, size=len(data), content_type=content_type, data=data)

    async def chunks(self, chunk_size: int) -> AsyncIterator[bytes]:
        if self.data is not None:
            for start in range(0, len(self.data), chunk_size):
                yield self.data[start:start + chunk_size]
            return
        handle = await asyncio.to_thread(open, self.path, "rb")
        try:
            while True:
                chunk = await asyncio.to_thread(handle.read, chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            handle.close()

    def open(self) -> BinaryIO:
        if self.data is not None:
            return io.BytesIO(self.data)
        return open(self.path, "rb")
