import asyncio

from shared_uploads.errors import UploadCancelledError


class CancellationToken:
    """Set once by the caller, observed by every step of an upload."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise UploadCancelledError()
