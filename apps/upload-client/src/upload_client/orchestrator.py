import asyncio
import inspect
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Sequence, Union

from shared_schemas.contracts import ConfirmRequest, GrantRequest, MusicPayload
from shared_uploads.content_types import JSON_CONTENT_TYPE, resolve_content_type
from shared_uploads.errors import (
    ErrorKind,
    InternalError,
    InvalidArgumentError,
    NotFoundError,
    UnauthorizedError,
    UploadCancelledError,
    UploadError,
)
from shared_uploads.keys import MANIFEST_NAME
from upload_client.album import AlbumItem, build_manifest, plan_album
from upload_client.api import UploadApiClient
from upload_client.cancellation import CancellationToken
from upload_client.config import UploadClientConfig
from upload_client.models import (
    AlbumProgressCallback,
    AlbumUploadResult,
    ProgressCallback,
    UploadGrant,
    UploadResult,
    UploadState,
)
from upload_client.sources import UploadSource
from upload_client.transport import StorageTransport

logger = logging.getLogger(__name__)

CredentialProvider = Callable[[], Union[Optional[str], Awaitable[Optional[str]]]]
StateListener = Callable[[UploadState], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _discard(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug(f"Ignored result of abandoned call: {error}")


class _StateTracker:
    def __init__(self, listener: Optional[StateListener]):
        self.state = UploadState.IDLE
        self.listener = listener

    def move(self, state: UploadState) -> None:
        self.state = state
        if self.listener:
            self.listener(state)


class UploadOrchestrator:
    """
    Drives one file (or one album) through grant, transfer and confirmation.

    Every call ends in exactly one of UploadState.SUCCEEDED or
    UploadState.FAILED; errors are returned inside the result, never raised.
    A failed upload is retried by calling upload_single again, which asks
    for a fresh grant and therefore a fresh key.
    """

    def __init__(self, config: UploadClientConfig, api: UploadApiClient, transport: StorageTransport,
                 credentials: CredentialProvider,
                 clock: Callable[[], datetime] = _utc_now,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.config = config
        self.api = api
        self.transport = transport
        self.credentials = credentials
        self.clock = clock
        self.sleep = sleep

    async def upload_single(self, source: UploadSource, content_type: Optional[str] = None,
                            explicit_key: Optional[str] = None,
                            progress: Optional[ProgressCallback] = None,
                            cancel_token: Optional[CancellationToken] = None,
                            on_state: Optional[StateListener] = None) -> UploadResult:
        token = cancel_token or CancellationToken()
        tracker = _StateTracker(on_state)
        object_key = None
        try:
            token.raise_if_cancelled()
            resolved_type = self._validate(source, content_type or source.content_type)
            if not self.config.use_object_storage_upload:
                record = await self._upload_direct(source, resolved_type, explicit_key, progress, token, tracker)
                return UploadResult(UploadState.SUCCEEDED, record=record, object_key=record.key)

            tracker.move(UploadState.REQUESTING_GRANT)
            credential = await self._credential()
            grant: UploadGrant = await self._until_cancelled(
                self.api.request_grant(credential, GrantRequest(
                    file_name=source.file_name,
                    file_type=resolved_type,
                    file_size=source.size,
                    explicit_key=explicit_key
                ), self.clock()),
                token
            )
            object_key = grant.object_key

            tracker.move(UploadState.TRANSFERRING)
            if grant.is_expired(self.clock()):
                raise InternalError("Upload grant expired before the transfer started")
            await self._until_cancelled(self.transport.put(grant, source, progress), token, abort=True)

            tracker.move(UploadState.CONFIRMING)
            record = await self._confirm(credential, ConfirmRequest(
                key=grant.object_key,
                file_name=source.file_name,
                file_size=source.size,
                file_type=grant.content_type
            ), token)
        except UploadError as e:
            return self._failed(tracker, e, source, object_key)
        except Exception as e:
            logger.exception(f"Unexpected failure uploading {source.file_name}: {e}")
            return self._failed(tracker, InternalError(f"Unexpected error: {e}"), source, object_key)

        tracker.move(UploadState.SUCCEEDED)
        logger.info(f"Uploaded {source.file_name} as {record.key}")
        return UploadResult(UploadState.SUCCEEDED, record=record, object_key=record.key)

    async def upload_album(self, cover: UploadSource, tracks: Sequence[UploadSource],
                           album_title: str, album_artist: str,
                           progress: Optional[AlbumProgressCallback] = None,
                           cancel_token: Optional[CancellationToken] = None) -> AlbumUploadResult:
        """
        Cover first, then the tracks in order, one at a time, then the manifest.
        The first failure stops the album; objects already written stay in
        storage and nothing is published.
        """
        token = cancel_token or CancellationToken()
        try:
            plan = plan_album(album_title, album_artist, cover.file_name, [track.file_name for track in tracks])
        except UploadError as e:
            logger.error(f"Album '{album_title}' rejected: {e.message}")
            return AlbumUploadResult(UploadState.FAILED, failed_item="album", error=e)

        total_items = len(tracks) + 2
        steps = [(plan.cover, cover, self._cover_content_type(plan.cover, cover))]
        steps += [(item, source, source.content_type) for item, source in zip(plan.tracks, tracks)]

        uploaded: list[MusicPayload] = []
        for index, (item, source, content_type) in enumerate(steps):
            result = await self.upload_single(
                source,
                content_type=content_type,
                explicit_key=item.object_key,
                progress=self._item_progress(progress, index, total_items),
                cancel_token=token
            )
            if not result.succeeded:
                logger.error(f"Album {plan.prefix} stopped at {item.label}: {result.reason}")
                return AlbumUploadResult(UploadState.FAILED, failed_item=item.label, error=result.error,
                                         uploaded=uploaded)
            uploaded.append(result.record)

        manifest = build_manifest(plan, uploaded[0].url, [record.url for record in uploaded[1:]])
        result = await self.upload_single(
            UploadSource.from_bytes(MANIFEST_NAME, manifest.to_json_bytes(), JSON_CONTENT_TYPE),
            content_type=JSON_CONTENT_TYPE,
            explicit_key=plan.manifest_key,
            progress=self._item_progress(progress, total_items - 1, total_items),
            cancel_token=token
        )
        if not result.succeeded:
            logger.error(f"Album {plan.prefix} stopped at manifest: {result.reason}")
            return AlbumUploadResult(UploadState.FAILED, failed_item="manifest", error=result.error,
                                     uploaded=uploaded)

        if progress:
            progress(total_items, total_items, 1.0)
        logger.info(f"Published album {plan.prefix} with {len(plan.tracks)} tracks")
        return AlbumUploadResult(UploadState.SUCCEEDED, manifest=manifest, uploaded=uploaded + [result.record])

    def _validate(self, source: UploadSource, declared: Optional[str]) -> str:
        content_type = resolve_content_type(source.file_name, declared)
        if not content_type or content_type not in self.config.allowed_content_types:
            raise InvalidArgumentError("Unsupported file type")
        if source.size <= 0:
            raise InvalidArgumentError("File is empty")
        if source.size > self.config.max_file_size_bytes:
            limit_mb = self.config.max_file_size_bytes // (1024 * 1024)
            raise InvalidArgumentError(f"File size exceeds maximum allowed ({limit_mb}MB)")
        return content_type

    @staticmethod
    def _cover_content_type(item: AlbumItem, cover: UploadSource) -> Optional[str]:
        # A cover without extension is stored as cover.jpg, type follows the key
        return resolve_content_type(cover.file_name, cover.content_type) or \
            resolve_content_type(item.object_key, None)

    @staticmethod
    def _item_progress(progress: Optional[AlbumProgressCallback], index: int,
                       total_items: int) -> Optional[ProgressCallback]:
        if progress is None:
            return None

        def report(sent: int, total: int) -> None:
            progress(index, total_items, sent / total if total else 1.0)
        return report

    async def _credential(self) -> str:
        credential = self.credentials()
        if inspect.isawaitable(credential):
            credential = await credential
        if not credential:
            raise UnauthorizedError("No auth token")
        return credential

    async def _upload_direct(self, source: UploadSource, content_type: str, explicit_key: Optional[str],
                             progress: Optional[ProgressCallback], token: CancellationToken,
                             tracker: _StateTracker) -> MusicPayload:
        tracker.move(UploadState.TRANSFERRING)
        credential = await self._credential()
        if progress:
            progress(0, source.size)
        record = await self._until_cancelled(
            self.api.direct_upload(credential, source, content_type, explicit_key),
            token,
            abort=True
        )
        if progress:
            progress(source.size, source.size)
        tracker.move(UploadState.SUCCEEDED)
        return record

    async def _confirm(self, credential: str, request: ConfirmRequest, token: CancellationToken) -> MusicPayload:
        attempts = self.config.confirm_attempts
        for attempt in range(attempts):
            try:
                return await self._until_cancelled(self.api.confirm(credential, request), token)
            except NotFoundError:
                if attempt == attempts - 1:
                    raise
                delay = self.config.confirm_backoff_seconds * (2 ** attempt)
                logger.warning(f"{request.key} not visible yet, confirming again in {delay:.1f}s "
                               f"({attempt + 1}/{attempts})")
                await self._until_cancelled(self.sleep(delay), token, abort=True)
        raise InternalError("Confirmation did not complete")

    async def _until_cancelled(self, call: Awaitable, token: CancellationToken, abort: bool = False):
        """
        Await `call` unless the token fires first. With abort the call is
        cancelled, otherwise it runs to completion in the background and its
        outcome is dropped.
        """
        task = asyncio.ensure_future(call)
        if token.cancelled:
            task.cancel()
            raise UploadCancelledError()
        waiter = asyncio.ensure_future(token.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()
        if abort:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        else:
            task.add_done_callback(_discard)
        raise UploadCancelledError()

    @staticmethod
    def _failed(tracker: _StateTracker, error: UploadError, source: UploadSource,
                object_key: Optional[str]) -> UploadResult:
        tracker.move(UploadState.FAILED)
        if error.kind == ErrorKind.CANCELLED:
            logger.info(f"Upload of {source.file_name} cancelled")
        else:
            logger.error(f"Upload of {source.file_name} failed: {error.message}")
        return UploadResult(UploadState.FAILED, error=error, object_key=object_key)
