"""
Resumable chunked upload transport.

Owns the upload sessions of one (server host, api key) configuration:
creates tus uploads, streams chunks from a cached copy of each file on a
bounded worker pool, reports byte progress to the uploads tracker and keeps
failed sessions on disk until they are retried or cancelled.
"""

import time
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait as futures_wait
from typing import Dict, List, Optional, Set, Tuple
from urllib.parse import urlsplit

import httpx

from common.constants import (
    CHUNK_SIZE_BYTES,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_BACKOFF_MULTIPLIER,
    DEFAULT_RETRY_BASE_DELAY_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    MAX_CONCURRENT_UPLOADS,
    TUS_ROUTE,
)
from common.logging_config import get_logger
from common.types import UploadItem
from syncer.progress import ProgressTracker
from uploader.exceptions import (
    FatalUploadError,
    OffsetMismatchError,
    SessionNotFoundError,
    TransientUploadError,
    UploadCancelledError,
    UploadError,
    UploadExpiredError,
)
from uploader.session_store import SessionStatus, SessionStore, UploadSession
from uploader.tus_protocol import TusClient, encode_upload_metadata

logger = get_logger(__name__)

AUTHORIZATION_HEADER = "Authorization"
METADATA_HEADER = "Upload-Metadata"


class ChunkedUploadTransport:
    """
    Upload session manager for one server configuration.

    The transport does not deduplicate; callers check the catalog first.
    Sessions that were still pending or uploading when a previous process
    died are reclassified as failed at construction so that
    ``retry_failed_uploads`` can resume them.
    """

    def __init__(
        self,
        server_host: str,
        api_key: str,
        store: SessionStore,
        progress: ProgressTracker,
        chunk_size: int = CHUNK_SIZE_BYTES,
        max_concurrent_uploads: int = MAX_CONCURRENT_UPLOADS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_backoff_multiplier: float = DEFAULT_RETRY_BACKOFF_MULTIPLIER,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY_SECONDS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: Optional[httpx.Client] = None,
    ):
        """
        Initialize transport.

        Args:
            server_host: Server base URL including scheme
            api_key: API key, sent as a bearer token
            store: Session store (shared across configurations)
            progress: Uploads progress tracker
            chunk_size: Bytes per PATCH request
            max_concurrent_uploads: Worker pool size (must be >= 1)
            max_retries: Retries per session after the first attempt
            retry_backoff_multiplier: Exponential backoff base
            retry_base_delay: Delay before the first retry in seconds
            timeout: Request timeout in seconds
            session: Optional HTTP session (tests inject a mock transport)
        """
        if max_concurrent_uploads < 1:
            raise ValueError("max_concurrent_uploads must be at least 1")
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")

        self.server_host = server_host.rstrip("/")
        self.api_key = api_key
        self.server_url = f"{self.server_host}/{TUS_ROUTE}"
        self.store = store
        self.progress = progress
        self.chunk_size = chunk_size
        self.max_retries = max_retries
        self.retry_backoff_multiplier = retry_backoff_multiplier
        self.retry_base_delay = retry_base_delay

        self._owns_session = session is None
        self.session = session or httpx.Client(timeout=timeout)
        self._executor = ThreadPoolExecutor(
            max_workers=max_concurrent_uploads, thread_name_prefix="upload"
        )
        self._lock = threading.RLock()
        self._sessions: Dict[str, UploadSession] = {}
        self._futures: Dict[str, Future] = {}
        self._cancelled: Set[str] = set()
        self._closed = False
        self._aborted = threading.Event()

        self._recover_sessions()
        logger.info(
            f"Initialized ChunkedUploadTransport [server_url={self.server_url}, "
            f"workers={max_concurrent_uploads}, sessions={len(self._sessions)}]"
        )

    @property
    def bearer(self) -> str:
        return f"Bearer {self.api_key}"

    def _recover_sessions(self) -> None:
        for session in self.store.load_all():
            if session.status is SessionStatus.COMPLETED:
                self.store.remove(session.session_id)
                self.store.remove_cache(session.session_id)
                continue
            if session.is_active:
                session.status = SessionStatus.FAILED
                session.error = "interrupted before completion"
                self._save_quietly(session)
                self.progress.remove(session.stable_id)
            self._sessions[session.session_id] = session

    def _save_quietly(self, session: UploadSession) -> None:
        try:
            self.store.save(session)
        except OSError as e:
            logger.error(f"Could not persist session {session.session_id}: {e}")

    def enqueue(self, item: UploadItem) -> UploadSession:
        """
        Create a session for an item and start transferring it.

        The source file is copied into the session store first, so the
        upload survives the source disappearing.

        Args:
            item: Item to upload (already confirmed absent on the server)

        Returns:
            The persisted pending session

        Raises:
            UploadError: If the transport is closed
            OSError: If the source cannot be read or the session cannot be persisted
        """
        if self._closed:
            raise UploadError("Transport is closed")

        session_id = str(uuid.uuid4())
        session = UploadSession(
            session_id=session_id,
            stable_id=item.stable_id,
            server_url=self.server_url,
            total_bytes=0,
            filename=item.filename,
            custom_headers={
                AUTHORIZATION_HEADER: self.bearer,
                METADATA_HEADER: encode_upload_metadata(item.upload_metadata()),
            },
        )

        with self._lock:
            self.store.add(session, item.source_path)
            self._sessions[session_id] = session

        self.progress.start(item.stable_id)
        self._submit(session)
        logger.info(f"Enqueued upload {session_id} [item={item.stable_id}, bytes={session.total_bytes}]")
        return session

    def _submit(self, session: UploadSession) -> None:
        with self._lock:
            self._futures = {sid: f for sid, f in self._futures.items() if not f.done()}
            self._cancelled.discard(session.session_id)
            self._futures[session.session_id] = self._executor.submit(self._run, session.session_id)

    def _run(self, session_id: str) -> None:
        try:
            with self._lock:
                session = self._sessions.get(session_id)
            if session is None:
                return
            self._transfer(session)
        except UploadCancelledError:
            logger.info(f"Upload {session_id} cancelled")
            return
        except (UploadError, OSError) as e:
            self._fail(session, str(e))
            return
        except Exception as e:
            logger.exception(f"Unexpected error in upload {session_id}")
            self._fail(session, f"{type(e).__name__}: {e}")
            return
        finally:
            with self._lock:
                self._cancelled.discard(session_id)

        self._finish(session)

    def _check_cancelled(self, session: UploadSession) -> None:
        if self._aborted.is_set() or session.session_id in self._cancelled:
            raise UploadCancelledError(session.session_id)

    def _transfer(self, session: UploadSession) -> None:
        """Run the upload, retrying transient failures with exponential backoff."""
        last_error: Optional[UploadError] = None

        for attempt in range(self.max_retries + 1):
            self._check_cancelled(session)
            try:
                self._transfer_once(session)
                return
            except OffsetMismatchError as e:
                logger.warning(f"Upload {session.session_id}: {e}, re-syncing offset")
                last_error = e
            except UploadExpiredError as e:
                logger.warning(f"Upload {session.session_id}: {e}, recreating")
                session.upload_url = None
                session.bytes_uploaded = 0
                last_error = e
            except TransientUploadError as e:
                last_error = e

            if attempt < self.max_retries:
                delay = self.retry_base_delay * (self.retry_backoff_multiplier ** attempt)
                logger.warning(
                    f"Upload {session.session_id} attempt {attempt + 1} failed: {last_error}, "
                    f"retrying in {delay}s"
                )
                self._aborted.wait(delay)

        logger.error(f"Upload {session.session_id} failed after {self.max_retries + 1} attempt(s)")
        raise last_error

    def _transfer_once(self, session: UploadSession) -> None:
        tus = TusClient(self.session, session.server_url)

        if session.upload_url is None:
            session.upload_url = tus.create(session.total_bytes, session.custom_headers)
            offset = 0
        else:
            offset = tus.get_offset(session.upload_url, session.custom_headers)

        session.status = SessionStatus.UPLOADING
        session.bytes_uploaded = offset
        self._checkpoint(session)

        with open(self.store.cache_path(session.session_id), "rb") as f:
            while offset < session.total_bytes:
                self._check_cancelled(session)
                f.seek(offset)
                data = f.read(self.chunk_size)
                if not data:
                    raise FatalUploadError(
                        f"cached file shorter than expected ({offset}/{session.total_bytes})"
                    )
                offset = tus.upload_chunk(session.upload_url, offset, data, session.custom_headers)
                session.bytes_uploaded = offset
                self._checkpoint(session)

    def _checkpoint(self, session: UploadSession) -> None:
        """Persist byte progress, then report it."""
        with self._lock:
            self._check_cancelled(session)
            self.store.save(session)
        self.progress.update(session.stable_id, session.rate)

    def _finish(self, session: UploadSession) -> None:
        session.status = SessionStatus.COMPLETED
        session.error = None
        self.progress.complete(session.stable_id)
        with self._lock:
            self._sessions.pop(session.session_id, None)
            self.store.remove(session.session_id)
            self.store.remove_cache(session.session_id)
        logger.info(f"Upload {session.session_id} completed [item={session.stable_id}]")

    def _fail(self, session: UploadSession, error: str) -> None:
        with self._lock:
            if session.session_id in self._cancelled:
                return
            session.status = SessionStatus.FAILED
            session.error = error
            self._save_quietly(session)
        self.progress.remove(session.stable_id)
        logger.error(f"Upload {session.session_id} failed [item={session.stable_id}]: {error}")

    def retry(self, session_id: str) -> UploadSession:
        """
        Resume a failed session from the server's offset.

        Raises:
            SessionNotFoundError: If the session is unknown
            UploadError: If the transport is closed
        """
        if self._closed:
            raise UploadError("Transport is closed")

        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(f"Session not found: {session_id}")
            if session.is_active:
                return session
            session.status = SessionStatus.PENDING
            session.error = None
            self.store.save(session)

        self.progress.start(session.stable_id)
        self.progress.update(session.stable_id, session.rate)
        self._submit(session)
        logger.info(f"Retrying upload {session_id} [item={session.stable_id}]")
        return session

    def cancel(self, session_id: str) -> bool:
        """
        Stop a session and forget it. The cached copy is left for ``remove_cache``.

        Returns:
            True if the session existed
        """
        with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is None:
                return False
            future = self._futures.pop(session_id, None)
            if future is not None and not future.cancel() and not future.done():
                self._cancelled.add(session_id)
            self.store.remove(session_id)

        self.progress.remove(session.stable_id)
        logger.info(f"Cancelled upload {session_id} [item={session.stable_id}]")
        return True

    def remove_cache(self, session_id: str) -> bool:
        return self.store.remove_cache(session_id)

    def _matches_current(self, session: UploadSession) -> bool:
        stored = urlsplit(session.server_url)
        current = urlsplit(self.server_url)
        same_server = (stored.scheme, stored.netloc) == (current.scheme, current.netloc)
        same_key = session.custom_headers.get(AUTHORIZATION_HEADER) == self.bearer
        return same_server and same_key

    def retry_failed_uploads(self) -> Tuple[List[str], List[str]]:
        """
        Resume failed sessions that belong to the current configuration.

        Sessions created for another server or key are never resumed: they
        are cancelled and their cached files deleted.

        Returns:
            Tuple of (retried session ids, cancelled session ids)
        """
        retried, cancelled = [], []
        for session in self.failed_sessions():
            if self._matches_current(session):
                self.retry(session.session_id)
                retried.append(session.session_id)
            else:
                logger.warning(
                    f"Dropping upload {session.session_id}: created for another server or key"
                )
                self.cancel(session.session_id)
                self.remove_cache(session.session_id)
                cancelled.append(session.session_id)

        if retried or cancelled:
            logger.info(f"Failed uploads: {len(retried)} retried, {len(cancelled)} cancelled")
        return retried, cancelled

    def remaining_uploads(self) -> int:
        """Number of sessions still pending or uploading (failed ones excluded)."""
        with self._lock:
            return sum(1 for session in self._sessions.values() if session.is_active)

    def failed_sessions(self) -> List[UploadSession]:
        with self._lock:
            return [s for s in self._sessions.values() if s.status is SessionStatus.FAILED]

    def sessions(self) -> List[UploadSession]:
        with self._lock:
            return list(self._sessions.values())

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until no transfer is running.

        Returns:
            True if idle, False if the timeout expired first
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._lock:
                pending = [f for f in self._futures.values() if not f.done()]
            if not pending:
                return True
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                return False
            futures_wait(pending, timeout=remaining)

    def close(self, abort: bool = False) -> None:
        """
        Stop accepting work and shut the worker pool down.

        Args:
            abort: Stop running transfers at the next chunk boundary and drop
                   queued ones instead of finishing them. Their sessions stay on
                   disk and are resumed as failed sessions by the next transport.
        """
        self._closed = True
        if abort:
            self._aborted.set()
        self._executor.shutdown(wait=True, cancel_futures=abort)
        if self._owns_session:
            self.session.close()

    def __enter__(self) -> "ChunkedUploadTransport":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
