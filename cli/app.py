"""Explicit wiring of the sync services for one configuration."""

from pathlib import Path
from typing import List, Optional, Tuple

from common.constants import (
    PROGRESS_FILE_NAME,
    SESSIONS_DIR_NAME,
    SETTINGS_FILE_NAME,
    TEMP_DIR_NAME,
)
from common.kv_store import JsonKeyValueStore
from common.logging_config import get_logger
from catalog.catalog_client import RemoteCatalogClient
from cli.config import Config
from syncer.asset_source import DirectoryAssetSource
from syncer.background import PeriodicSyncRunner
from syncer.coordinator import SyncCoordinator
from syncer.media_item import LocalAssetItem, RemoteRecordItem
from syncer.progress import DOWNLOADS, UPLOADS, ProgressTracker
from syncer.settings import SyncSettings
from uploader.session_store import SessionStore
from uploader.transport import ChunkedUploadTransport

logger = get_logger(__name__)


class SyncApp:
    """
    Owns every service of the running app.

    Local state (settings, progress, session store) lives as long as the app.
    Server-bound services (catalog client, transport, coordinator) are
    rebuilt whenever the server or key changes; a rebuilt transport retries
    failed sessions of the new configuration and drops the others.
    """

    def __init__(self, config: Config):
        self.config = config
        data_dir = config.get_data_dir()
        data_dir.mkdir(parents=True, exist_ok=True)

        self.settings = SyncSettings(JsonKeyValueStore(data_dir / SETTINGS_FILE_NAME))
        progress_store = JsonKeyValueStore(data_dir / PROGRESS_FILE_NAME)
        self.uploads = ProgressTracker(progress_store, UPLOADS)
        self.downloads = ProgressTracker(progress_store, DOWNLOADS)
        self.session_store = SessionStore(data_dir / SESSIONS_DIR_NAME)
        self.temp_dir = data_dir / TEMP_DIR_NAME
        self.temp_dir.mkdir(parents=True, exist_ok=True)

        self.catalog: Optional[RemoteCatalogClient] = None
        self.transport: Optional[ChunkedUploadTransport] = None
        self.coordinator: Optional[SyncCoordinator] = None
        self.runner: Optional[PeriodicSyncRunner] = None

        self._connect()

    @property
    def is_configured(self) -> bool:
        return self.catalog is not None

    def _connect(self) -> Tuple[List[str], List[str]]:
        host = self.config.get_server_host()
        api_key = self.config.get_api_key()
        if not host or not api_key:
            logger.info("Server not configured yet")
            return [], []

        retry_config = self.config.get_retry_config()
        self.catalog = RemoteCatalogClient(host, api_key, timeout=self.config.get_timeout())
        self.transport = ChunkedUploadTransport(
            host,
            api_key,
            self.session_store,
            self.uploads,
            timeout=self.config.get_timeout(),
            max_retries=retry_config['max_retries'],
            retry_backoff_multiplier=retry_config['retry_backoff_multiplier'],
            **self.config.get_upload_config(),
        )
        self._build_coordinator()
        return self.transport.retry_failed_uploads()

    def _build_coordinator(self) -> None:
        source_dir = self.config.get_source_dir()
        if self.transport is None or source_dir is None:
            self.coordinator = None
            return
        self.coordinator = SyncCoordinator(
            DirectoryAssetSource(source_dir),
            self.catalog,
            self.transport,
            self.uploads,
            self.settings,
            **self.config.get_sync_config(),
        )

    def _disconnect(self) -> None:
        self.stop_watch()
        if self.coordinator is not None:
            self.coordinator.expire()
        if self.transport is not None:
            self.transport.close(abort=True)
        if self.catalog is not None:
            self.catalog.close()
        self.catalog = self.transport = self.coordinator = None

    def configure(self, host: str, api_key: str) -> Tuple[List[str], List[str]]:
        """
        Switch to another server or key.

        Raises:
            ValueError: If host or key are invalid

        Returns:
            Tuple of (retried session ids, cancelled session ids)
        """
        self.config.set_server(host, api_key)
        self._disconnect()
        return self._connect()

    def set_source(self, path: str) -> Path:
        """
        Choose the media folder.

        Raises:
            ValueError: If the path is not an existing directory
        """
        folder = Path(path).expanduser()
        if not folder.is_dir():
            raise ValueError(f"Not a directory: {folder}")
        if self.coordinator is not None and self.coordinator.is_running:
            raise ValueError("Cannot change the media folder while a sync is running")
        watch_interval = self.runner.interval if self.runner is not None else None
        self.stop_watch()
        self.config.set_source_dir(str(folder))
        self._build_coordinator()
        if watch_interval is not None and self.coordinator is not None:
            self.start_watch(watch_interval)
        return self.config.get_source_dir()

    def start_watch(self, interval: Optional[float] = None) -> PeriodicSyncRunner:
        """
        Start periodic background syncs.

        Raises:
            ValueError: If there is nothing to sync yet
        """
        if self.coordinator is None:
            raise ValueError("Configure a server and a media folder first")
        background = self.config.get_background_config()
        self.stop_watch()
        self.runner = PeriodicSyncRunner(
            self.coordinator,
            interval=interval or background['interval'],
            expires_in=background['expires_in'],
            temp_dir=self.temp_dir,
            session_store=self.session_store,
        )
        self.runner.start()
        return self.runner

    def stop_watch(self) -> bool:
        if self.runner is None:
            return False
        self.runner.stop()
        self.runner = None
        return True

    def pending_items(self, limit: int) -> List[LocalAssetItem]:
        """
        Local media newer than the watermark, oldest first.

        Raises:
            ValueError: If no media folder is set
        """
        source_dir = self.config.get_source_dir()
        if source_dir is None:
            raise ValueError("Media folder not set. Use 'source <dir>' first.")
        source = self.coordinator.source if self.coordinator is not None else DirectoryAssetSource(source_dir)
        descriptors = source.fetch_since(self.settings.get_watermark(), limit)
        return [LocalAssetItem(descriptor, source) for descriptor in descriptors]

    def download(self, filekey: str, destination: str, thumbnail: bool = False) -> Path:
        """
        Save a stored file (or its preview) locally.

        Full-size downloads are tracked in ``downloads``. A destination
        folder receives the file under its server-side name.

        Raises:
            ValueError: If the server is not configured, the key is unknown
                or the download fails
            OSError: If the destination cannot be written

        Returns:
            Path of the written file
        """
        if self.catalog is None:
            raise ValueError("Server not configured")
        record = self.catalog.get_by_filekey(filekey)
        if record is None:
            raise ValueError(f"No stored file with key {filekey}")

        item = RemoteRecordItem(record, self.catalog, self.downloads)
        data = item.get_thumbnail() if thumbnail else item.get_full_media()
        if data is None:
            raise ValueError(f"Download of {item.filename} failed")

        target = Path(destination).expanduser()
        if target.is_dir():
            name = Path(item.filename).name
            if thumbnail:
                name = f"{Path(name).stem}_thumb.jpg"
            target = target / name
        target.write_bytes(data)
        logger.info(f"Saved {item.filename} to {target} ({len(data)} bytes)")
        return target

    def close(self) -> None:
        self._disconnect()
        self.uploads.save()
        self.downloads.save()
