"""HTTP client for the metadata server (existence checks, deletes, media fetches)."""

from typing import Callable, Optional, Type, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from common.constants import DEFAULT_TIMEOUT_SECONDS
from common.logging_config import get_logger
from catalog.schemas import (
    LabelsResponse,
    MessageResponse,
    MetadataResponse,
    RemoteMetadataRecord,
)
from catalog.types import CatalogLookup

logger = get_logger(__name__)

ROUTE_METADATA = "metadata"
ROUTE_METADATA_BY_ID = "metadata-by-id"
ROUTE_METADATA_BY_FILEKEY = "metadata-by-filekey"
ROUTE_METADATA_BY_ITEM_ID = "metadata-by-item-id"
ROUTE_LABELS = "labels"
ROUTE_FILE = "file"
ROUTE_THUMBNAIL = "thumbnail"

ResponseModel = TypeVar("ResponseModel", bound=BaseModel)


class RemoteCatalogClient:
    """
    Thin client for the server's metadata API.

    Every call fails closed: network errors, unexpected status codes and
    undecodable bodies are logged and turned into ``None``/``False`` (or a
    ``CatalogLookup.error``) instead of exceptions. There are no retries
    here; the caller owns retry policy.
    """

    def __init__(
        self,
        server_host: str,
        api_key: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        """
        Initialize catalog client.

        Args:
            server_host: Server base URL including scheme (e.g. "https://photos.example.com")
            api_key: API key sent as the api_key query parameter
            timeout: Request timeout in seconds
        """
        self.server_host = server_host.rstrip("/")
        self.api_key = api_key
        self.session = httpx.Client(base_url=self.server_host or "http://unconfigured", timeout=timeout)
        logger.info(f"Initialized RemoteCatalogClient [server_host={self.server_host}]")

    @property
    def is_configured(self) -> bool:
        return bool(self.server_host and self.api_key)

    def _build_path(self, route: str = "", parameter: Optional[str] = None) -> str:
        path = f"/{route}"
        if parameter is not None:
            path += "/" + quote(str(parameter), safe="")
        return path

    def _send(
        self,
        method: str,
        route: str = "",
        parameter: Optional[str] = None,
        json_body=None,
    ) -> httpx.Response:
        """
        Issue a request with the api_key query parameter.

        Raises:
            ValueError: If server host or API key are not configured
            httpx.HTTPError: On network failure
        """
        if not self.is_configured:
            raise ValueError("Server host and API key must be configured")

        path = self._build_path(route, parameter)
        response = self.session.request(
            method,
            path,
            params={"api_key": self.api_key},
            json=json_body,
        )
        logger.debug(f"Response received: {method} {path} status={response.status_code}")
        return response

    def _fetch(
        self,
        method: str,
        route: str = "",
        parameter: Optional[str] = None,
        json_body=None,
    ) -> Optional[httpx.Response]:
        try:
            return self._send(method, route, parameter, json_body)
        except ValueError as e:
            logger.warning(f"Skipping {method} /{route}: {e}")
        except httpx.HTTPError as e:
            logger.error(f"Request failed: {method} /{route} error={type(e).__name__}: {e}")
        return None

    @staticmethod
    def _decode(model: Type[ResponseModel], response: httpx.Response) -> Optional[ResponseModel]:
        if not response.content:
            logger.warning(f"Empty response body from {response.request.url.path}")
            return None
        try:
            return model.model_validate_json(response.content)
        except ValidationError as e:
            logger.warning(
                f"Failed to decode {model.__name__} from {response.request.url.path}: "
                f"{e.error_count()} error(s)"
            )
            return None

    def health_check(self) -> bool:
        """
        Check that the server is reachable and accepts the API key.

        Returns:
            True only on HTTP 200 with a well-formed body
        """
        response = self._fetch("GET")
        if response is None:
            return False

        payload = self._decode(MessageResponse, response)
        if payload is None:
            return False

        if response.status_code == 200:
            return True

        logger.warning(f"Health check failed({response.status_code}): {payload.message or 'Unknown'}")
        return False

    def _lookup(self, route: str, parameter: str) -> CatalogLookup:
        response = self._fetch("GET", route, parameter)
        if response is None:
            return CatalogLookup.error("request failed")

        if response.status_code == 404:
            return CatalogLookup.not_found("404")

        if response.status_code != 200:
            return CatalogLookup.error(f"unexpected status {response.status_code}")

        payload = self._decode(MetadataResponse, response)
        if payload is None:
            return CatalogLookup.error("undecodable response")

        if not payload.body:
            logger.debug(f"No data returned for /{route}/{parameter}: {payload.message or 'Unknown'}")
            return CatalogLookup.not_found(payload.message or "")

        return CatalogLookup.found(payload.body[0])

    def lookup_by_item_id(self, item_id: str) -> CatalogLookup:
        """
        Existence check by client-supplied item id, distinguishing absence
        from failure.

        Args:
            item_id: Stable id of the local asset

        Returns:
            CatalogLookup with status FOUND, NOT_FOUND or ERROR
        """
        return self._lookup(ROUTE_METADATA_BY_ITEM_ID, item_id)

    def get_by_item_id(self, item_id: str) -> Optional[RemoteMetadataRecord]:
        """Record for an item id, or None when absent or on any failure."""
        return self._lookup(ROUTE_METADATA_BY_ITEM_ID, item_id).record

    def get_by_id(self, record_id: int) -> Optional[RemoteMetadataRecord]:
        return self._lookup(ROUTE_METADATA_BY_ID, str(record_id)).record

    def get_by_filekey(self, filekey: str) -> Optional[RemoteMetadataRecord]:
        return self._lookup(ROUTE_METADATA_BY_FILEKEY, filekey).record

    def list_records(self) -> list[RemoteMetadataRecord]:
        """
        List all metadata records visible to the API key.

        Returns:
            Records, or an empty list on any failure
        """
        response = self._fetch("GET", ROUTE_METADATA)
        if response is None or response.status_code != 200:
            return []
        payload = self._decode(MetadataResponse, response)
        if payload is None or payload.body is None:
            return []
        return payload.body

    def list_labels(self) -> dict[int, list[str]]:
        """
        Labels grouped by metadata record id.

        Returns:
            Mapping of record id to label names (empty on failure)
        """
        response = self._fetch("GET", ROUTE_LABELS)
        if response is None or response.status_code != 200:
            return {}
        payload = self._decode(LabelsResponse, response)
        if payload is None or payload.body is None:
            return {}

        labels: dict[int, list[str]] = {}
        for label in payload.body:
            labels.setdefault(label.metadata_id, []).append(label.labelname)
        return labels

    def upload_labels(self, item_id: str, labels: list[str]) -> bool:
        """
        Attach classifier labels to an already uploaded item.

        Returns:
            True on a 2xx response
        """
        response = self._fetch("POST", ROUTE_LABELS, item_id, json_body=list(labels))
        if response is None:
            return False
        if 200 <= response.status_code < 300:
            return True
        payload = self._decode(MessageResponse, response)
        message = payload.message if payload and payload.message else "Unknown"
        logger.warning(f"Uploading labels failed({response.status_code}): {message}")
        return False

    def delete_record(self, record_id: int) -> tuple[int, str]:
        """
        Delete a stored file by its numeric record id.

        Args:
            record_id: Numeric id of the metadata record

        Returns:
            Tuple of (status_code, message). status_code is 0 when no
            response was received; the caller decides what 2xx means.
        """
        try:
            response = self._send("DELETE", ROUTE_FILE, str(record_id))
        except (ValueError, httpx.HTTPError) as e:
            logger.error(f"Delete failed for record {record_id}: {e}")
            return 0, str(e)

        payload = self._decode(MessageResponse, response)
        message = payload.message if payload and payload.message else (response.text or "Unknown")

        if 200 <= response.status_code < 300:
            logger.info(f"Delete successful({response.status_code}): {message}")
        else:
            logger.warning(f"Delete failed({response.status_code}): {message}")
        return response.status_code, message

    def file_url(self, filekey: str) -> Optional[str]:
        """Absolute URL of a stored file (used for video streaming), or None if unconfigured."""
        if not self.is_configured:
            return None
        url = httpx.URL(self.server_host + self._build_path(ROUTE_FILE, filekey))
        return str(url.copy_merge_params({"api_key": self.api_key}))

    def download_file(
        self,
        filekey: str,
        on_progress: Optional[Callable[[int, int], None]] = None,
        route: str = ROUTE_FILE,
    ) -> Optional[bytes]:
        """
        Download a stored file (or its thumbnail), streaming the body.

        Args:
            filekey: Server-assigned file key
            on_progress: Called with (bytes_received, total_bytes); total is 0 when unknown
            route: 'file' for the full-size media, 'thumbnail' for the preview

        Returns:
            File content, or None on any failure
        """
        if not self.is_configured:
            logger.warning(f"Skipping download of {filekey}: server not configured")
            return None

        path = self._build_path(route, filekey)
        try:
            with self.session.stream("GET", path, params={"api_key": self.api_key}) as response:
                if response.status_code != 200:
                    response.read()
                    logger.warning(f"Download failed({response.status_code}): {path}")
                    return None

                total_size = int(response.headers.get("Content-Length", 0))
                received = 0
                chunks = []
                for chunk in response.iter_bytes(chunk_size=64 * 1024):
                    chunks.append(chunk)
                    received += len(chunk)
                    if on_progress is not None:
                        on_progress(received, total_size)
                return b"".join(chunks)
        except httpx.HTTPError as e:
            logger.error(f"Failed to download {path}: {type(e).__name__}: {e}")
            return None

    def get_file_data(
        self,
        filekey: str,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> Optional[bytes]:
        return self.download_file(filekey, on_progress=on_progress)

    def get_thumbnail(self, filekey: str) -> Optional[bytes]:
        return self.download_file(filekey, route=ROUTE_THUMBNAIL)

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()

    def __enter__(self) -> "RemoteCatalogClient":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
