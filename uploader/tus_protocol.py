"""
Minimal tus 1.0.0 client (creation, offset discovery, chunk PATCH).

Only the core protocol plus the creation extension are used. Each method
performs exactly one request and maps the response onto the exceptions in
``uploader.exceptions``; retry policy lives in the transport.
"""

import base64
from typing import Dict, Mapping, Optional

import httpx

from common.constants import TUS_VERSION
from common.logging_config import get_logger
from uploader.exceptions import (
    FatalUploadError,
    OffsetMismatchError,
    TransientUploadError,
    UploadExpiredError,
)

logger = get_logger(__name__)

OFFSET_CONTENT_TYPE = "application/offset+octet-stream"
RETRYABLE_CLIENT_STATUSES = (423, 429)


def encode_upload_metadata(metadata: Mapping[str, str]) -> str:
    """
    Build an Upload-Metadata header value.

    Args:
        metadata: Ordered key/value pairs; keys must not contain spaces or commas

    Returns:
        Comma-joined "key base64(value)" pairs, in the mapping's order
    """
    pairs = []
    for key, value in metadata.items():
        encoded = base64.b64encode(str(value).encode("utf-8")).decode("ascii")
        pairs.append(f"{key} {encoded}")
    return ",".join(pairs)


def decode_upload_metadata(header: str) -> Dict[str, str]:
    """
    Parse an Upload-Metadata header value back into a dict.

    Keys without a value decode to an empty string.

    Raises:
        ValueError: If a value is not valid base64
    """
    metadata: Dict[str, str] = {}
    if not header:
        return metadata
    for pair in header.split(","):
        parts = pair.strip().split(" ", 1)
        if not parts[0]:
            continue
        if len(parts) == 1:
            metadata[parts[0]] = ""
            continue
        try:
            metadata[parts[0]] = base64.b64decode(parts[1], validate=True).decode("utf-8")
        except (ValueError, UnicodeDecodeError) as e:
            raise ValueError(f"Invalid metadata value for key '{parts[0]}': {e}") from e
    return metadata


class TusClient:
    """
    Stateless tus client bound to one creation endpoint.

    The same httpx session may be shared by several worker threads.
    """

    def __init__(self, session: httpx.Client, server_url: str):
        """
        Initialize tus client.

        Args:
            session: HTTP session used for all requests
            server_url: Creation endpoint, e.g. "https://photos.example.com/tus"
        """
        self.session = session
        self.server_url = server_url

    def _headers(self, extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        headers = {"Tus-Resumable": TUS_VERSION}
        if extra:
            headers.update(extra)
        return headers

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return self.session.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise TransientUploadError(f"{method} {url} failed: {type(e).__name__}: {e}") from e

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        status = response.status_code
        if status in (404, 410):
            raise UploadExpiredError(f"{action}: upload no longer exists ({status})")
        if status == 409:
            raise OffsetMismatchError(f"{action}: offset conflict")
        if status >= 500 or status in RETRYABLE_CLIENT_STATUSES:
            raise TransientUploadError(f"{action}: server returned {status}", status_code=status)
        raise FatalUploadError(f"{action}: server returned {status}: {response.text[:200]}", status_code=status)

    @staticmethod
    def _read_offset(response: httpx.Response, action: str) -> int:
        value = response.headers.get("Upload-Offset")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise FatalUploadError(f"{action}: missing or invalid Upload-Offset header ({value!r})")

    def create(self, total_bytes: int, headers: Optional[Mapping[str, str]] = None) -> str:
        """
        Create a new upload.

        Args:
            total_bytes: Size of the whole file
            headers: Custom headers (Authorization, Upload-Metadata)

        Returns:
            Absolute upload URL from the Location header
        """
        request_headers = self._headers(headers)
        request_headers["Upload-Length"] = str(total_bytes)

        response = self._request("POST", self.server_url, headers=request_headers)
        if response.status_code not in (200, 201):
            self._raise_for_status(response, "create")

        location = response.headers.get("Location")
        if not location:
            raise FatalUploadError("create: server did not return a Location header")

        upload_url = str(httpx.URL(self.server_url).join(location))
        logger.debug(f"Upload created [url={upload_url}, length={total_bytes}]")
        return upload_url

    def get_offset(self, upload_url: str, headers: Optional[Mapping[str, str]] = None) -> int:
        """
        Ask the server how many bytes of an upload it has.

        Returns:
            Current Upload-Offset
        """
        response = self._request("HEAD", upload_url, headers=self._headers(headers))
        if response.status_code not in (200, 204):
            self._raise_for_status(response, "head")
        return self._read_offset(response, "head")

    def upload_chunk(
        self,
        upload_url: str,
        offset: int,
        data: bytes,
        headers: Optional[Mapping[str, str]] = None,
    ) -> int:
        """
        Send one chunk starting at ``offset``.

        Returns:
            New offset acknowledged by the server
        """
        request_headers = self._headers(headers)
        request_headers["Upload-Offset"] = str(offset)
        request_headers["Content-Type"] = OFFSET_CONTENT_TYPE

        response = self._request("PATCH", upload_url, headers=request_headers, content=data)
        if response.status_code not in (200, 204):
            self._raise_for_status(response, "patch")

        new_offset = self._read_offset(response, "patch")
        if new_offset < offset:
            raise OffsetMismatchError(f"patch: server offset went backwards ({offset} -> {new_offset})")
        return new_offset
