"""
Content-Addressable Store Clients
=================================

Publish and fetch opaque blobs by content hash.

Content hash: CIDv1 with the ``raw`` codec and a sha2-256 multihash,
multibase base32 (lower-case, no padding), e.g. ``bafkrei...``. This is
exactly the CID an IPFS node assigns to a single raw block, so the hash
can be computed locally and checked against what the node reports.

Backends:
- InMemoryContentStore: process-local dict, for tests and development
- IPFSContentStore: IPFS (Kubo) HTTP API via ``requests``
"""

import base64
import hashlib
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

import requests

from .config import RegistrySettings
from .errors import ContentIntegrityError, NotFound, StoreError, StoreUnavailable

logger = logging.getLogger(__name__)

# CIDv1 prefix: version 1, raw codec (0x55), sha2-256 (0x12), 32-byte digest
_CID_PREFIX = bytes([0x01, 0x55, 0x12, 0x20])
_MULTIBASE_BASE32 = "b"


def content_hash(data: bytes) -> str:
    """Compute the content hash of a blob"""
    digest = hashlib.sha256(data).digest()
    encoded = base64.b32encode(_CID_PREFIX + digest).decode("ascii")
    return _MULTIBASE_BASE32 + encoded.lower().rstrip("=")


def is_raw_cid(value: str) -> bool:
    """True if ``value`` is a content hash in the format produced above"""
    if not isinstance(value, str) or not value.startswith(_MULTIBASE_BASE32):
        return False
    body = value[1:].upper()
    body += "=" * (-len(body) % 8)
    try:
        decoded = base64.b32decode(body)
    except ValueError:
        return False
    return len(decoded) == len(_CID_PREFIX) + 32 and decoded.startswith(_CID_PREFIX)


def verify_content(expected_hash: str, data: bytes) -> None:
    """
    Check fetched bytes against their hash

    Only hashes in the CIDv1 raw form can be checked locally; others
    (e.g. legacy ``Qm...`` CIDs) are trusted to the store.

    Raises:
        ContentIntegrityError: if the bytes do not match
    """
    if is_raw_cid(expected_hash) and content_hash(data) != expected_hash:
        raise ContentIntegrityError(
            f"Store returned bytes that do not match {expected_hash}"
        )


class ContentStore(ABC):
    """Interface of a content-addressable blob store"""

    @abstractmethod
    def publish(self, data: bytes) -> str:
        """
        Store a blob

        Publishing identical bytes twice returns the same hash.

        Raises:
            StoreUnavailable: transport failure (retryable)
        """

    @abstractmethod
    def fetch(self, content_hash: str) -> bytes:
        """
        Fetch a blob by hash

        Raises:
            NotFound: nothing stored under the hash
            StoreUnavailable: transport failure (retryable)
        """

    def close(self) -> None:
        """Release connections"""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class InMemoryContentStore(ContentStore):
    """Process-local content store"""

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def publish(self, data: bytes) -> str:
        key = content_hash(data)
        with self._lock:
            self._blobs.setdefault(key, bytes(data))
        logger.debug("Stored %d bytes under %s", len(data), key)
        return key

    def fetch(self, content_hash: str) -> bytes:
        with self._lock:
            data = self._blobs.get(content_hash)
        if data is None:
            raise NotFound(f"No content stored under {content_hash}")
        return data

    def __contains__(self, content_hash: str) -> bool:
        with self._lock:
            return content_hash in self._blobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._blobs)


class IPFSContentStore(ContentStore):
    """
    Content store backed by an IPFS node's HTTP API

    Blobs are stored as single raw blocks (``block/put``), so the CID the
    node returns is the locally computed content hash.
    """

    def __init__(
        self,
        api_url: str = "http://127.0.0.1:5001",
        timeout: float = 10.0,
        pin: bool = True,
        session: Optional[requests.Session] = None
    ):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.pin = pin
        self._session = session or requests.Session()

    # ==================== PUBLISH / FETCH ====================

    def publish(self, data: bytes) -> str:
        expected = content_hash(data)
        response = self._post(
            "block/put",
            params={
                "cid-codec": "raw",
                "mhtype": "sha2-256",
                "pin": "true" if self.pin else "false"
            },
            files={"data": ("blob", bytes(data), "application/octet-stream")}
        )
        if 400 <= response.status_code < 500:
            raise StoreError(
                f"IPFS rejected block/put ({response.status_code}): {_error_message(response)}"
            )
        if response.status_code != 200:
            raise StoreUnavailable(
                f"IPFS block/put failed ({response.status_code}): {_error_message(response)}"
            )

        try:
            returned = response.json()["Key"]
        except (ValueError, KeyError, TypeError):
            raise StoreUnavailable("IPFS block/put returned an unexpected response") from None

        if returned != expected:
            raise ContentIntegrityError(
                f"IPFS node stored blob as {returned}, expected {expected}"
            )

        logger.info("Published %d bytes to IPFS as %s", len(data), returned)
        return returned

    def fetch(self, content_hash: str) -> bytes:
        response = self._post("block/get", params={"arg": content_hash})

        if response.status_code == 200:
            data = response.content
            verify_content(content_hash, data)
            logger.debug("Fetched %d bytes for %s", len(data), content_hash)
            return data

        message = _error_message(response)
        if 400 <= response.status_code < 500 or _is_not_found(message):
            raise NotFound(f"IPFS has no block {content_hash}: {message}")
        raise StoreUnavailable(
            f"IPFS block/get failed ({response.status_code}): {message}"
        )

    def close(self) -> None:
        self._session.close()

    # ==================== TRANSPORT ====================

    def _post(self, command: str, **kwargs) -> requests.Response:
        url = f"{self.api_url}/api/v0/{command}"
        try:
            return self._session.post(url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise StoreUnavailable(f"IPFS request to {url} failed: {e}") from e


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and "Message" in body:
        return str(body["Message"])
    return response.text


def _is_not_found(message: str) -> bool:
    lowered = message.lower()
    return "not found" in lowered or "could not find" in lowered


def create_content_store(settings: RegistrySettings) -> ContentStore:
    """Build the content store selected by configuration"""
    backend = settings.STORE_BACKEND.lower()
    if backend == "memory":
        return InMemoryContentStore()
    if backend == "ipfs":
        return IPFSContentStore(
            api_url=settings.IPFS_API_URL,
            timeout=settings.IPFS_TIMEOUT,
            pin=settings.IPFS_PIN
        )
    raise ValueError(f"Unknown store backend: {settings.STORE_BACKEND}")
