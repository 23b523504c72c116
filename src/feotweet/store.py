"""Client for the append-only content store that tweets are mirrored into.

Every write is signed by the destination identity's Ed25519 key. A user ID is
the hex-encoded public key, so the store can verify writes without any other
registration. The store keeps its own history; the newest post it holds for a
user is where the next sync picks up.
"""

import logging
from collections.abc import Iterator
from typing import BinaryIO

import httpx
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 64 * 1024


class StoreError(RuntimeError):
    """Non-success response from the content store."""

    def __init__(self, method: str, url: str, status_code: int, body: str = ""):
        message = f"{method} {url} failed with status {status_code}"
        if body:
            message += f": {body[:500]}"
        super().__init__(message)
        self.status_code = status_code


class Signer:
    """Signs document bytes on behalf of one user ID."""

    def __init__(self, private_key: Ed25519PrivateKey):
        self._key = private_key

    @classmethod
    def from_hex(cls, seed_hex: str) -> "Signer":
        try:
            seed = bytes.fromhex(seed_hex)
        except ValueError as e:
            raise ValueError("Private key is not valid hex") from e
        if len(seed) != 32:
            raise ValueError(f"Private key must be 32 bytes, got {len(seed)}")
        return cls(Ed25519PrivateKey.from_private_bytes(seed))

    @classmethod
    def generate(cls) -> "Signer":
        return cls(Ed25519PrivateKey.generate())

    @property
    def user_id(self) -> str:
        raw = self._key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        return raw.hex()

    @property
    def private_key_hex(self) -> str:
        raw = self._key.private_bytes(
            Encoding.Raw, PrivateFormat.Raw, NoEncryption()
        )
        return raw.hex()

    def sign(self, data: bytes) -> bytes:
        return self._key.sign(data)


class StoreClient:
    def __init__(self, base_url: str, http: httpx.Client | None = None):
        self._base_url = base_url.rstrip("/")
        self._client = http or httpx.Client(timeout=30.0, follow_redirects=True)

    def user_items(self, user_id: str) -> Iterator[dict]:
        """Item entries for a user, newest first."""
        before: int | None = None
        while True:
            params = {} if before is None else {"before": str(before)}
            response = self._request("GET", f"/u/{user_id}/items", params=params)
            items = response.json().get("items", [])
            if not items:
                return

            yield from items

            oldest = items[-1]["timestamp_ms_utc"]
            if before is not None and oldest >= before:
                logger.warning(
                    "Store returned items at or after before=%d. Stopping.", before
                )
                return
            before = oldest

    def latest_post_timestamp(self, user_id: str) -> int | None:
        """Timestamp (ms UTC) of the newest post for user_id, if any."""
        for entry in self.user_items(user_id):
            if entry.get("item_type") != "post":
                continue
            return int(entry["timestamp_ms_utc"])
        return None

    def put_item(self, user_id: str, signature: bytes, data: bytes) -> None:
        self._request(
            "PUT",
            f"/u/{user_id}/i/{signature.hex()}",
            content=data,
            headers={"content-type": "application/octet-stream"},
        )

    def put_attachment(
        self,
        user_id: str,
        signature: bytes,
        name: str,
        size: int,
        stream: BinaryIO,
    ) -> None:
        self._request(
            "PUT",
            f"/u/{user_id}/i/{signature.hex()}/files/{name}",
            content=_iter_chunks(stream),
            headers={
                "content-type": "application/octet-stream",
                "content-length": str(size),
            },
        )

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self._base_url}{path}"
        response = self._client.request(method, url, **kwargs)
        if not response.is_success:
            raise StoreError(method, url, response.status_code, response.text)
        return response

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


def _iter_chunks(stream: BinaryIO) -> Iterator[bytes]:
    while chunk := stream.read(UPLOAD_CHUNK_SIZE):
        yield chunk
