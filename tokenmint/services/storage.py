# tokenmint/services/storage.py
# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Joltkin LLC.
"""
Off-chain storage for token images and JSON metadata.

Two drivers share the same two-method shape (`upload`, `upload_json`):

- `PinataStorage` pins content to IPFS over Pinata's HTTP API (requests) and
  returns gateway URIs that wallets and explorers can fetch.
- `LocalStorage` copies content into a directory and returns `file://` URIs.
  Useful for offline dry-runs and tests; the URIs are not resolvable by
  anyone else, so do not put them on-chain outside a local validator.

`upload_token_assets()` performs the image → metadata JSON sequence used by
both scripts. `fetch_offchain_metadata()` reads a previously uploaded JSON
document back so an update can keep the fields it does not change.
"""

from __future__ import annotations

import hashlib
import io
import json
import logging
import pathlib
import re
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any, Protocol

import requests
from PIL import Image, UnidentifiedImageError

from ..core.config import Settings

log = logging.getLogger(__name__)

OCTET_STREAM = "application/octet-stream"
JSON_CONTENT_TYPE = "application/json"


class StorageError(RuntimeError):
    """Upload failed or the storage driver is misconfigured."""


# =============================================================================
# Files
# =============================================================================


def sniff_content_type(buffer: bytes, file_name: str = "") -> str:
    """Best-effort MIME type for `buffer`.

    Images are identified by content with Pillow; `.json` files by extension;
    anything else is `application/octet-stream`.
    """
    try:
        with Image.open(io.BytesIO(buffer)) as img:
            mime = Image.MIME.get(img.format or "")
    except (UnidentifiedImageError, OSError):
        mime = None
    if mime:
        return mime
    if file_name.lower().endswith(".json"):
        return JSON_CONTENT_TYPE
    return OCTET_STREAM


@dataclass(frozen=True)
class StorageFile:
    """Bytes plus the name and content type reported to the storage service."""

    buffer: bytes
    file_name: str
    content_type: str = OCTET_STREAM

    @classmethod
    def from_path(cls, path: str | pathlib.Path) -> StorageFile:
        p = pathlib.Path(path)
        if not p.is_file():
            raise FileNotFoundError(f"File not found: {p}")
        buffer = p.read_bytes()
        return cls(buffer, p.name, sniff_content_type(buffer, p.name))

    @classmethod
    def from_json(cls, obj: Any, file_name: str = "metadata.json") -> StorageFile:
        body = json.dumps(obj, ensure_ascii=False).encode("utf-8")
        return cls(body, file_name, JSON_CONTENT_TYPE)


# =============================================================================
# Drivers
# =============================================================================


class StorageDriver(Protocol):
    def upload(self, file: StorageFile) -> str: ...

    def upload_json(self, obj: Any) -> str: ...


class PinataStorage:
    """Pin files and JSON to IPFS via the Pinata pinning API."""

    def __init__(
        self,
        jwt: str,
        *,
        api_url: str = "https://api.pinata.cloud",
        gateway_url: str = "https://gateway.pinata.cloud/ipfs",
        timeout: float = 60,
        session: requests.Session | None = None,
    ) -> None:
        if not jwt:
            raise StorageError("Set PINATA_JWT to upload to IPFS (or STORAGE_DRIVER=local)")
        self.api_url = api_url.rstrip("/")
        self.gateway_url = gateway_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers["Authorization"] = f"Bearer {jwt}"

    def _uri_from(self, resp: requests.Response) -> str:
        try:
            resp.raise_for_status()
            cid = resp.json()["IpfsHash"]
        except requests.RequestException as e:
            raise StorageError(f"IPFS upload failed: {e}") from e
        except (ValueError, KeyError) as e:
            raise StorageError(f"Unexpected pinning response: {resp.text[:200]}") from e
        return f"{self.gateway_url}/{cid}"

    def upload(self, file: StorageFile) -> str:
        try:
            resp = self.session.post(
                f"{self.api_url}/pinning/pinFileToIPFS",
                files={"file": (file.file_name, file.buffer, file.content_type)},
                data={"pinataMetadata": json.dumps({"name": file.file_name})},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise StorageError(f"IPFS upload failed: {e}") from e
        return self._uri_from(resp)

    def upload_json(self, obj: Any) -> str:
        try:
            resp = self.session.post(
                f"{self.api_url}/pinning/pinJSONToIPFS",
                json={"pinataContent": obj},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise StorageError(f"IPFS upload failed: {e}") from e
        return self._uri_from(resp)


class LocalStorage:
    """Content-addressed copies under `directory`, returned as file:// URIs."""

    def __init__(self, directory: str | pathlib.Path) -> None:
        self.directory = pathlib.Path(directory)

    def _write(self, buffer: bytes, file_name: str) -> str:
        self.directory.mkdir(parents=True, exist_ok=True)
        digest = hashlib.sha256(buffer).hexdigest()[:16]
        stem = re.sub(r"[^A-Za-z0-9_.\-]", "_", file_name) or "file"
        dest = self.directory / f"{digest}-{stem}"
        dest.write_bytes(buffer)
        return dest.resolve().as_uri()

    def upload(self, file: StorageFile) -> str:
        return self._write(file.buffer, file.file_name)

    def upload_json(self, obj: Any) -> str:
        file = StorageFile.from_json(obj)
        return self._write(file.buffer, file.file_name)


def make_storage(cfg: Settings) -> StorageDriver:
    """Construct the driver named by `cfg.STORAGE_DRIVER`."""
    driver = cfg.STORAGE_DRIVER.strip().lower()
    if driver == "pinata":
        return PinataStorage(
            cfg.PINATA_JWT,
            api_url=cfg.PINATA_API_URL,
            gateway_url=cfg.IPFS_GATEWAY_URL,
            timeout=cfg.STORAGE_TIMEOUT,
        )
    if driver == "local":
        return LocalStorage(cfg.LOCAL_STORAGE_DIR)
    raise StorageError(f"Unknown STORAGE_DRIVER {cfg.STORAGE_DRIVER!r} (pinata|local)")


# =============================================================================
# Token assets
# =============================================================================


def build_offchain_metadata(
    name: str,
    description: str,
    image_uri: str,
    *,
    symbol: str | None = None,
    image_type: str | None = None,
) -> dict[str, Any]:
    """JSON document the on-chain `uri` points at (Metaplex token standard)."""
    meta: dict[str, Any] = {"name": name}
    if symbol:
        meta["symbol"] = symbol
    meta["description"] = description
    meta["image"] = image_uri
    if image_type:
        meta["properties"] = {"files": [{"uri": image_uri, "type": image_type}]}
    return meta


def upload_token_assets(
    storage: StorageDriver,
    image_path: str | pathlib.Path,
    *,
    name: str,
    description: str,
    symbol: str | None = None,
    base: dict[str, Any] | None = None,
) -> tuple[str, str]:
    """
    Upload the token image, then the JSON metadata referencing it.

    Keys of `base` (a previously uploaded document) that are not rebuilt here
    are carried over unchanged. Its `properties` describe the old image and
    are dropped.

    Returns:
        (image_uri, metadata_uri)

    Raises:
        FileNotFoundError: if `image_path` does not exist.
        StorageError: if either upload fails.
    """
    image = StorageFile.from_path(image_path)
    image_uri = storage.upload(image)
    log.info("image uri: %s", image_uri)

    meta = {k: v for k, v in (base or {}).items() if k != "properties"}
    meta.update(build_offchain_metadata(
        name,
        description,
        image_uri,
        symbol=symbol,
        image_type=image.content_type if image.content_type != OCTET_STREAM else None,
    ))
    metadata_uri = storage.upload_json(meta)
    log.info("metadata uri: %s", metadata_uri)
    return image_uri, metadata_uri


def fetch_offchain_metadata(
    uri: str,
    *,
    timeout: float = 60,
    session: requests.Session | None = None,
) -> dict[str, Any]:
    """
    Load the JSON document an on-chain `uri` points at.

    `file://` URIs (written by `LocalStorage`) are read from disk; anything
    else is fetched over HTTP.

    Raises:
        StorageError: if the document cannot be read or is not a JSON object.
    """
    if uri.startswith("file://"):
        path = pathlib.Path(urllib.request.url2pathname(urllib.parse.urlparse(uri).path))
        try:
            raw = path.read_bytes()
        except OSError as e:
            raise StorageError(f"Cannot read metadata at {uri}: {e}") from e
    else:
        try:
            resp = (session or requests).get(uri, timeout=timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise StorageError(f"Cannot fetch metadata at {uri}: {e}") from e
        raw = resp.content
    try:
        doc = json.loads(raw)
    except ValueError as e:
        raise StorageError(f"Metadata at {uri} is not valid JSON: {e}") from e
    if not isinstance(doc, dict):
        raise StorageError(f"Metadata at {uri} is not a JSON object")
    return doc
