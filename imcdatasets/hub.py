"""Remote store client with a local, content-stable download cache.

Each :class:`~imcdatasets.registry.CacheKey` maps to exactly one remote file
and one cache location (``<cache_root>/<relative_path>``). Downloads stream
into a process-unique ``.part`` file that is only renamed into place once the
byte count (and checksum, when the catalog declares one) checks out, so an
interrupted or concurrent download is never observed as a complete entry.
Duplicate concurrent downloads of the same key are possible and harmless.
"""

from __future__ import annotations

import hashlib
import http.client
import logging
import os
import urllib.error
import urllib.request
import uuid
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

from .config import HubConfig
from .errors import (
    ChecksumMismatchError,
    RemoteArtifactMissingError,
    RemoteFetchError,
    RemoteStoreError,
)
from .registry import CacheKey, Catalog, HubRecord

LOG = logging.getLogger(__name__)

_MISSING_STATUS = {404, 410}
_CHUNK_BYTES = 1024 * 1024


class HubClient:
    """Resolve cache keys to local files, downloading on first access."""

    def __init__(self, catalog: Catalog, config: Optional[HubConfig] = None) -> None:
        self.catalog = catalog
        self.config = config or HubConfig.from_env()

    def url_for(self, key: CacheKey) -> str:
        return f"{self.config.base_url}/{key.relative_path}"

    def cache_path(self, key: CacheKey) -> Path:
        return self.config.cache_root / key.relative_path

    def is_cached(self, key: CacheKey) -> bool:
        return self.cache_path(key).is_file()

    def fetch_metadata(self, key: CacheKey) -> HubRecord:
        """Return the record describing ``key``; never downloads artifact bytes."""

        return self.catalog.hub_record(key)

    def fetch(self, key: CacheKey, *, force: bool = False) -> Path:
        """Return the local path of ``key``, downloading it if needed.

        Args:
            key: Artifact identity.
            force: Re-download and replace the cached copy even if present.
        """

        record = self.catalog.hub_record(key)
        target = self.cache_path(key)
        if target.is_file() and not force:
            LOG.debug("Cache hit for %s at %s", key, target)
            return target

        if force and target.exists():
            LOG.info("Forcing re-download of %s", key)
        self._download(record, target)
        return target

    def _http_request(self, url: str) -> urllib.request.Request:
        return urllib.request.Request(url, headers={"User-Agent": self.config.user_agent})

    def _download(self, record: HubRecord, dest: Path) -> None:
        url = self.url_for(record.key)
        dest.parent.mkdir(parents=True, exist_ok=True)
        tmp_dest = dest.with_name(f"{dest.name}.{os.getpid()}-{uuid.uuid4().hex[:8]}.part")
        LOG.info("Downloading %s -> %s", record.title, dest)
        try:
            with self._open_remote(record, url) as response:
                expected_bytes = _content_length(response, record, url)
                # Local write failures (disk full, permissions) propagate as OSError.
                with _open_part(tmp_dest) as fh:
                    for chunk in _read_chunks(response, record, url):
                        fh.write(chunk)

            actual_bytes = tmp_dest.stat().st_size
            if expected_bytes is not None and actual_bytes != expected_bytes:
                raise RemoteFetchError(
                    f"Partial download for {record.title} from {url}: expected "
                    f"{expected_bytes} bytes, got {actual_bytes} bytes"
                )
            if record.checksum and self.config.verify_checksum:
                _verify_checksum(tmp_dest, record, reported_path=dest)
            elif not record.checksum:
                LOG.debug("No checksum declared for %s; skipping verification", record.title)

            tmp_dest.replace(dest)
        finally:
            if tmp_dest.exists():
                tmp_dest.unlink()

    def _open_remote(self, record: HubRecord, url: str):
        try:
            return urllib.request.urlopen(
                self._http_request(url), timeout=self.config.timeout
            )
        except urllib.error.HTTPError as exc:
            if exc.code in _MISSING_STATUS:
                raise RemoteArtifactMissingError(
                    f"Remote store has no artifact for {record.title} at {url} "
                    f"(HTTP {exc.code})"
                ) from exc
            raise RemoteFetchError(
                f"Failed to download {record.title} from {url}: "
                f"HTTP {exc.code} {exc.reason}"
            ) from exc
        except (OSError, ValueError, http.client.HTTPException) as exc:
            raise RemoteFetchError(
                f"Failed to download {record.title} from {url}: {exc}"
            ) from exc


def _open_part(path: Path) -> BinaryIO:
    return path.open("wb")


def _content_length(response, record: HubRecord, url: str) -> Optional[int]:
    headers = getattr(response, "headers", None)
    value = headers.get("Content-Length") if hasattr(headers, "get") else None
    if not value:
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise RemoteFetchError(
            f"Malformed Content-Length {value!r} for {record.title} from {url}"
        ) from exc


def _read_chunks(response, record: HubRecord, url: str) -> Iterator[bytes]:
    while True:
        try:
            chunk = response.read(_CHUNK_BYTES)
        except (OSError, http.client.HTTPException) as exc:
            raise RemoteFetchError(
                f"Connection lost while downloading {record.title} from {url}: {exc}"
            ) from exc
        if not chunk:
            return
        yield chunk


def _verify_checksum(
    artifact_path: Path, record: HubRecord, *, reported_path: Optional[Path] = None
) -> None:
    algo = record.checksum_type.lower()
    try:
        hasher = hashlib.new(algo)
    except Exception as exc:  # pragma: no cover - unexpected algorithm names
        raise RemoteStoreError(f"Unsupported checksum algorithm: {algo}") from exc

    with artifact_path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK_BYTES), b""):
            hasher.update(chunk)
    digest = hasher.hexdigest()
    expected = str(record.checksum).lower()
    if digest.lower() != expected:
        raise ChecksumMismatchError(
            expected=expected, actual=digest, path=reported_path or artifact_path
        )


__all__ = ["CacheKey", "HubClient", "HubRecord"]
