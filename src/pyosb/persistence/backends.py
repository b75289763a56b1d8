"""File and HTTP key-value backends, and URL based backend selection."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import tempfile
from pathlib import Path
from urllib.parse import urlsplit

import aiohttp

from pyosb.exceptions import OsbConfigError, PersistenceError
from pyosb.persistence.gateway import KeyValueStore, MemoryKeyValueStore

_logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def _check_key(key: str) -> str:
    if not _KEY_PATTERN.match(key):
        raise PersistenceError(f"Invalid storage key {key!r}", key=key)
    return key


class FileKeyValueStore:
    """Stores each key as ``<directory>/<key>.json``.

    Writes go to a temporary file in the same directory followed by an
    atomic :func:`os.replace`.  Blocking file I/O runs in a worker thread.
    """

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self._directory / f"{_check_key(key)}.json"

    async def create_store(self, key: str) -> None:
        _check_key(key)
        try:
            await asyncio.to_thread(self._directory.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Cannot create storage directory {self._directory}: {exc}", key=key) from exc

    async def load(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise PersistenceError(f"Cannot read {path}: {exc}", key=key) from exc

    async def save(self, key: str, data: str) -> None:
        path = self._path(key)
        try:
            await asyncio.to_thread(self._write_atomic, path, data)
        except OSError as exc:
            raise PersistenceError(f"Cannot write {path}: {exc}", key=key) from exc

    @staticmethod
    def _write_atomic(path: Path, data: str) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def close(self) -> None:
        return None


class HttpKeyValueStore:
    """REST key-value backend: ``GET``/``PUT`` on ``{base_url}/{key}``.

    A ``404`` on read means the key holds nothing yet.  Availability is
    probed with ``HEAD`` so start-up fetches the blob only once.
    """

    def __init__(
        self,
        base_url: str,
        *,
        session: aiohttp.ClientSession | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._external_session = session is not None
        self._http = session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    def _url(self, key: str) -> str:
        return f"{self._base_url}/{_check_key(key)}"

    def _session(self) -> aiohttp.ClientSession:
        if self._http is None:
            self._http = aiohttp.ClientSession()
        return self._http

    async def _get(self, key: str) -> tuple[int, str]:
        url = self._url(key)
        _logger.debug("GET %s", url)
        try:
            async with self._session().get(url, timeout=self._timeout) as resp:
                return resp.status, await resp.text()
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise PersistenceError(f"Request to {url} failed: {exc}", key=key) from exc
        except UnicodeDecodeError as exc:
            raise PersistenceError(f"Response from {url} is not valid text: {exc}", key=key) from exc

    async def create_store(self, key: str) -> None:
        url = self._url(key)
        _logger.debug("HEAD %s", url)
        try:
            async with self._session().head(url, timeout=self._timeout) as resp:
                status = resp.status
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise PersistenceError(f"Request to {url} failed: {exc}", key=key) from exc
        if status not in (200, 404):
            raise PersistenceError(f"HTTP {status} probing store {key!r}", key=key)

    async def load(self, key: str) -> str | None:
        status, text = await self._get(key)
        if status == 404:
            return None
        if status != 200:
            raise PersistenceError(f"HTTP {status} loading {key!r}: {text[:200]}", key=key)
        return text

    async def save(self, key: str, data: str) -> None:
        url = self._url(key)
        headers = {"content-type": "application/json; charset=UTF-8"}
        _logger.debug("PUT %s", url)
        try:
            async with self._session().put(
                url,
                data=data.encode("utf-8"),
                headers=headers,
                timeout=self._timeout,
            ) as resp:
                if resp.status not in (200, 201, 204):
                    text = await resp.text()
                    raise PersistenceError(f"HTTP {resp.status} saving {key!r}: {text[:200]}", key=key)
        except PersistenceError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise PersistenceError(f"Request to {url} failed: {exc}", key=key) from exc

    async def close(self) -> None:
        if not self._external_session and self._http is not None:
            await self._http.close()
        self._http = None


def open_key_value_store(url: str, *, session: aiohttp.ClientSession | None = None) -> KeyValueStore:
    """Pick a backend from a storage URL.

    ``memory://`` keeps state in-process, ``file:///dir`` writes JSON files,
    ``http://`` / ``https://`` talk to a REST key-value service.

    Raises
    ------
    OsbConfigError
        For an unsupported scheme or a ``file://`` URL without a path.
    """
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    if scheme == "memory":
        return MemoryKeyValueStore()
    if scheme == "file":
        directory = f"{parts.netloc}{parts.path}"
        if not directory:
            raise OsbConfigError(f"file storage URL needs a directory: {url!r}")
        return FileKeyValueStore(directory)
    if scheme in {"http", "https"}:
        return HttpKeyValueStore(url, session=session)
    raise OsbConfigError(f"Unsupported storage URL scheme {parts.scheme!r} in {url!r}")
