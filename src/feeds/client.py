"""Feed client: package download streams (aiohttp) and version listing (requests)."""

from __future__ import annotations

import asyncio
import logging
import urllib.parse
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, BinaryIO, Dict, List, Optional

import aiohttp
import semantic_version

from constants import Constants
from common.errors import ConfigurationError, TransferError
from common.http_client import get_json
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer
from .models import FeedConfiguration

logger = logging.getLogger(__name__)


class FeedClient:
    """Client for a single universal package feed."""

    def __init__(self, config: FeedConfiguration, timeout: int = Constants.REQUEST_TIMEOUT):
        """Initialize the feed client.

        Args:
            config: Resolved feed configuration; api_url and feed_name are required.
            timeout: Socket read timeout in seconds.
        """
        if not config.api_url or not config.feed_name:
            raise ConfigurationError("ServiceUrl and FeedName are required.")
        self._config = config
        # Downloads can be large; bound the idle time between reads, not the total.
        self._timeout = aiohttp.ClientTimeout(total=None, sock_connect=timeout, sock_read=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def feed_endpoint(self) -> str:
        """Base URL of the feed's universal package API."""
        feed = urllib.parse.quote(self._config.feed_name or "", safe="")
        return f"{self._config.api_url.rstrip('/')}/upack/{feed}"

    def _headers(self) -> Dict[str, str]:
        headers = {"User-Agent": Constants.INSTALLED_USING}
        if self._config.api_key:
            headers[Constants.API_KEY_HEADER] = self._config.api_key
        return headers

    def _basic_auth(self) -> Optional[aiohttp.BasicAuth]:
        if self._config.user_name:
            return aiohttp.BasicAuth(self._config.user_name, self._config.password or "")
        return None

    def download_url(self, name: str, version: str, group: Optional[str] = None) -> str:
        """Build the download URL for a package version."""
        parts = [urllib.parse.quote(p, safe="") for p in (group or "").split("/") if p]
        parts += [urllib.parse.quote(name, safe=""), urllib.parse.quote(version, safe="")]
        return f"{self.feed_endpoint}/download/{'/'.join(parts)}"

    async def start(self) -> None:
        """Start the HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers=self._headers(),
                auth=self._basic_auth(),
            )

    async def stop(self) -> None:
        """Stop the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    @asynccontextmanager
    async def open_package_stream(
        self, name: str, version: str, group: Optional[str] = None
    ) -> AsyncIterator[aiohttp.StreamReader]:
        """Open the package archive as a byte stream.

        Yields the response body reader; the response is released on exit.

        Raises:
            TransferError: on connection failure or a non-success status.
        """
        if self._session is None:
            await self.start()
        assert self._session is not None
        url = self.download_url(name, version, group)
        target = safe_url(url)
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP request",
                extra=extra_context(
                    event="http_request",
                    component="feed_client",
                    action="GET",
                    target=target,
                ),
            )
        try:
            response = await self._session.get(url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransferError(f"Could not download package from {target}: {exc}") from exc
        try:
            if response.status == 404:
                raise TransferError(f"Package {name} {version} was not found on feed {self._config.feed_name}.")
            if response.status >= 400:
                raise TransferError(f"Feed returned HTTP {response.status} for {target}.")
            yield response.content
        finally:
            response.release()

    async def download_to(self, dest: BinaryIO, name: str, version: str, group: Optional[str] = None) -> int:
        """Copy the package archive into ``dest``; returns the byte count.

        Raises:
            TransferError: on connection failure, bad status or a broken stream.
        """
        size = 0
        async with self.open_package_stream(name, version, group) as stream:
            logger.info("Downloading package...")
            try:
                async for chunk in stream.iter_chunked(Constants.DOWNLOAD_CHUNK_SIZE):
                    dest.write(chunk)
                    size += len(chunk)
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                raise TransferError(f"Download of {name} {version} was interrupted: {exc}") from exc
        return size

    def list_versions(self, name: str, group: Optional[str] = None) -> List[str]:
        """Return every version string the feed reports for a package.

        Raises:
            TransferError: when the feed cannot be reached or answers with an error.
        """
        query = {"name": name}
        if group:
            query["group"] = group
        url = f"{self.feed_endpoint}/versions?{urllib.parse.urlencode(query)}"
        auth = None
        if self._config.user_name:
            auth = (self._config.user_name, self._config.password or "")
        with Timer() as t:
            status, _, data = get_json(url, headers=self._headers(), auth=auth)
        if status == 404:
            return []
        if status != 200 or not isinstance(data, list):
            raise TransferError(f"Could not list versions of {name} from {safe_url(url)} (status {status}).")
        versions = []
        for item in data:
            value: Any = item.get("version") if isinstance(item, dict) else item
            if isinstance(value, str):
                versions.append(value)
        logger.debug("Feed lists %d version(s) of %s in %d ms", len(versions), name, t.duration_ms())
        return versions

    def latest_version(self, name: str, group: Optional[str] = None) -> Optional[str]:
        """Return the highest stable semantic version on the feed, or None."""
        parsed = []
        for v in self.list_versions(name, group):
            try:
                parsed.append(semantic_version.Version(v))
            except ValueError:
                continue  # Skip invalid versions
        stable = [ver for ver in parsed if not ver.prerelease]
        if not stable:
            return None
        return str(max(stable))

    async def __aenter__(self) -> "FeedClient":
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.stop()
