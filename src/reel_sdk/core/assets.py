"""URL-keyed asset cache for fonts and background images.

Every URL is fetched at most once per cache instance; concurrent awaiters of
the same URL share the in-flight load. A failed load is evicted so the next
caller retries.
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

import requests

logger = logging.getLogger("ReelStudio.core.assets")

Fetcher = Callable[[str], bytes]


def http_fetch(url: str, timeout: float = 30) -> bytes:
    """Download a URL (or read a local path) into memory."""
    if not url.startswith(("http://", "https://")):
        return Path(url).read_bytes()

    response = requests.get(url, timeout=timeout, stream=True)
    response.raise_for_status()
    chunks = []
    for chunk in response.iter_content(chunk_size=8192):
        chunks.append(chunk)
    data = b"".join(chunks)
    logger.info(f"Fetched {len(data)} bytes from {url}")
    return data


class AssetCache:
    """Memoizing loader owned by the caller's session."""

    def __init__(self, fetcher: Optional[Fetcher] = None):
        self._fetch = fetcher or http_fetch
        self._entries: dict[str, asyncio.Future] = {}

    async def load(self, url: str) -> bytes:
        entry = self._entries.get(url)
        if entry is not None:
            # Failed and cancelled loads are evicted, so a finished entry always holds data
            if entry.done():
                return entry.result()
            try:
                return await asyncio.shield(entry)
            except asyncio.CancelledError:
                if not entry.cancelled():
                    raise
                # The loader that owned this fetch was cancelled; start a fresh one
                return await self.load(url)

        entry = asyncio.get_running_loop().create_future()
        self._entries[url] = entry
        try:
            data = await asyncio.to_thread(self._fetch, url)
        except asyncio.CancelledError:
            self._evict(url, entry)
            entry.cancel()
            logger.debug(f"Load of {url} cancelled")
            raise
        except Exception as e:
            self._evict(url, entry)
            entry.set_exception(e)
            # Mark retrieved so a load nobody else awaited doesn't warn
            entry.exception()
            logger.warning(f"Failed to load asset {url}: {e}")
            raise
        entry.set_result(data)
        return data

    def _evict(self, url: str, entry: asyncio.Future):
        if self._entries.get(url) is entry:
            del self._entries[url]

    def load_sync(self, url: str) -> bytes:
        """Blocking variant for callers outside an event loop."""
        cached = self.get(url)
        if cached is not None:
            return cached
        return asyncio.run(self.load(url))

    def get(self, url: str) -> Optional[bytes]:
        """Return already-loaded bytes without triggering a fetch."""
        entry = self._entries.get(url)
        if entry is None or not entry.done():
            return None
        return entry.result()

    def __contains__(self, url: str) -> bool:
        return self.get(url) is not None

    def clear(self):
        self._entries.clear()
