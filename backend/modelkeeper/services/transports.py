"""
Transfer strategies for model downloads.

Both strategies speak the same protocol (bounded redirect following, streamed
body written to a ``.downloading`` sibling, atomic rename on success) and
differ only in how the underlying httpx client finds its proxy:

    SystemProxyTransport  no proxy env vars set; uses the OS proxy settings
                          (Windows registry / macOS SystemConfiguration)
    EnvProxyTransport     HTTP(S)_PROXY / ALL_PROXY set; httpx honors them
                          together with NO_PROXY

Usage:
    transport = select_transport()
    await transport.download_file(url, dest_path, on_progress)
"""
from __future__ import annotations

import logging
import os
import urllib.request
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os
import httpx

from modelkeeper.config import settings
from modelkeeper.services.errors import (
    EmptyResponseError,
    HttpStatusError,
    TooManyRedirectsError,
)

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".downloading"

PROXY_ENV_VARS = (
    "HTTPS_PROXY", "https_proxy",
    "HTTP_PROXY", "http_proxy",
    "ALL_PROXY", "all_proxy",
)

# (downloaded_bytes, total_bytes or None when the server sent no length)
ProgressCallback = Callable[[int, int | None], None]


def temp_path_for(dest_path: Path) -> Path:
    return dest_path.with_name(dest_path.name + TEMP_SUFFIX)


def has_proxy_env_vars(environ: Mapping[str, str] | None = None) -> bool:
    env = os.environ if environ is None else environ
    return any(env.get(name) for name in PROXY_ENV_VARS)


async def discard(path: Path) -> None:
    try:
        await aiofiles.os.remove(path)
    except OSError:
        pass


def _content_length(headers: httpx.Headers) -> int | None:
    try:
        total = int(headers.get("content-length", ""))
    except ValueError:
        return None
    return total if total > 0 else None


class Transport(ABC):
    name = "transport"

    def __init__(
        self,
        *,
        max_redirects: int | None = None,
        chunk_size: int | None = None,
        timeout: httpx.Timeout | None = None,
        user_agent: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.max_redirects = settings.max_redirects if max_redirects is None else max_redirects
        self.chunk_size = chunk_size or settings.download_chunk_size
        self.timeout = timeout or httpx.Timeout(
            settings.read_timeout, connect=settings.connect_timeout
        )
        self.user_agent = user_agent or settings.user_agent
        # Injected network layer, used instead of any proxy configuration
        self._transport = transport

    @abstractmethod
    def _client_options(self) -> dict[str, Any]:
        """Proxy-related keyword arguments for ``httpx.AsyncClient``."""

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            follow_redirects=False,
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent},
            **self._client_options(),
        )

    async def download_file(
        self,
        url: str,
        dest_path: Path,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """Fetch *url* into *dest_path*.

        The body lands in ``dest_path + ".downloading"`` and is renamed into
        place only after the last byte is written. Any failure, including
        task cancellation, removes the temp file and re-raises.
        """
        tmp_path = temp_path_for(dest_path)
        try:
            async with self._build_client() as client:
                await self._fetch(client, url, tmp_path, on_progress)
            await aiofiles.os.replace(tmp_path, dest_path)
        except BaseException:
            await discard(tmp_path)
            raise

    async def _fetch(
        self,
        client: httpx.AsyncClient,
        url: str,
        tmp_path: Path,
        on_progress: ProgressCallback | None,
    ) -> None:
        current = httpx.URL(url)
        redirects_left = self.max_redirects
        while True:
            logger.debug("[%s] GET %s", self.name, current)
            async with client.stream("GET", current) as response:
                status = response.status_code
                location = response.headers.get("location")

                if 300 <= status < 400 and location:
                    if redirects_left <= 0:
                        raise TooManyRedirectsError(str(current))
                    redirects_left -= 1
                    current = current.join(location)
                    continue

                if status != 200:
                    raise HttpStatusError(status, str(current))

                total = _content_length(response.headers)
                downloaded = 0
                async with aiofiles.open(tmp_path, "wb") as f:
                    async for chunk in response.aiter_bytes(self.chunk_size):
                        await f.write(chunk)
                        downloaded += len(chunk)
                        if on_progress is not None:
                            on_progress(downloaded, total)
                if downloaded == 0:
                    raise EmptyResponseError(str(current))
                return


class SystemProxyTransport(Transport):
    name = "system"

    def _client_options(self) -> dict[str, Any]:
        if self._transport is not None:
            return {"transport": self._transport, "trust_env": False}
        return {"trust_env": False, "mounts": system_proxy_mounts()}


class EnvProxyTransport(Transport):
    name = "env-proxy"

    def _client_options(self) -> dict[str, Any]:
        if self._transport is not None:
            return {"transport": self._transport}
        return {"trust_env": True}


def system_proxy_mounts(
    proxies: Mapping[str, str] | None = None,
) -> dict[str, httpx.AsyncBaseTransport]:
    """Translate the host's proxy settings into httpx mounts."""
    if proxies is None:
        proxies = urllib.request.getproxies()
    mounts: dict[str, httpx.AsyncBaseTransport] = {}
    for scheme in ("http", "https"):
        proxy_url = proxies.get(scheme) or proxies.get("all")
        if not proxy_url and proxies.get("socks"):
            proxy_url = proxies["socks"]
            if "://" not in proxy_url:
                proxy_url = f"socks5://{proxy_url}"
        if not proxy_url:
            continue
        if "://" not in proxy_url:
            proxy_url = f"http://{proxy_url}"
        mounts[f"{scheme}://"] = httpx.AsyncHTTPTransport(proxy=proxy_url)
    return mounts


def select_transport(
    environ: Mapping[str, str] | None = None, **kwargs: Any
) -> Transport:
    """Pick the transfer strategy for one campaign.

    Explicit proxy environment variables win over the OS-level configuration.
    """
    if has_proxy_env_vars(environ):
        transport: Transport = EnvProxyTransport(**kwargs)
    else:
        transport = SystemProxyTransport(**kwargs)
    logger.info("Using %s transport for model downloads", transport.name)
    return transport
