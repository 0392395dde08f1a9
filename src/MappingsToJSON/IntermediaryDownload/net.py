# === NAVMAP v1 ===
# {
#   "module": "MappingsToJSON.IntermediaryDownload.net",
#   "purpose": "HTTPX client construction and the artifact fetcher used by the pipeline",
#   "sections": [
#     {"id": "helpers", "name": "Client construction helpers", "anchor": "HELP", "kind": "helpers"},
#     {"id": "api", "name": "Public API", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""HTTPX client and fetcher for catalog and artifact downloads.

The pipeline treats transport as a ``fetch(url) -> bytes`` callable.
:class:`HttpFetcher` is the production implementation; it shares one
thread-safe :class:`httpx.Client` across workers and converts every transport
or status failure into :class:`~MappingsToJSON.IntermediaryDownload.errors.FetchError`.
"""

from __future__ import annotations

import contextlib
import logging
import ssl
import time
from typing import Callable, Optional

import certifi
import httpx

from .errors import FetchError
from .settings import HttpConfiguration

__all__ = ["Fetch", "build_http_client", "HttpFetcher"]

LOGGER = logging.getLogger("MappingsToJSON.IntermediaryDownload.net")

Fetch = Callable[[str], bytes]

# --- Client construction helpers ----------------------------------------------


def _build_ssl_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.load_verify_locations(certifi.where())
    return context


def _timeout_for(config: HttpConfiguration) -> httpx.Timeout:
    return httpx.Timeout(
        connect=config.connect_timeout_sec,
        read=config.timeout_sec,
        write=config.timeout_sec,
        pool=config.connect_timeout_sec,
    )


def _limits_for(config: HttpConfiguration) -> httpx.Limits:
    return httpx.Limits(
        max_connections=config.max_connections,
        max_keepalive_connections=config.max_connections,
    )


def _request_hook(request: httpx.Request) -> None:
    request.extensions.setdefault("start_time", time.perf_counter())


def _response_hook(response: httpx.Response) -> None:
    start = response.request.extensions.get("start_time")
    elapsed = time.perf_counter() - start if isinstance(start, float) else None
    LOGGER.debug(
        "http-response",
        extra={
            "stage": "fetch",
            "url": str(response.request.url),
            "status": response.status_code,
            "elapsed_sec": elapsed,
        },
    )


# --- Public API ----------------------------------------------------------------


def build_http_client(
    config: Optional[HttpConfiguration] = None,
    *,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """Return an :class:`httpx.Client` configured from ``config``.

    ``transport`` replaces the network transport, typically with
    :class:`httpx.MockTransport` in tests.
    """

    cfg = config or HttpConfiguration()
    kwargs = {}
    if transport is not None:
        kwargs["transport"] = transport
    else:
        kwargs["verify"] = _build_ssl_context()
    return httpx.Client(
        http2=cfg.http2_enabled,
        timeout=_timeout_for(cfg),
        limits=_limits_for(cfg),
        headers=cfg.polite_headers(),
        follow_redirects=cfg.follow_redirects,
        trust_env=True,
        event_hooks={"request": [_request_hook], "response": [_response_hook]},
        **kwargs,
    )


class HttpFetcher:
    """Callable ``fetch(url) -> bytes`` backed by a shared HTTPX client.

    Use as a context manager to close the client it owns::

        with HttpFetcher(config.http) as fetch:
            payload = fetch("https://maven.example.org/maven-metadata.xml")
    """

    def __init__(
        self,
        config: Optional[HttpConfiguration] = None,
        *,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._owns_client = client is None
        self.client = client if client is not None else build_http_client(config)

    def __call__(self, url: str) -> bytes:
        return self.fetch(url)

    def fetch(self, url: str) -> bytes:
        """Download ``url`` and return the response body.

        Raises:
            FetchError: On transport errors or non-2xx responses.
        """

        try:
            response = self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise FetchError(
                f"HTTP {status} for {url}", url=url, status_code=status
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"request to {url} failed: {exc}", url=url) from exc
        return response.content

    def close(self) -> None:
        if self._owns_client:
            with contextlib.suppress(Exception):
                self.client.close()

    def __enter__(self) -> "HttpFetcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
