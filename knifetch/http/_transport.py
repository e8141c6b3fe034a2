import logging
import socket

import httpx

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMES = frozenset({'http', 'https'})


class URLRejectedError(ValueError):
    '''
    Raised when the transport is asked to send a request to a URL it
    cannot fetch.

    Parent: ValueError
    '''


def default_socket_options() -> list[tuple]:
    '''
    cross platform socket options for TCP connections

    Returns
    -------
    list[SockOpt]
    '''
    opts = []

    if hasattr(socket, "TCP_NODELAY"):
        opts.append((socket.IPPROTO_TCP, socket.TCP_NODELAY, 1))

    if hasattr(socket, "SO_KEEPALIVE"):
        opts.append((socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1))

    if hasattr(socket, "TCP_KEEPIDLE"):
        opts.append((socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, 60))

    return opts


def verify_http_url(url: httpx.URL) -> httpx.URL:
    '''
    Raises
    ------
    URLRejectedError
        If the scheme is not http(s) or the URL has no host.
    '''
    if url.scheme not in SUPPORTED_SCHEMES:
        raise URLRejectedError(f"Rejected unsupported URL scheme: {url.scheme}")

    if not url.host:
        raise URLRejectedError(f"Rejected URL without a host: {url}")

    return url


class FetchTransport(httpx.AsyncBaseTransport):
    '''
    The default transport of `KnifetchClient`, an `httpx.AsyncHTTPTransport`
    with TCP keepalive socket options that only accepts http(s) URLs.
    '''
    def __init__(
        self,
        *,
        http2: bool = True,
        trust_env: bool = False,
        retries: int = 0,
    ) -> None:
        self._inner: httpx.AsyncHTTPTransport = httpx.AsyncHTTPTransport(
            http2=http2,
            socket_options=default_socket_options(),
            trust_env=trust_env,
            retries=retries,
        )

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        verify_http_url(request.url)
        logger.debug(f'Sending request: {request.method} {request.url}')
        return await self._inner.handle_async_request(request)

    async def aclose(self) -> None:
        await self._inner.aclose()
