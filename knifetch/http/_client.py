import dataclasses as dc
import functools
import http.cookiejar
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeAlias

import httpx

from knifetch._utils import maybe_await
from knifetch.cookies import CookieJar
from knifetch.http._retry import RetryOptions, retry as run_retry
from knifetch.http._transport import FetchTransport

logger = logging.getLogger(__name__)

RequestRetry: TypeAlias = bool | int | RetryOptions | None

OnRequest = Callable[[httpx.Request], httpx.Request | None | Awaitable[httpx.Request | None]]
OnResponse = Callable[
    [httpx.Request, httpx.Response],
    httpx.Response | None | Awaitable[httpx.Response | None],
]
OnFetchError = Callable[
    [httpx.Request, Exception],
    httpx.Response | None | Awaitable[httpx.Response | None],
]


def _base_limits() -> httpx.Limits:
    return httpx.Limits(
        max_connections=100,
        max_keepalive_connections=20,
        keepalive_expiry=15,
    )


def _base_timeouts() -> httpx.Timeout:
    return httpx.Timeout(
        connect=5.0,
        read=10.0,
        write=10.0,
        pool=5.0,
    )


def _drop_none(values: Mapping[str, Any] | None) -> dict[str, Any] | None:
    if values is None:
        return None
    return {key: value for key, value in values.items() if value is not None}


def _blocking_cookie_store() -> http.cookiejar.CookieJar:
    # keeps httpx from storing or sending cookies on its own
    return http.cookiejar.CookieJar(
        policy=http.cookiejar.DefaultCookiePolicy(allowed_domains=[])
    )


@dc.dataclass(slots=True)
class ClientConfig:
    '''
    Configuration options for the knifetch HTTP client.
    Good defaults are provided for most use cases.

    `retries` are connection retries done by the transport, `retry` holds
    the options used when a request asks for `retry=True`.
    '''
    timeout: httpx.Timeout = dc.field(default_factory=_base_timeouts)
    limits: httpx.Limits = dc.field(default_factory=_base_limits)
    http2: bool = True
    follow_redirects: bool = True
    trust_env: bool = False
    retries: int = 0
    retry: RetryOptions = dc.field(default_factory=RetryOptions)


@dc.dataclass(slots=True)
class Hooks:
    '''
    Interceptors run around every request sent by `KnifetchClient.fetch`,
    each may be a plain function or a coroutine function.

    Attributes
    ----------
    - on_request: Receives the request before it is sent, may return a
    replacement.

    - on_response: Receives the request and response, may return a
    replacement response.

    - on_fetch_error: Receives the request and the exception raised while
    sending it. Returning a response recovers from the error, returning
    `None` re-raises it.

    - transform_response: Turns the final response into the value `fetch`
    returns.
    '''
    on_request: OnRequest | None = None
    on_response: OnResponse | None = None
    on_fetch_error: OnFetchError | None = None
    transform_response: Callable[[httpx.Response], Any] | None = None


def resolve_retry(retry: RequestRetry, default: RetryOptions) -> RetryOptions | None:
    '''
    Turn the `retry` argument of `fetch` into retry options, `None`
    meaning the request is sent once.
    '''
    match retry:
        case None | False:
            return None
        case True:
            return default
        case RetryOptions():
            return retry
        case int():
            return dc.replace(default, max_tries=retry)
        case _:
            raise TypeError(f'Unsupported retry option: {retry!r}')


class KnifetchClient(httpx.AsyncClient):
    '''
    `httpx.AsyncClient` with a cookie jar, retries, interceptor hooks
    and request body helpers.

    When a `CookieJar` is in use it replaces httpx's own cookie handling:
    every request sent through the client gets a `Cookie` header from the
    jar and every response (redirects included) is stored in it.
    '''

    def __init__(
        self,
        base_url: str | None = None,
        *,
        headers: dict[str, str] | None = None,
        config: ClientConfig | None = None,
        cookie_jar: CookieJar | bool = False,
        hooks: Hooks | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config: ClientConfig = config or ClientConfig()
        self._hooks: Hooks = hooks or Hooks()

        if cookie_jar is True:
            cookie_jar = CookieJar()
        self.cookie_jar: CookieJar | None = cookie_jar if cookie_jar is not False else None

        if transport is None:
            transport = FetchTransport(
                http2=self._config.http2,
                trust_env=self._config.trust_env,
                retries=self._config.retries,
            )

        super().__init__(
            base_url=base_url or '',
            transport=transport,
            limits=self._config.limits,
            timeout=self._config.timeout,
            headers=headers,
            cookies=_blocking_cookie_store() if self.cookie_jar is not None else None,
            follow_redirects=self._config.follow_redirects,
            trust_env=self._config.trust_env,
        )

    @property
    def hooks(self) -> Hooks:
        return self._hooks

    def attach_cookies(self, request: httpx.Request) -> None:
        '''
        Set the `Cookie` header from the jar unless the request already
        carries one.
        '''
        if self.cookie_jar is None or 'cookie' in request.headers:
            return
        if pairs := self.cookie_jar.cookies_for(request.url):
            request.headers['Cookie'] = '; '.join(pairs)

    async def send(self, request: httpx.Request, **kwargs: Any) -> httpx.Response:
        self.attach_cookies(request)
        response = await super().send(request, **kwargs)

        if self.cookie_jar is not None:
            for received in (*response.history, response):
                self.cookie_jar.ingest(received)

        return response

    def prepare(
        self,
        url: httpx.URL | str,
        *,
        method: str | None = None,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        json: Any = None,
        form: Mapping[str, Any] | None = None,
        files: Any = None,
        content: bytes | str | None = None,
    ) -> httpx.Request:
        '''
        Build a request, `None` values in `params` and `form` are dropped.
        The method defaults to POST when a `json`, `form` or `files` body is
        given and GET otherwise.
        '''
        if method is None:
            has_body = json is not None or form is not None or files is not None
            method = 'POST' if has_body else 'GET'

        return self.build_request(
            method,
            url,
            params=_drop_none(params),
            headers=headers,
            json=json,
            data=_drop_none(form),
            files=files,
            content=content,
        )

    def _adopt_fallback(
        self,
        request: httpx.Request,
        fallback: httpx.Response,
    ) -> httpx.Response:
        '''
        Fallback responses go through the cookie jar like sent ones, the
        failed request is attached when the hook did not set one.
        '''
        try:
            fallback.request
        except RuntimeError:
            fallback.request = request

        if self.cookie_jar is not None:
            self.cookie_jar.ingest(fallback)
        return fallback

    async def _exchange(self, prepared: httpx.Request) -> Any:
        hooks = self._hooks

        request = prepared
        if hooks.on_request is not None:
            request = await maybe_await(hooks.on_request(prepared)) or prepared

        try:
            response = await self.send(request)
        except Exception as exc:
            if hooks.on_fetch_error is None:
                raise
            fallback = await maybe_await(hooks.on_fetch_error(request, exc))
            if fallback is None:
                raise
            logger.debug(f'Recovered from {exc!r} with a fallback response')
            response = self._adopt_fallback(request, fallback)

        if hooks.on_response is not None:
            response = await maybe_await(hooks.on_response(request, response)) or response

        if hooks.transform_response is not None:
            return await maybe_await(hooks.transform_response(response))
        return response

    async def fetch(
        self,
        url: httpx.URL | str | httpx.Request,
        *,
        method: str | None = None,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        json: Any = None,
        form: Mapping[str, Any] | None = None,
        files: Any = None,
        content: bytes | str | None = None,
        retry: RequestRetry = None,
        signal: Any = None,
    ) -> Any:
        '''
        Send a request through the hooks, optionally retried.

        Parameters
        ----------
        url : httpx.URL | str | httpx.Request
            _a string is joined onto `base_url`, a request is sent as is_
        retry : bool | int | RetryOptions | None, optional
            _`True` uses `ClientConfig.retry`, an int sets `max_tries`_
        signal : asyncio.Event | None, optional
            _aborts a retried request when set_

        Returns
        -------
        Any
            _the response, or the value `transform_response` made of it_

        Raises
        ------
        RetryError
            When a retried request runs out of attempts or is aborted.
        httpx.HTTPError
            When a request sent once fails and no hook recovers from it.
        '''
        if isinstance(url, httpx.Request):
            request = url
        else:
            request = self.prepare(
                url,
                method=method,
                params=params,
                headers=headers,
                json=json,
                form=form,
                files=files,
                content=content,
            )

        options = resolve_retry(retry, self._config.retry)
        if options is None:
            return await self._exchange(request)

        if signal is not None:
            options = dc.replace(options, signal=signal)
        return await run_retry(functools.partial(self._exchange, request), options)
