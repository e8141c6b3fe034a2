'''
An in-memory, client side cookie store.

It follows RFC 6265 for domain and path matching but does not
consult the public suffix list, so a server may set a cookie
on any parent domain of its hostname.
'''
from __future__ import annotations

import dataclasses as dc
import datetime as dt
import logging
from collections.abc import Iterable, Iterator
from typing import Any, Protocol, Self

import httpx

from knifetch.cookies._model import MAX_EXPIRY, Cookie
from knifetch.cookies._parser import HeadersLike, get_set_cookies

logger = logging.getLogger(__name__)

TRUSTED_HOSTS = frozenset({'localhost'})


class ResponseLike(Protocol):
    url: Any
    headers: HeadersLike


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _expiry_after(now: dt.datetime, seconds: int) -> dt.datetime:
    try:
        return now + dt.timedelta(seconds=seconds)
    except OverflowError:
        return MAX_EXPIRY


def _to_url(target: Any) -> httpx.URL:
    '''
    Accepts a URL string, an `httpx.URL` or anything with
    a `url` attribute (`httpx.Request`, `httpx.Response`).
    '''
    if isinstance(target, httpx.URL):
        return target
    if isinstance(target, str):
        return httpx.URL(target)
    return httpx.URL(str(target.url))


def url_path(url: httpx.URL) -> str:
    path = url.raw_path.split(b'?', 1)[0].decode('ascii')
    return path or '/'


def default_path(path: str) -> str:
    '''
    The "directory" of a request path, used when a
    `Set-Cookie` has no `Path` attribute.

    See: https://www.rfc-editor.org/rfc/rfc6265.html#section-5.1.4
    '''
    if not path.startswith('/') or path.count('/') == 1:
        return '/'
    return path[:path.rindex('/')]


def domain_matches(hostname: str, domain: str | None) -> bool:
    if not domain:
        return False
    return hostname == domain or hostname.endswith(f'.{domain}')


def path_matches(request_path: str, cookie_path: str | None) -> bool:
    cookie_path = cookie_path or '/'
    if cookie_path.endswith('/'):
        return request_path.startswith(cookie_path)
    return request_path == cookie_path or request_path.startswith(f'{cookie_path}/')


def is_secure_channel(url: httpx.URL) -> bool:
    return url.scheme == 'https' or url.host in TRUSTED_HOSTS


class CookieJar:
    '''
    Stores cookies received in responses and selects the ones to send
    with a request. Cookies with the same name, domain and path are not
    deduplicated, both are kept until removed or expired.

    Expired cookies are swept lazily whenever the jar is read.
    '''
    __slots__ = ('_store',)

    def __init__(self) -> None:
        self._store: list[Cookie] = []

    @classmethod
    def restore(cls, cookies: Iterable[Cookie]) -> Self:
        '''
        Create a jar holding `cookies` as they are, without any of the
        domain or security checks `ingest` applies.
        '''
        jar = cls()
        jar._store = list(cookies)
        return jar

    def _sweep(self, now: dt.datetime | None = None) -> list[Cookie]:
        now = now or _utcnow()
        self._store = [
            cookie for cookie in self._store
            if not cookie.is_expired(now)
        ]
        return self._store

    def ingest(self, response: ResponseLike) -> None:
        '''
        Store the cookies a response sets.

        Missing `Domain` and `Path` attributes default to the response
        hostname and directory path. Cookies are dropped when they are
        `Secure` but came over plain http, when their domain is not the
        hostname or one of its parents, or when they have already expired.
        An expired cookie removes the stored cookies it matches instead.

        Parameters
        ----------
        response : ResponseLike
            _anything with `url` and `headers`, such as `httpx.Response`_
        '''
        try:
            url = _to_url(response)
        except (RuntimeError, httpx.InvalidURL) as exc:
            logger.debug(f'Not storing cookies, response has no usable URL: {exc}')
            return

        hostname = url.host
        if not hostname:
            return

        now = _utcnow()
        accepted: list[Cookie] = []
        for cookie in get_set_cookies(response.headers):
            if not cookie.domain:
                cookie.domain = hostname
            if not cookie.path:
                cookie.path = default_path(url_path(url))
            if cookie.max_age is not None:
                cookie.expires = _expiry_after(now, cookie.max_age)

            if cookie.secure and not is_secure_channel(url):
                logger.debug(f'Dropping secure cookie {cookie.name} set over {url.scheme}')
                continue

            if not domain_matches(hostname, cookie.domain):
                logger.debug(
                    f'Dropping cookie {cookie.name}, domain {cookie.domain} '
                    f'does not match {hostname}'
                )
                continue

            if cookie.is_expired(now):
                self.remove(domain=cookie.domain, path=cookie.path, name=cookie.name)
                continue

            accepted.append(cookie)

        self._store.extend(accepted)

    def cookies_for(self, target: Any) -> list[str]:
        '''
        The `name=value` pairs to send with a request to `target`.

        `Secure` cookies are only returned for https targets (or localhost).

        Parameters
        ----------
        target : str | httpx.URL | httpx.Request

        Returns
        -------
        list[str]
        '''
        url = _to_url(target)
        hostname = url.host
        path = url_path(url)
        secure = is_secure_channel(url)

        return [
            f'{cookie.name}={cookie.value}'
            for cookie in self._sweep()
            if domain_matches(hostname, cookie.domain)
            and path_matches(path, cookie.path)
            and (secure or not cookie.secure)
        ]

    def remove(
        self,
        *,
        domain: str | None = None,
        path: str | None = None,
        name: str | None = None,
    ) -> None:
        '''
        Remove cookies. Without a domain every cookie is removed, with a
        domain and name all paths are removed, and with a path as well only
        cookies whose path falls under it are removed.
        '''
        if not domain:
            self._store = []
            return

        def matches(cookie: Cookie) -> bool:
            if cookie.domain != domain or cookie.name != name:
                return False
            if not path:
                return True
            return path_matches(cookie.path or '/', path)

        self._store = [cookie for cookie in self._store if not matches(cookie)]

    def clear(self) -> None:
        self._store = []

    def snapshot(self) -> list[Cookie]:
        '''
        Unexpired cookies, copied, for the caller to persist.
        '''
        return [dc.replace(cookie, unparsed=list(cookie.unparsed)) for cookie in self._sweep()]

    def __len__(self) -> int:
        return len(self._sweep())

    def __iter__(self) -> Iterator[Cookie]:
        return iter(list(self._sweep()))
