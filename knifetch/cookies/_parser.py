'''
Conversion between `Cookie` values and the `Set-Cookie` / `Cookie`
header grammars.

Raises
------
CookieSyntaxError
    _from `serialize` and `parse_cookie_header` on malformed input_
CookieRangeError
    _from `serialize` when `max_age` is negative_
'''
from __future__ import annotations

import datetime as dt
import email.utils
import logging
from collections.abc import Iterable, Mapping, MutableSequence
from typing import Any

import httpx

from knifetch.cookies._model import (
    HOST_PREFIX,
    SECURE_PREFIX,
    Cookie,
    CookieRangeError,
    CookieSyntaxError,
    SameSite,
    validate_domain,
    validate_name,
    validate_path,
    validate_value,
)

logger = logging.getLogger(__name__)

HeadersLike = httpx.Headers | Mapping[str, Any] | Iterable[tuple[str, str]]

_SAME_SITE: dict[str, SameSite] = {
    'strict': 'Strict',
    'lax': 'Lax',
    'none': 'None',
}


def _http_date(expires_at: dt.datetime) -> str:
    return email.utils.format_datetime(
        expires_at.astimezone(dt.timezone.utc), usegmt=True
    )


def serialize(cookie: Cookie) -> str:
    '''
    Render a cookie as a single `Set-Cookie` header value. Reserved name
    prefixes force their implied attributes into the output, the cookie
    itself is left untouched.

    Parameters
    ----------
    cookie : Cookie

    Returns
    -------
    str
        _empty when the cookie has no name_

    Raises
    ------
    CookieSyntaxError
    CookieRangeError
    '''
    if not cookie.name:
        return ''

    validate_name(cookie.name)
    validate_value(cookie.name, cookie.value)
    out = [f'{cookie.name}={cookie.value}']

    secure, path, domain = cookie.secure, cookie.path, cookie.domain
    if cookie.name.startswith(SECURE_PREFIX):
        secure = True
    if cookie.name.startswith(HOST_PREFIX):
        secure, path, domain = True, '/', None

    if secure:
        out.append('Secure')
    if cookie.http_only:
        out.append('HttpOnly')
    if cookie.partitioned:
        out.append('Partitioned')

    max_age = cookie.max_age
    if isinstance(max_age, int) and not isinstance(max_age, bool):
        if max_age < 0:
            raise CookieRangeError(
                f'Cannot serialize cookie as Max-Age must be >= 0: received {max_age}'
            )
        out.append(f'Max-Age={max_age}')

    if domain:
        validate_domain(domain)
        out.append(f'Domain={domain}')
    if cookie.same_site:
        out.append(f'SameSite={cookie.same_site}')
    if path:
        validate_path(path)
        out.append(f'Path={path}')
    if (expires_at := cookie.expires_at) is not None:
        out.append(f'Expires={_http_date(expires_at)}')

    out.extend(cookie.unparsed)
    return '; '.join(out)


def _parse_expires(value: str) -> dt.datetime | None:
    try:
        expires = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.debug(f'Ignoring unparseable Expires attribute: {value!r}')
        return None
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=dt.timezone.utc)
    return expires


def _violates_prefix(cookie: Cookie) -> str | None:
    '''
    Returns the reason a cookie breaks its reserved name prefix, if it does.
    '''
    if cookie.name.startswith(f'{SECURE_PREFIX}-') and not cookie.secure:
        return 'Cookies with names starting with `__Secure-` must be set with the secure flag'

    if cookie.name.startswith(f'{HOST_PREFIX}-'):
        if not cookie.secure:
            return 'Cookies with names starting with `__Host-` must be set with the secure flag'
        if cookie.domain is not None:
            return 'Cookies with names starting with `__Host-` must not have a domain specified'
        if cookie.path != '/':
            return 'Cookies with names starting with `__Host-` must have path be `/`'

    return None


def parse(raw: str) -> Cookie | None:
    '''
    Parse one `Set-Cookie` header value.

    Only the first `=` of each segment separates key from value, so values
    may contain `=`. Attribute names are matched case-insensitively and
    anything unrecognized is kept in `Cookie.unparsed`.

    Parameters
    ----------
    raw : str

    Returns
    -------
    Cookie | None
        _None when the cookie is dropped by policy_
    '''
    first, *segments = raw.split(';')
    name, _, value = first.strip().partition('=')
    name = name.strip()
    if not name:
        logger.debug(f'Ignoring Set-Cookie without a name: {raw!r}')
        return None

    cookie = Cookie(name=name, value=value.strip())

    for segment in segments:
        key, has_value, attr = segment.strip().partition('=')
        key, attr = key.strip(), attr.strip()
        if not key:
            continue

        match key.lower():
            case 'expires':
                cookie.expires = _parse_expires(attr)
            case 'max-age':
                try:
                    max_age = int(attr)
                except ValueError:
                    logger.debug(f'Ignoring non-integer Max-Age on cookie {name}: {attr!r}')
                    continue
                if max_age < 0:
                    logger.warning(
                        'Max-Age must be an integer superior or equal to 0. '
                        f'Cookie {name} ignored.'
                    )
                    return None
                cookie.max_age = max_age
            case 'domain':
                cookie.domain = attr.removeprefix('.').lower() or None
            case 'path':
                if attr.startswith('/'):
                    cookie.path = attr
            case 'secure':
                cookie.secure = True
            case 'httponly':
                cookie.http_only = True
            case 'samesite':
                if same_site := _SAME_SITE.get(attr.lower()):
                    cookie.same_site = same_site
                else:
                    logger.debug(f'Ignoring unknown SameSite value on cookie {name}: {attr!r}')
            case _:
                cookie.unparsed.append(f'{key}={attr}' if has_value else key)

    if reason := _violates_prefix(cookie):
        logger.warning(f'{reason}. Cookie {name} ignored.')
        return None

    return cookie


def parse_cookie_header(value: str | None) -> dict[str, str]:
    '''
    Parse a client `Cookie` request header into a name to value mapping.

    Raises
    ------
    CookieSyntaxError
        If a pair starts with `=`
    '''
    out: dict[str, str] = {}
    if not value:
        return out

    for segment in value.split(';'):
        if not segment.strip():
            continue
        if segment.strip().startswith('='):
            raise CookieSyntaxError("Cookie cannot start with '='")
        key, _, val = segment.partition('=')
        out[key.strip()] = val
    return out


def get_cookies(headers: httpx.Headers | Mapping[str, str]) -> dict[str, str]:
    if isinstance(headers, httpx.Headers):
        return parse_cookie_header(headers.get('cookie'))
    for key, value in headers.items():
        if key.lower() == 'cookie':
            return parse_cookie_header(value)
    return {}


def extract_set_cookie_headers(headers: HeadersLike) -> list[str]:
    '''
    Every `Set-Cookie` value as its own entry. These headers are
    never comma-joined since `Expires` dates contain commas.

    Parameters
    ----------
    headers : httpx.Headers | Mapping | Iterable[tuple[str, str]]

    Returns
    -------
    list[str]
    '''
    if isinstance(headers, httpx.Headers):
        return headers.get_list('set-cookie')

    if hasattr(headers, 'multi_items'):
        items = headers.multi_items()
    elif isinstance(headers, Mapping):
        items = headers.items()
    else:
        items = headers

    values: list[str] = []
    for key, value in items:
        if key.lower() != 'set-cookie':
            continue
        if isinstance(value, (list, tuple)):
            values.extend(value)
        else:
            values.append(value)
    return values


def get_set_cookies(headers: HeadersLike) -> list[Cookie]:
    cookies = []
    for raw in extract_set_cookie_headers(headers):
        if (cookie := parse(raw)) is not None:
            cookies.append(cookie)
    return cookies


def set_cookie(headers: MutableSequence[tuple[str, str]], cookie: Cookie) -> None:
    '''
    Append a serialized `Set-Cookie` header to a list of header pairs,
    the form `httpx.Response(headers=...)` accepts.

    Parameters
    ----------
    headers : MutableSequence[tuple[str, str]]
    cookie : Cookie
    '''
    if value := serialize(cookie):
        headers.append(('Set-Cookie', value))


def delete_cookie(
    headers: MutableSequence[tuple[str, str]],
    name: str,
    *,
    path: str | None = None,
    domain: str | None = None,
    secure: bool = False,
    http_only: bool = False,
    partitioned: bool = False,
) -> None:
    '''
    Append a `Set-Cookie` that expires `name` immediately. The
    attributes need to match the ones the cookie was set with.
    '''
    set_cookie(headers, Cookie(
        name=name,
        value='',
        expires=dt.datetime.fromtimestamp(0, tz=dt.timezone.utc),
        path=path,
        domain=domain,
        secure=secure,
        http_only=http_only,
        partitioned=partitioned,
    ))
