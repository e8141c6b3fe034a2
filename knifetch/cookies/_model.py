'''
The cookie value type and the attribute validators used when
serializing it.

See: https://www.rfc-editor.org/rfc/rfc6265.html#section-4.1
'''
from __future__ import annotations

import dataclasses as dc
import datetime as dt
import re
from typing import Literal

SameSite = Literal['Strict', 'Lax', 'None']

SECURE_PREFIX = '__Secure'
HOST_PREFIX = '__Host'

# lifetimes past the datetime range are clamped to this
MAX_EXPIRY = dt.datetime.max.replace(tzinfo=dt.timezone.utc)

_NAME_EXPR = re.compile(r'^(?=[\x20-\x7E]*$)[^\s"(),:;<=>?@\[\\\]{}]+$')


class CookieError(ValueError):
    '''
    Base class for cookie validation errors.

    Parent: ValueError
    '''


class CookieSyntaxError(CookieError):
    '''
    Raised when a cookie name, value, domain or path contains
    characters the header grammar does not allow.
    '''


class CookieRangeError(CookieError):
    '''
    Raised when a cookie `Max-Age` is negative.
    '''


@dc.dataclass(slots=True)
class Cookie:
    '''
    An HTTP cookie and its `Set-Cookie` attributes.

    Attributes
    ----------
    - name: The cookie name, an RFC 6265 token.

    - value: The cookie value.

    - expires: Either an aware datetime or UTC milliseconds since the epoch.
    `None` means a session cookie.

    - max_age: Lifetime in seconds, must be a non-negative integer.

    - domain: The hosts the cookie is sent to.

    - path: Only request paths matching this one get the cookie.

    - secure / http_only / partitioned: Flag attributes.

    - same_site: One of `Strict`, `Lax` or `None`.

    - unparsed: Unrecognized attributes kept as raw `key=value` strings.
    '''
    name: str
    value: str = ''
    expires: dt.datetime | int | float | None = None
    max_age: int | None = None
    domain: str | None = None
    path: str | None = None
    secure: bool = False
    http_only: bool = False
    partitioned: bool = False
    same_site: SameSite | None = None
    unparsed: list[str] = dc.field(default_factory=list)

    @property
    def expires_at(self) -> dt.datetime | None:
        '''
        `expires` as an aware UTC datetime, whichever form it was given in.
        '''
        expires = self.expires
        if expires is None:
            return None
        if isinstance(expires, dt.datetime):
            if expires.tzinfo is None:
                return expires.replace(tzinfo=dt.timezone.utc)
            return expires
        try:
            return dt.datetime.fromtimestamp(expires / 1000, tz=dt.timezone.utc)
        except (OverflowError, OSError, ValueError):
            if expires < 0:
                return dt.datetime.min.replace(tzinfo=dt.timezone.utc)
            return MAX_EXPIRY

    def is_expired(self, now: dt.datetime | None = None) -> bool:
        expires_at = self.expires_at
        if expires_at is None:
            return False
        return expires_at <= (now or dt.datetime.now(dt.timezone.utc))


def validate_name(name: str) -> None:
    if name and not _NAME_EXPR.match(name):
        raise CookieSyntaxError(f'Invalid cookie name: "{name}"')


def validate_value(name: str, value: str | None) -> None:
    '''
    Raises
    ------
    CookieSyntaxError
        If the value has a control character, space, `"`, `,`, `;`, `\\`,
        DEL or anything outside US-ASCII.
    '''
    if value is None:
        return
    for char in value:
        code = ord(char)
        if code < 0x21 or char in '",;\\' or code == 0x7F:
            raise CookieSyntaxError(
                f"RFC2616 cookie '{name}' cannot contain character '{char}'"
            )
        if code >= 0x80:
            raise CookieSyntaxError(
                f"RFC2616 cookie '{name}' can only have US-ASCII chars as value: "
                f"It contains 0x{code:x}"
            )


def validate_domain(domain: str) -> None:
    if domain.startswith('-') or domain.endswith(('.', '-')):
        raise CookieSyntaxError(
            f'Invalid first/last char in cookie domain: {domain}'
        )


def validate_path(path: str | None) -> None:
    if path is None:
        return
    for char in path:
        if not 0x20 <= ord(char) <= 0x7E or char == ';':
            raise CookieSyntaxError(
                f'Cookie path "{path}" contains invalid character: "{char}"'
            )
