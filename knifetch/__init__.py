'''
**knifetch**

A small HTTP request helper on top of httpx with two parts worth knowing:
a retry engine (`knifetch.http.retry`) and a client side cookie jar
(`knifetch.cookies.CookieJar`). `KnifetchClient` puts both together.
'''
from knifetch.cookies import Cookie, CookieJar
from knifetch.http import (
    ClientConfig,
    Hooks,
    KnifetchClient,
    RetryError,
    RetryErrorKind,
    RetryOptions,
    retry,
    retry_policy,
)

__all__ = [
    'Cookie',
    'CookieJar',
    'ClientConfig',
    'Hooks',
    'KnifetchClient',
    'RetryError',
    'RetryErrorKind',
    'RetryOptions',
    'retry',
    'retry_policy',
]
