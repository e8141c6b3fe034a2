'''
**knifetch.http**
---------

The HTTP side of knifetch: `KnifetchClient`, an httpx client with a cookie jar,
interceptor hooks and body helpers, its transport, and the `retry` engine which
works with any coroutine function, not only requests.
'''
from knifetch.http._client import (
    ClientConfig,
    Hooks,
    KnifetchClient,
    RequestRetry,
    resolve_retry,
)
from knifetch.http._retry import (
    RetryError,
    RetryErrorKind,
    RetryOptions,
    retry,
    retry_policy,
)
from knifetch.http._transport import (
    FetchTransport,
    URLRejectedError,
    default_socket_options,
    verify_http_url,
)

__all__ = [
    'ClientConfig',
    'Hooks',
    'KnifetchClient',
    'RequestRetry',
    'resolve_retry',
    'RetryError',
    'RetryErrorKind',
    'RetryOptions',
    'retry',
    'retry_policy',
    'FetchTransport',
    'URLRejectedError',
    'default_socket_options',
    'verify_http_url',
]
