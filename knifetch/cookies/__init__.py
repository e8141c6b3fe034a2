'''
**knifetch.cookies**
-------------

The `Cookie` value type, `Set-Cookie` / `Cookie` header conversion and the
`CookieJar` that stores cookies from responses and replays them on requests.
See: `knifetch.cookies._parser` and `knifetch.cookies._jar` for more details.
'''
from knifetch.cookies._jar import CookieJar, default_path, domain_matches, path_matches
from knifetch.cookies._model import (
    Cookie,
    CookieError,
    CookieRangeError,
    CookieSyntaxError,
    SameSite,
)
from knifetch.cookies._parser import (
    delete_cookie,
    extract_set_cookie_headers,
    get_cookies,
    get_set_cookies,
    parse,
    parse_cookie_header,
    serialize,
    set_cookie,
)

__all__ = [
    'CookieJar',
    'default_path',
    'domain_matches',
    'path_matches',
    'Cookie',
    'CookieError',
    'CookieRangeError',
    'CookieSyntaxError',
    'SameSite',
    'delete_cookie',
    'extract_set_cookie_headers',
    'get_cookies',
    'get_set_cookies',
    'parse',
    'parse_cookie_header',
    'serialize',
    'set_cookie',
]
