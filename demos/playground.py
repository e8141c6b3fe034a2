import asyncio
import logging
import sys

import httpx

from knifetch import CookieJar, Hooks, KnifetchClient, RetryOptions


def echo(request: httpx.Request) -> httpx.Response:
    if request.url.path == '/login':
        return httpx.Response(
            200,
            headers={'Set-Cookie': 'session=abc; Path=/; HttpOnly'},
            json={'logged_in': True},
        )

    return httpx.Response(200, json={
        'method': request.method,
        'url': str(request.url),
        'cookie': request.headers.get('cookie'),
        'body': request.content.decode(),
    })


async def main() -> int:
    logging.basicConfig(
        level=logging.DEBUG,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )
    jar = CookieJar()
    client = KnifetchClient(
        'https://example.net',
        cookie_jar=jar,
        hooks=Hooks(transform_response=lambda response: response.json()),
        transport=httpx.MockTransport(echo),
    )

    async with client:
        await client.fetch('/login', retry=RetryOptions(max_tries=3, delay=0.25))
        print(await client.fetch('/echo', json={'hello': 'knifetch'}))

    for cookie in jar.snapshot():
        print(f'- {cookie.name} ({cookie.domain}{cookie.path})')

    return 0

if __name__ == '__main__':
    sys.exit(
        asyncio.run(main())
    )
