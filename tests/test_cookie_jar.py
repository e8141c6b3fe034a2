import datetime as dt

import httpx
import pytest

from knifetch.cookies import Cookie, CookieJar, default_path, path_matches

UTC = dt.timezone.utc


def make_response(url: str, *set_cookies: str) -> httpx.Response:
    return httpx.Response(
        200,
        headers=[("set-cookie", value) for value in set_cookies],
        request=httpx.Request("GET", url),
    )


@pytest.fixture
def jar() -> CookieJar:
    return CookieJar()


def test_secure_cookie_scoped_to_https(jar: CookieJar) -> None:
    jar.ingest(make_response("https://example.com/a/b", "id=42; Path=/; Secure"))

    assert jar.cookies_for("https://example.com/a/b/c") == ["id=42"]
    assert jar.cookies_for("http://example.com/a") == []


def test_secure_cookie_from_http_is_dropped(jar: CookieJar) -> None:
    jar.ingest(make_response("http://example.com/", "id=42; Secure", "plain=1"))

    assert [cookie.name for cookie in jar.snapshot()] == ["plain"]


def test_localhost_is_trusted(jar: CookieJar) -> None:
    jar.ingest(make_response("http://localhost:8000/", "id=42; Secure; Path=/"))

    assert jar.cookies_for("http://localhost:8000/anything") == ["id=42"]


def test_default_domain_and_path(jar: CookieJar) -> None:
    jar.ingest(make_response("https://example.com/docs/page", "a=1"))

    (cookie,) = jar.snapshot()
    assert cookie.domain == "example.com"
    assert cookie.path == "/docs"

    assert jar.cookies_for("https://example.com/docs") == ["a=1"]
    assert jar.cookies_for("https://example.com/docs/deeper/page") == ["a=1"]
    assert jar.cookies_for("https://example.com/docsx") == []
    assert jar.cookies_for("https://example.com/other") == []
    assert jar.cookies_for("https://other.com/docs") == []


@pytest.mark.parametrize(
    ("path", "expected"),
    [("", "/"), ("/", "/"), ("/page", "/"), ("/a/b", "/a"), ("/a/b/", "/a/b"), ("page", "/")],
)
def test_default_path(path: str, expected: str) -> None:
    assert default_path(path) == expected


@pytest.mark.parametrize(
    ("request_path", "cookie_path", "expected"),
    [
        ("/a", "/a", True),
        ("/a/b", "/a", True),
        ("/ab", "/a", False),
        ("/a/b", "/a/", True),
        ("/a", "/a/", False),
        ("/anything", "/", True),
    ],
)
def test_path_matches(request_path: str, cookie_path: str, expected: bool) -> None:
    assert path_matches(request_path, cookie_path) is expected


def test_parent_domain_is_accepted(jar: CookieJar) -> None:
    jar.ingest(make_response("https://www.example.com/", "a=1; Domain=example.com; Path=/"))

    assert jar.cookies_for("https://api.example.com/") == ["a=1"]
    assert jar.cookies_for("https://example.com/") == ["a=1"]
    assert jar.cookies_for("https://notexample.com/") == []


@pytest.mark.parametrize("domain", ["other.com", "ample.com", "api.example.com"])
def test_foreign_domain_is_dropped(jar: CookieJar, domain: str) -> None:
    jar.ingest(make_response("https://example.com/", f"a=1; Domain={domain}"))

    assert len(jar) == 0


def test_expired_cookie_removes_stored_one(jar: CookieJar) -> None:
    jar.ingest(make_response("https://example.com/", "a=1; Path=/", "b=2; Path=/"))
    jar.ingest(make_response("https://example.com/", "a=; Path=/; Max-Age=0"))
    jar.ingest(make_response("https://example.com/", "b=; Path=/; Expires=Thu, 01 Jan 1970 00:00:00 GMT"))

    assert len(jar) == 0


def test_max_age_sets_expiry(jar: CookieJar) -> None:
    jar.ingest(make_response("https://example.com/", "a=1; Path=/; Max-Age=3600"))

    (cookie,) = jar.snapshot()
    assert cookie.expires_at is not None
    assert cookie.expires_at > dt.datetime.now(UTC) + dt.timedelta(minutes=59)


def test_duplicates_coexist(jar: CookieJar) -> None:
    jar.ingest(make_response("https://example.com/", "a=1; Path=/"))
    jar.ingest(make_response("https://example.com/", "a=2; Path=/"))

    assert jar.cookies_for("https://example.com/") == ["a=1", "a=2"]


def test_dropped_cookies_do_not_stop_ingestion(jar: CookieJar) -> None:
    jar.ingest(make_response(
        "https://example.com/",
        "bad=1; Max-Age=-1",
        "__Host-bad=1; Path=/",
        "good=1; Path=/",
    ))

    assert jar.cookies_for("https://example.com/") == ["good=1"]


def test_response_without_request_is_ignored(jar: CookieJar) -> None:
    jar.ingest(httpx.Response(200, headers=[("set-cookie", "a=1")]))

    assert len(jar) == 0


def test_cookies_for_accepts_requests(jar: CookieJar) -> None:
    jar.ingest(make_response("https://example.com/", "a=1; Path=/"))

    request = httpx.Request("GET", "https://example.com/page?q=1")
    assert jar.cookies_for(request) == ["a=1"]
    assert jar.cookies_for(httpx.URL("https://example.com/")) == ["a=1"]


def test_expired_cookies_are_swept() -> None:
    past = dt.datetime(2000, 1, 1, tzinfo=UTC)
    future_ms = (dt.datetime.now(UTC) + dt.timedelta(days=1)).timestamp() * 1000
    jar = CookieJar.restore([
        Cookie(name="old", value="1", domain="example.com", path="/", expires=past),
        Cookie(name="new", value="2", domain="example.com", path="/", expires=future_ms),
    ])

    assert jar.cookies_for("https://example.com/") == ["new=2"]
    assert [cookie.name for cookie in jar.snapshot()] == ["new"]


def test_restore_bypasses_filtering() -> None:
    cookie = Cookie(name="s", value="1", domain="example.com", path="/", secure=True)
    jar = CookieJar.restore([cookie])

    assert jar.cookies_for("https://www.example.com/") == ["s=1"]
    assert jar.snapshot() == [cookie]
    assert jar.snapshot()[0] is not cookie


@pytest.fixture
def filled_jar() -> CookieJar:
    return CookieJar.restore([
        Cookie(name="a", value="1", domain="example.com", path="/"),
        Cookie(name="a", value="2", domain="example.com", path="/docs"),
        Cookie(name="a", value="3", domain="example.com", path="/docs/api"),
        Cookie(name="b", value="4", domain="example.com", path="/docs"),
        Cookie(name="a", value="5", domain="other.com", path="/"),
    ])


def test_remove_everything(filled_jar: CookieJar) -> None:
    filled_jar.remove()

    assert len(filled_jar) == 0


def test_remove_by_domain_and_name(filled_jar: CookieJar) -> None:
    filled_jar.remove(domain="example.com", name="a")

    assert [cookie.value for cookie in filled_jar] == ["4", "5"]


def test_remove_by_domain_path_and_name(filled_jar: CookieJar) -> None:
    filled_jar.remove(domain="example.com", path="/docs", name="a")

    assert [cookie.value for cookie in filled_jar] == ["1", "4", "5"]


def test_clear(filled_jar: CookieJar) -> None:
    filled_jar.clear()

    assert list(filled_jar) == []


def test_huge_max_age_is_clamped(jar: CookieJar) -> None:
    jar.ingest(make_response(
        "https://example.com/",
        "a=1; Path=/; Max-Age=1000000000000",
        "b=2; Path=/",
    ))

    assert jar.cookies_for("https://example.com/") == ["a=1", "b=2"]
    (cookie, _) = jar.snapshot()
    assert cookie.expires_at == dt.datetime.max.replace(tzinfo=UTC)


def test_restored_far_future_expiry_survives_sweep() -> None:
    jar = CookieJar.restore([
        Cookie(name="far", value="1", domain="example.com", path="/", expires=1e20),
        Cookie(name="gone", value="2", domain="example.com", path="/", expires=-1e20),
    ])

    assert jar.cookies_for("https://example.com/") == ["far=1"]
