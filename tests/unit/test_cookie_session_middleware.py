from __future__ import annotations
import dataclasses
import json
from datetime import timedelta
from urllib.parse import parse_qs

import pytest

from cookie_session.application.middleware import HandlerStack
from cookie_session.application.ports.http_client_port import AuthCookieOptions, HttpRequest, RequestOptions
from cookie_session.application.use_cases.cookie_session import CookieSessionMiddleware
from cookie_session.domain.cookie import Cookie
from cookie_session.domain.cookie_jar import CookieJar
from cookie_session.domain.login_config import LoginMethod
from cookie_session.errors import InvalidLoginMethodError, TransportError
from tests.unit._fakes_http import NOW, FixedClock, HistoryMiddleware, RecordingHandler, RecordingTransport, response

LOGIN_URI = "http://example.org/login"
FIELDS = {"user": "John Doe", "password": "pass"}
EXPIRES = NOW + timedelta(hours=2)
COOKIE_STRING = "sessionToken=abc123; Domain=.example.org; Path=/; Expires=Wed, 01 Jan 2025 14:00:00 GMT"
COOKIE = Cookie("sessionToken", "abc123", ".example.org", "/", EXPIRES)


def make(cookies=None, method="POST", transport=None, fields=FIELDS, clock=None):
    return CookieSessionMiddleware(
        LOGIN_URI,
        fields,
        method,
        cookies,
        transport=transport or RecordingTransport(set_cookies=["sessionToken=fromlogin; Path=/"]),
        clock=clock or FixedClock(),
    )


@pytest.mark.parametrize(
    "seed",
    [
        COOKIE_STRING,
        [COOKIE_STRING],
        COOKIE,
        [COOKIE],
        {"Name": "sessionToken", "Value": "abc123", "Domain": ".example.org", "Path": "/", "Expires": EXPIRES},
        [{"name": "sessionToken", "value": "abc123", "domain": ".example.org", "expires": EXPIRES.isoformat()}],
        [[COOKIE_STRING], (COOKIE,)],
    ],
)
def test_seed_shapes_fill_jar(seed):
    m = make(seed)
    assert m.cookie_jar.to_list() == [COOKIE]
    assert m.login_completed is True


def test_sequence_of_records_seeds_every_cookie():
    m = make(
        [
            {"name": "sessionToken", "value": "abc123", "domain": ".example.org", "expires": EXPIRES},
            {"Name": "theme", "Value": "dark", "Domain": "example.org", "Path": "/app", "Secure": True},
        ]
    )
    assert {c.name: (c.domain, c.path, c.secure) for c in m.cookie_jar} == {
        "sessionToken": (".example.org", "/", False),
        "theme": ("example.org", "/app", True),
    }
    assert m.login_completed is True


def test_no_seed_leaves_fresh_state():
    m = make(None)
    assert m.cookie_jar.count() == 0
    assert m.login_completed is False


def test_unknown_and_invalid_seed_entries_are_skipped():
    m = make([42, object(), "no-domain=1", b"raw=bytes", COOKIE_STRING])
    assert m.cookie_jar.to_list() == [COOKIE]


def test_only_invalid_seed_keeps_fresh_state():
    m = make(["no-domain=1", 3.5])
    assert m.cookie_jar.count() == 0
    assert m.login_completed is False


def test_existing_jar_is_shared_and_login_still_required():
    jar = CookieJar([COOKIE], clock=FixedClock())
    m = make(jar)
    assert m.cookie_jar is jar
    assert m.login_completed is False


def test_config_is_kept_as_supplied():
    m = make(method="json")
    assert m.config.uri == LOGIN_URI
    assert m.config.fields == FIELDS
    assert m.config.method is LoginMethod.JSON


def test_unknown_method_is_rejected():
    with pytest.raises(InvalidLoginMethodError):
        make(method="PUT")


async def test_intercept_without_auth_passes_through():
    transport = RecordingTransport()
    m = make(COOKIE_STRING, transport=transport)
    inner = RecordingHandler(set_cookies=["other=1"])
    handler = m.intercept(inner)
    request = HttpRequest("GET", "http://example.org/x")

    await handler(request, RequestOptions())
    await handler(request, RequestOptions(auth="basic"))

    assert inner.requests == [request, request]
    assert "Cookie" not in inner.last.headers
    assert transport.calls == []
    assert [c.name for c in m.cookie_jar] == ["sessionToken"]


async def test_intercept_attaches_seeded_cookie_without_login():
    transport = RecordingTransport()
    m = make(COOKIE_STRING, transport=transport)
    inner = RecordingHandler()
    request = HttpRequest("GET", "http://example.org/x")

    await m.intercept(inner)(request, RequestOptions(auth="cookie"))

    assert inner.last.headers["Cookie"].startswith("sessionToken=abc123")
    assert inner.last.headers["Cookie"] == "sessionToken=abc123"
    assert "Cookie" not in request.headers
    assert transport.calls == []


async def test_intercept_with_empty_jar_logs_in_once():
    transport = RecordingTransport(set_cookies=["sessionToken=fromlogin; Path=/"])
    m = make(transport=transport)
    inner = RecordingHandler()
    handler = m.intercept(inner)

    await handler(HttpRequest("GET", "http://example.org/a"), RequestOptions(auth="cookie"))
    await handler(HttpRequest("GET", "http://example.org/b"), RequestOptions(auth="cookie"))

    assert len(transport.calls) == 1
    assert m.login_completed is True
    assert [r.headers["Cookie"] for r in inner.requests] == ["sessionToken=fromlogin"] * 2


async def test_shared_jar_triggers_login_despite_contents():
    transport = RecordingTransport()
    m = make(CookieJar([COOKIE], clock=FixedClock()), transport=transport)
    await m.intercept(RecordingHandler())(HttpRequest("GET", "http://example.org/"), RequestOptions(auth="cookie"))
    assert len(transport.calls) == 1


async def test_intercept_absorbs_response_cookies():
    m = make(COOKIE_STRING)
    inner = RecordingHandler(set_cookies=["theme=dark", "sessionToken=rotated; Domain=.example.org; Path=/"])
    resp = await m.intercept(inner)(HttpRequest("GET", "http://example.org/x"), RequestOptions(auth="cookie"))

    assert resp.status_code == 200
    cookies = {c.name: c.value for c in m.cookie_jar}
    assert cookies == {"sessionToken": "rotated", "theme": "dark"}


async def test_auth_cookie_option_is_consumed():
    calls = []

    def hook(login):
        calls.append(login)
        return login

    m = make()
    inner = RecordingHandler()
    options = RequestOptions.from_mapping({"auth": "cookie", "auth-cookie": {"onBeforeLogin": hook}})

    await m.intercept(inner)(HttpRequest("GET", "http://example.org/"), options)

    assert len(calls) == 1
    assert inner.options[-1].auth_cookie is None
    assert options.auth_cookie is not None


async def test_ensure_session_consumes_auth_cookie_without_login():
    transport = RecordingTransport()
    m = make(COOKIE_STRING, transport=transport)
    options = RequestOptions(auth="cookie", auth_cookie=AuthCookieOptions(on_before_login=lambda login: login))
    out = await m.ensure_session(options)
    assert out.auth_cookie is None
    assert transport.calls == []


async def test_on_before_login_veto_skips_login():
    transport = RecordingTransport()
    m = make(transport=transport)
    options = RequestOptions(auth="cookie", auth_cookie=AuthCookieOptions(on_before_login=lambda login: False))

    await m.ensure_session(options)

    assert transport.calls == []
    assert m.login_completed is False


async def test_on_before_login_can_rewrite_login_request():
    transport = RecordingTransport()
    m = make(transport=transport)
    hook = lambda login: dataclasses.replace(login, uri="http://example.org/sso", headers={"X-Trace": "1"})

    await m.perform_login(RequestOptions(auth_cookie=AuthCookieOptions(on_before_login=hook)))

    request, _ = transport.calls[0]
    assert str(request.url) == "http://example.org/sso"
    assert request.headers["X-Trace"] == "1"


async def test_post_login_sends_form_fields_without_redirects():
    transport = RecordingTransport()
    m = make(transport=transport)

    await m.perform_login(RequestOptions(debug=True))

    request, options = transport.calls[0]
    assert request.method == "POST"
    assert str(request.url) == LOGIN_URI
    assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
    assert parse_qs(request.content.decode()) == {"user": ["John Doe"], "password": ["pass"]}
    assert options.allow_redirects is False
    assert options.debug is True


async def test_json_login_posts_json_body():
    transport = RecordingTransport()
    m = make(method="JSON", transport=transport)

    await m.perform_login(RequestOptions())

    request, _ = transport.calls[0]
    assert request.method == "POST"
    assert request.headers["Content-Type"] == "application/json"
    assert json.loads(request.content) == FIELDS


async def test_get_login_puts_fields_in_query():
    transport = RecordingTransport()
    m = make(method="GET", transport=transport, fields={"username": "user", "sessionToken": "abc123"})

    await m.perform_login(RequestOptions())

    request, _ = transport.calls[0]
    assert request.method == "GET"
    assert request.url.params["username"] == "user"
    assert request.url.params["sessionToken"] == "abc123"
    assert request.content is None


async def test_get_login_wraps_scalar_fields():
    transport = RecordingTransport()
    m = make(method="GET", transport=transport, fields="token")
    await m.perform_login(RequestOptions())
    request, _ = transport.calls[0]
    assert request.url.params["0"] == "token"


async def test_login_uses_base_uri_for_relative_login_uri():
    transport = RecordingTransport()
    m = CookieSessionMiddleware("/login", FIELDS, transport=transport, clock=FixedClock())
    await m.perform_login(RequestOptions(), base_uri="http://example.org/api/")
    request, options = transport.calls[0]
    assert str(request.url) == "http://example.org/login"
    assert options.base_uri == "http://example.org/api/"


async def test_login_cookies_land_in_jar_regardless_of_status():
    transport = RecordingTransport(set_cookies=["sid=xyz"], status=401)
    m = make(transport=transport)
    await m.perform_login(RequestOptions())
    assert [c.name for c in m.cookie_jar] == ["sid"]
    assert m.login_completed is True


async def test_failed_login_propagates_and_is_retried_next_time():
    transport = RecordingTransport(set_cookies=["sid=xyz"], fail_times=1)
    m = make(transport=transport)
    inner = RecordingHandler()
    handler = m.intercept(inner)

    with pytest.raises(TransportError):
        await handler(HttpRequest("GET", "http://example.org/"), RequestOptions(auth="cookie"))
    assert m.login_completed is False
    assert inner.requests == []

    await handler(HttpRequest("GET", "http://example.org/"), RequestOptions(auth="cookie"))
    assert len(transport.calls) == 2
    assert m.login_completed is True
    assert inner.last.headers["Cookie"] == "sid=xyz"


def test_attach_cookies_never_sends_expired_cookies():
    clock = FixedClock()
    m = make(COOKIE_STRING, clock=clock)
    clock.advance(hours=3)
    request = HttpRequest("GET", "http://example.org/x")
    assert m.attach_cookies(request, RequestOptions()) is request
    assert m.login_completed is True


def test_attach_cookies_scopes_relative_url_with_base_uri():
    m = make(COOKIE_STRING)
    request = HttpRequest("GET", "/x")
    attached = m.attach_cookies(request, RequestOptions(base_uri="http://example.org"))
    assert attached.headers["Cookie"] == "sessionToken=abc123"
    assert str(attached.url) == "/x"
    assert "Cookie" not in m.attach_cookies(request, RequestOptions()).headers


def test_absorb_cookies_stores_set_cookie():
    m = make()
    request = HttpRequest("GET", "http://example.org/get")
    resp = response(set_cookies=["sessionToken=abc123; Domain=.example.org; Path=/"])

    assert m.absorb_cookies(request, resp) is resp
    cookie = m.cookie_jar.to_list()[0]
    assert (cookie.name, cookie.value) == ("sessionToken", "abc123")


async def test_stack_with_history_sees_cookie_header():
    transport = RecordingTransport()
    m = make(COOKIE_STRING, transport=transport)
    history = HistoryMiddleware()
    stack = HandlerStack(transport, [m, history])

    await stack.send(HttpRequest("POST", "http://example.org/post"), {"auth": "cookie"})

    sent = history.container[0]["request"]
    assert sent.headers["Cookie"] == "sessionToken=abc123"
    assert len(transport.calls) == 1


def test_attach_cookies_for_session_cookie_without_expiry():
    m = make("sessionToken=abc123; Domain=.example.org; Path=/")
    attached = m.attach_cookies(HttpRequest("GET", "http://example.org/x"))
    assert attached.headers["Cookie"].startswith("sessionToken=abc123")


async def test_only_cookie_auth_requests_hand_the_jar_down():
    m = make(COOKIE_STRING)
    inner = RecordingHandler()
    handler = m.intercept(inner)

    await handler(HttpRequest("GET", "http://example.org/"), RequestOptions())
    await handler(HttpRequest("GET", "http://example.org/"), RequestOptions(auth="cookie"))

    assert inner.options[0].cookie_jar is None
    assert inner.options[1].cookie_jar is m.cookie_jar
