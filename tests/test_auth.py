import pytest

from streamgrab.auth import (
    AuthContext,
    AuthStore,
    CookieFileStore,
    ObservedRequest,
    StaticCredentialStore,
    build_headers,
    ensure,
    extract_context,
)
from streamgrab.exceptions import ConfigurationError

SEGMENT_URL = "https://cdn.example/hls/seg-1.ts"


def test_cookie_only_context_builds_cookie_header_alone():
    headers = build_headers(AuthContext(cookie="sid=abc"), SEGMENT_URL)

    assert headers == {"Cookie": "sid=abc"}


def test_no_context_builds_no_headers():
    assert build_headers(None, SEGMENT_URL) == {}
    assert build_headers(AuthContext(), SEGMENT_URL) == {}


def test_full_context_headers():
    context = AuthContext(
        cookie="sid=abc",
        authorization="Bearer t",
        referer="https://site.example/watch",
        origin="https://site.example",
        custom_headers={"x-auth-token": "tok", "range": "bytes=0-99"},
    )

    headers = build_headers(context, SEGMENT_URL)

    assert headers == {
        "X-Auth-Token": "tok",
        "Cookie": "sid=abc",
        "Authorization": "Bearer t",
        "Referer": "https://site.example/watch",
        "Origin": "https://site.example",
    }


def test_context_is_immutable():
    context = AuthContext(custom_headers={"x-a": "1"})

    with pytest.raises(TypeError):
        context.custom_headers["x-b"] = "2"


def test_merge_keeps_existing_values_and_fills_gaps():
    existing = AuthContext(cookie="old", custom_headers={"x-a": "1"})
    observed = AuthContext(
        cookie="new",
        referer="https://site.example/",
        custom_headers={"x-a": "2", "x-b": "3"},
        page_url="https://site.example/watch",
    )

    merged = existing.merge(observed)

    assert merged.cookie == "old"
    assert merged.referer == "https://site.example/"
    assert dict(merged.custom_headers) == {"x-a": "1", "x-b": "3"}
    assert merged.page_url == "https://site.example/watch"
    assert existing.referer is None


def test_extract_context_picks_credential_headers():
    request = ObservedRequest(
        url=SEGMENT_URL,
        headers={
            "Cookie": "sid=1",
            "Authorization": "Bearer x",
            "X-Playback-Session": "p",
            "Range": "bytes=0-",
            "Accept": "*/*",
            "User-Agent": "browser",
        },
        page_url="https://site.example/watch",
    )

    context = extract_context(request)

    assert context.cookie == "sid=1"
    assert context.authorization == "Bearer x"
    assert dict(context.custom_headers) == {
        "x-playback-session": "p",
        "range": "bytes=0-",
    }
    assert context.page_url == "https://site.example/watch"


def test_capture_only_streaming_requests():
    store = AuthStore()

    captured = store.capture(
        "tab-1",
        ObservedRequest("https://site.example/style.css", {"Cookie": "sid=1"}),
    )

    assert not captured
    assert "tab-1" not in store


def test_capture_creates_and_merges_per_context():
    store = AuthStore()
    store.capture(
        "tab-1", ObservedRequest("https://cdn.example/a.m3u8", {"Cookie": "sid=1"})
    )
    store.capture(
        "tab-1",
        ObservedRequest(
            "https://cdn.example/a-1.ts", {"Cookie": "sid=2", "Referer": "https://r/"}
        ),
    )
    store.capture(
        "tab-2", ObservedRequest("https://cdn.example/b.mpd", {"Cookie": "other"})
    )

    assert store.get("tab-1").cookie == "sid=1"
    assert store.get("tab-1").referer == "https://r/"
    assert store.get("tab-2").cookie == "other"
    assert len(store) == 2


def test_capture_ignores_ad_requests():
    store = AuthStore()

    assert not store.capture(
        "tab", ObservedRequest("https://doubleclick.net/ad.mp4", {"Cookie": "x"})
    )


def test_update_overrides_captured_values_and_keeps_the_rest():
    store = AuthStore()
    store.capture(
        "cli",
        ObservedRequest(
            SEGMENT_URL, {"Cookie": "sid=captured", "Referer": "https://site/"}
        ),
    )

    merged = store.update("cli", AuthContext(cookie="sid=explicit"))

    assert merged.cookie == "sid=explicit"
    assert merged.referer == "https://site/"
    assert store.get("cli") is merged


def test_update_creates_missing_context():
    store = AuthStore()

    store.update("cli", AuthContext(authorization="Bearer t"))

    assert "cli" in store
    assert store.get("cli").authorization == "Bearer t"


def test_discard_destroys_context():
    store = AuthStore()
    store.capture("tab", ObservedRequest(SEGMENT_URL, {"Cookie": "sid=1"}))

    store.discard("tab")

    assert "tab" not in store
    assert store.get("tab").is_empty


def test_snapshot_held_by_reader_is_not_changed_by_later_capture():
    store = AuthStore()
    store.capture("tab", ObservedRequest(SEGMENT_URL, {"Cookie": "sid=1"}))
    snapshot = store.get("tab")

    store.capture("tab", ObservedRequest(SEGMENT_URL, {"Origin": "https://o"}))

    assert snapshot.origin is None
    assert store.get("tab").origin == "https://o"


def test_ensure_fills_cookie_from_credential_store():
    credentials = StaticCredentialStore({"example": "sid=store"})

    context = ensure(AuthContext(), "https://cdn.example/x.m3u8", credentials)

    assert context.cookie == "sid=store"


def test_ensure_keeps_captured_cookie():
    credentials = StaticCredentialStore({"cdn.example": "sid=store"})

    context = ensure(AuthContext(cookie="sid=captured"), SEGMENT_URL, credentials)

    assert context.cookie == "sid=captured"


def test_ensure_derives_referer_from_page_url():
    context = ensure(AuthContext(page_url="https://site.example/watch"), SEGMENT_URL)

    assert context.referer == "https://site.example/watch"


def test_static_store_does_not_match_unrelated_host():
    credentials = StaticCredentialStore({"example": "sid"})

    assert credentials.cookies_for("https://notexample.org/a") is None


def test_cookie_file_store(tmp_path):
    cookies = tmp_path / "cookies.txt"
    cookies.write_text(
        "# Netscape HTTP Cookie File\n"
        ".cdn.example\tTRUE\t/\tFALSE\t4102444800\tsid\tabc\n"
        ".other.example\tTRUE\t/\tFALSE\t4102444800\tnope\t1\n",
        encoding="utf-8",
    )

    store = CookieFileStore(cookies)

    assert len(store) == 2
    assert store.cookies_for("https://media.cdn.example/seg.ts") == "sid=abc"
    assert store.cookies_for("https://unrelated.example/seg.ts") is None


def test_missing_cookie_file_is_a_configuration_error(tmp_path):
    with pytest.raises(ConfigurationError):
        CookieFileStore(tmp_path / "missing.txt")
