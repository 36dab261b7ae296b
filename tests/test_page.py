import pytest

from streamgrab.exceptions import CaptureImportError
from streamgrab.models.stream import StreamType
from streamgrab.web.page import fetch_and_scan, scan_page

PAGE_URL = "https://site.example/watch/42"

PAGE = """<!doctype html>
<html>
<head>
  <title> Episode 42 </title>
  <meta property="og:video" content="https://cdn.example/og/clip.mp4">
  <script type="application/ld+json">
    {"@type": "VideoObject", "contentUrl": "https://cdn.example/ld/stream.m3u8",
     "thumbnailUrl": "https://cdn.example/thumb.jpg"}
  </script>
</head>
<body>
  <video src="/media/main_720p.mp4">
    <source src="hls/master.m3u8" type="application/x-mpegURL">
  </video>
  <video src="blob:https://site.example/1234"></video>
  <audio><source src="/media/theme.mp3"></audio>
  <iframe src="https://player.example/embed/manifest.mpd"></iframe>
  <a href="/downloads/extra.mkv">Download</a>
  <a href="/about">About</a>
  <div data-hls="https://cdn.example/data/live.m3u8"></div>
  <img data-src="/img/lazy.jpg">
  <video src="https://doubleclick.net/ad.mp4"></video>
  <a href="/media/main_720p.mp4">Same file</a>
</body>
</html>
"""


def test_scan_finds_media_from_every_source():
    streams = scan_page(PAGE, PAGE_URL)
    urls = [s.url for s in streams]

    assert urls == [
        "https://site.example/media/main_720p.mp4",
        "https://site.example/watch/hls/master.m3u8",
        "https://site.example/media/theme.mp3",
        "https://player.example/embed/manifest.mpd",
        "https://site.example/downloads/extra.mkv",
        "https://cdn.example/og/clip.mp4",
        "https://cdn.example/ld/stream.m3u8",
        "https://cdn.example/data/live.m3u8",
    ]


def test_scanned_streams_are_classified():
    streams = {s.url: s for s in scan_page(PAGE, PAGE_URL)}

    main = streams["https://site.example/media/main_720p.mp4"]
    assert main.type is StreamType.DIRECT
    assert main.quality == "720p"
    assert main.filename == "main_720p.mp4"
    assert main.page_url == PAGE_URL
    assert main.page_title == "Episode 42"

    assert streams["https://site.example/watch/hls/master.m3u8"].type is StreamType.HLS
    assert streams["https://player.example/embed/manifest.mpd"].type is StreamType.DASH
    assert streams["https://site.example/media/theme.mp3"].type is StreamType.AUDIO


def test_page_without_media():
    assert scan_page("<html><body><p>hi</p></body></html>", PAGE_URL) == []


async def test_fetch_and_scan(media_server, session):
    url = media_server.add(
        "/watch", '<video src="clip.mp4"></video>', content_type="text/html"
    )

    streams = await fetch_and_scan(session, url)

    assert [s.url for s in streams] == [media_server.url("/clip.mp4")]


async def test_fetch_and_scan_http_error(media_server, session):
    with pytest.raises(CaptureImportError):
        await fetch_and_scan(session, media_server.url("/missing"))
