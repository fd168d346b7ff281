import base64

import httpx
import pytest

from mediaingest.core.errors import ProviderCredentialInvalid, ProviderIdentifierMissing, SourceUnavailable
from mediaingest.ingest.remote import (
    EMBED_HEIGHT,
    EMBED_WIDTH,
    Provider,
    RemoteFetcher,
    host_contains,
    parse_iso8601_duration,
    to_data_url,
)
from mediaingest.schemas import AssetRecord, LinkUnavailable

PREVIEW = b"\xff\xd8\xff\xe0preview-bytes"


def _fetcher(settings, handler, **kwargs):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return RemoteFetcher(settings, client=client, storage_adapter="local", **kwargs)


@pytest.mark.parametrize(
    "value, seconds",
    [
        ("PT1H2M3S", 3723),
        ("PT45S", 45),
        ("P1DT1S", 86401),
        ("P1W", 604800),
        ("PT1.5S", 1),
    ],
)
def test_parse_iso8601_duration(value, seconds):
    assert parse_iso8601_duration(value) == seconds


@pytest.mark.parametrize("value", ["", "P", "PT", "1H", "PTXS"])
def test_parse_iso8601_duration_rejects_garbage(value):
    with pytest.raises(ValueError):
        parse_iso8601_duration(value)


def test_youtube_without_api_key(settings):
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, content=PREVIEW)

    record = _fetcher(settings, handler).fetch("https://www.youtube.com/watch?v=abc123")

    assert seen == ["http://img.youtube.com/vi/abc123/0.jpg"]
    assert record.type == "embed/youtube"
    assert record.name == "youtube_abc123.jpg"
    assert record.url == "abc123"
    assert record.title == "YouTube Video: abc123"
    assert record.size == 0
    assert (record.width, record.height) == (EMBED_WIDTH, EMBED_HEIGHT)
    assert record.data == to_data_url(PREVIEW, "image/jpeg")
    assert record.storage_adapter == "local"
    assert record.date_uploaded is not None


def test_youtube_with_api_key(settings):
    settings = settings.model_copy(update={"youtube_api_key": "secret"})

    def handler(request):
        if request.url.host == "www.googleapis.com":
            assert request.url.params["id"] == "abc123"
            assert request.url.params["key"] == "secret"
            return httpx.Response(
                200,
                json={
                    "items": [
                        {
                            "snippet": {"title": "A talk", "description": "About things", "tags": ["a", "b"]},
                            "contentDetails": {"duration": "PT1M5S"},
                        }
                    ]
                },
            )
        return httpx.Response(200, content=PREVIEW)

    record = _fetcher(settings, handler).fetch("https://youtube.com/watch?v=abc123&t=10")

    assert record.title == "A talk"
    assert record.caption == "About things"
    assert record.tags == "a,b"
    assert record.size == 65


def test_youtube_bad_api_key(settings):
    settings = settings.model_copy(update={"youtube_api_key": "wrong"})

    def handler(request):
        if request.url.host == "www.googleapis.com":
            return httpx.Response(400, json={"error": {"code": 400, "message": "API key not valid"}})
        return httpx.Response(200, content=PREVIEW)

    with pytest.raises(ProviderCredentialInvalid, match="Bad YouTube API key"):
        _fetcher(settings, handler).fetch("https://www.youtube.com/watch?v=abc123")


def test_youtube_api_outage_degrades_title(settings):
    settings = settings.model_copy(update={"youtube_api_key": "secret"})

    def handler(request):
        if request.url.host == "www.googleapis.com":
            return httpx.Response(503, text="unavailable")
        return httpx.Response(200, content=PREVIEW)

    record = _fetcher(settings, handler).fetch("https://www.youtube.com/watch?v=abc123")

    assert record.title == "Unable to retrieve YouTube title"
    assert record.size == 0


def test_youtube_without_video_id(settings):
    with pytest.raises(ProviderIdentifierMissing, match="YouTube video ID not detected"):
        _fetcher(settings, lambda request: httpx.Response(200)).fetch("https://www.youtube.com/channel/xyz")


def test_youtube_preview_failure_is_fatal(settings):
    with pytest.raises(SourceUnavailable):
        _fetcher(settings, lambda request: httpx.Response(404)).fetch("https://www.youtube.com/watch?v=abc123")


def test_vimeo_record(settings):
    def handler(request):
        if request.url.host == "vimeo.com":
            assert request.url.path == "/api/v2/video/76979871.json"
            return httpx.Response(
                200,
                json=[
                    {
                        "title": "The New Vimeo Player",
                        "description": "It&#039;s <b>new</b>",
                        "duration": 62,
                        "width": 1280,
                        "height": 720,
                        "tags": "player, vimeo",
                        "thumbnail_large": "https://i.vimeocdn.com/video/452001751_640.jpg",
                    }
                ],
            )
        return httpx.Response(200, content=PREVIEW)

    record = _fetcher(settings, handler).fetch("https://vimeo.com/76979871")

    assert record.type == "embed/vimeo"
    assert record.name == "vimeo_76979871.jpg"
    assert record.url == "76979871"
    assert record.title == "The New Vimeo Player"
    assert record.caption == "It's new"
    assert record.size == 62
    assert (record.width, record.height) == (1280, 720)
    assert record.tags == "player, vimeo"
    assert record.data == to_data_url(PREVIEW, "image/jpeg")


def test_vimeo_api_failure_keeps_defaults(settings):
    record = _fetcher(settings, lambda request: httpx.Response(500)).fetch("https://vimeo.com/123")

    assert record.title == "Unable to retrieve Vimeo title"
    assert (record.width, record.height) == (EMBED_WIDTH, EMBED_HEIGHT)
    assert record.size == 0
    assert record.data is None


def test_vimeo_without_video_id(settings):
    with pytest.raises(ProviderIdentifierMissing, match="Vimeo video ID not detected"):
        _fetcher(settings, lambda request: httpx.Response(200)).fetch("https://vimeo.com/channels/staffpicks")


def test_generic_image_link(settings, make_image):
    image = make_image("PNG", (12, 8))

    def handler(request):
        headers = {"content-type": "image/png", "content-length": str(len(image))}
        if request.method == "HEAD":
            return httpx.Response(200, headers=headers)
        return httpx.Response(200, headers=headers, content=image)

    record = _fetcher(settings, handler).fetch("https://example.com/media/tiny%20dot.png")

    assert record.type == "image/png"
    assert record.name == "tiny dot.png"
    assert record.title == "tiny dot"
    assert record.charset == "binary"
    assert record.size == len(image)
    assert (record.width, record.height) == (12, 8)
    assert base64.b64decode(record.data.split(",", 1)[1]) == image
    assert record.url == record.data


def test_generic_non_image_link_has_no_preview_url(settings):
    body = b"%PDF-1.4 stub"

    def handler(request):
        if request.method == "HEAD":
            return httpx.Response(405)
        return httpx.Response(200, headers={"content-type": "application/pdf; qs=0.001"}, content=body)

    record = _fetcher(settings, handler).fetch("https://example.com/docs/report.pdf")

    assert record.type == "application/pdf"
    assert record.size == len(body)
    assert record.width is None and record.height is None
    assert record.url == ""


def test_generic_link_unreachable(settings):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    result = _fetcher(settings, handler).fetch("https://unreachable.invalid/file.bin")

    assert isinstance(result, LinkUnavailable)
    assert not result
    assert result.url == "https://unreachable.invalid/file.bin"


def test_generic_link_error_status(settings):
    result = _fetcher(settings, lambda request: httpx.Response(404)).fetch("https://example.com/missing.png")

    assert isinstance(result, LinkUnavailable)


@pytest.mark.parametrize("url", ["http://", "http://[::1/x"])
def test_malformed_link_is_unavailable(settings, url):
    result = _fetcher(settings, lambda request: httpx.Response(200, content=b"x")).fetch(url)

    assert isinstance(result, LinkUnavailable)
    assert result.url == url


def test_host_matcher_rejects_unparseable_url():
    assert not host_contains("youtube.com")("http://[::1/x")
    assert host_contains("youtube.com")("https://www.YouTube.com/watch?v=a")


def test_injected_provider_wins_over_generic_fetch(settings):
    def handle(fetcher, url):
        return AssetRecord(type="embed/example", name="example.jpg", url=url, storage_adapter=fetcher.storage_adapter)

    def unreachable(request):
        raise AssertionError(f"unexpected request to {request.url}")

    providers = [
        Provider("example", host_contains("example.com"), handle),
        Provider("shadowed", host_contains("example.com"), RemoteFetcher.fetch_generic),
    ]
    fetcher = _fetcher(settings, unreachable, providers=providers)

    record = fetcher.fetch("https://media.example.com/v/1")

    assert record.type == "embed/example"
    assert record.url == "https://media.example.com/v/1"
    assert record.storage_adapter == "local"


def test_empty_provider_list_uses_generic_fetch(settings):
    def handler(request):
        return httpx.Response(200, headers={"content-type": "text/plain"}, content=b"hello")

    record = _fetcher(settings, handler, providers=[]).fetch("https://www.youtube.com/notes.txt")

    assert record.type == "text/plain"
    assert record.name == "notes.txt"
