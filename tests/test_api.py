import httpx
import pytest
from fastapi.testclient import TestClient

from backend.app.main import app
from backend.app.models.schemas import ServiceName
from backend.app.services.link_resolver import LinkResolver
from backend.app.services.streamer import StreamProxy, attachment_name
from backend.app.services.utils import hash_link


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def use_resolvers(client, store):
    def _install(*resolvers):
        app.state.link_resolver = LinkResolver(list(resolvers), store)
    return _install


@pytest.mark.unit
class Describe_resolve_endpoint:
    def test_given_supported_link_should_return_result_with_hash(self, client, use_resolvers, stub_resolver, make_result):
        use_resolvers(stub_resolver(ServiceName.TIKTOK, "tiktok.com", result=make_result(ServiceName.TIKTOK)))
        resp = client.post("/api/v1/resolve", json={"link": "olha https://www.tiktok.com/@u/video/1 !"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["service"] == "tiktok"
        assert body["linkHash"] == hash_link("https://www.tiktok.com/@u/video/1")
        assert body["video"]["url"] == "https://cdn.example.com/v.mp4"
        assert body["video"]["fallbackUrls"] == ["https://cdn.example.com/v-low.mp4"]
        assert "description" not in body

    def test_given_unsupported_link_should_answer_400(self, client, use_resolvers, stub_resolver, make_result):
        use_resolvers(stub_resolver(ServiceName.TIKTOK, "tiktok.com", result=make_result()))
        resp = client.post("/api/v1/resolve", json={"link": "https://vimeo.com/1"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Unsupported link"}

    def test_given_availability_error_should_use_its_status_and_hide_detail(
        self, client, use_resolvers, stub_resolver, availability_error
    ):
        use_resolvers(stub_resolver(ServiceName.TIKTOK, "tiktok.com", error=availability_error))
        resp = client.post("/api/v1/resolve", json={"link": "https://www.tiktok.com/@u/video/1"})

        assert resp.status_code == 503
        assert resp.json() == {"error": "TikTok is unavailable"}
        assert "secret-token" not in resp.text

    def test_given_custom_availability_status_should_use_it(self, client, use_resolvers, stub_resolver, availability_error):
        availability_error.status_code = 502
        use_resolvers(stub_resolver(ServiceName.TIKTOK, "tiktok.com", error=availability_error))
        resp = client.post("/api/v1/resolve", json={"link": "https://www.tiktok.com/@u/video/1"})
        assert resp.status_code == 502

    def test_given_unexpected_error_should_answer_500_without_trace(self, client, use_resolvers, stub_resolver):
        use_resolvers(stub_resolver(ServiceName.TIKTOK, "tiktok.com", error=RuntimeError("db password leaked")))
        resp = client.post("/api/v1/resolve", json={"link": "https://www.tiktok.com/@u/video/1"})

        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to resolve link"}
        assert "password" not in resp.text

    @pytest.mark.parametrize("payload", [{}, {"link": 123}, {"url": "https://youtu.be/x"}])
    def test_given_malformed_body_should_answer_400_error(self, client, payload):
        resp = client.post("/api/v1/resolve", json=payload)
        assert resp.status_code == 400
        assert set(resp.json()) == {"error"}
        assert "link" in resp.json()["error"]

    def test_given_non_json_body_should_answer_400_error(self, client):
        resp = client.post("/api/v1/resolve", content=b"not json", headers={"Content-Type": "application/json"})
        assert resp.status_code == 400
        assert "error" in resp.json()


@pytest.mark.unit
class Describe_link_endpoints:
    def test_should_return_stored_link(self, client, use_resolvers, stub_resolver, make_result):
        use_resolvers(stub_resolver(ServiceName.TIKTOK, "tiktok.com",
                                    result=make_result(ServiceName.TIKTOK, description="Fone bluetooth sem fio")))
        link_hash = client.post("/api/v1/resolve", json={"link": "https://www.tiktok.com/@u/video/1"}).json()["linkHash"]

        resp = client.get(f"/api/v1/links/{link_hash}")
        assert resp.status_code == 200
        assert resp.json()["caption"] == "Fone bluetooth sem fio"
        assert "resolvedAt" in resp.json()

        keywords = client.get(f"/api/v1/links/{link_hash}/keywords").json()
        assert keywords["keywords"] == ["fone", "bluetooth", "fio"]
        assert keywords["captionSnippet"] == "Fone bluetooth sem fio"
        assert keywords["linkHash"] == link_hash

    def test_given_unknown_hash_should_answer_404(self, client, use_resolvers):
        use_resolvers()
        assert client.get("/api/v1/links/deadbeef").status_code == 404
        resp = client.get("/api/v1/links/deadbeef/keywords")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Link not found or expired"}

    def test_given_unsupported_service_should_refuse_keywords(self, client, use_resolvers, stub_resolver, make_result):
        use_resolvers(stub_resolver(ServiceName.YOUTUBE, "youtu.be", result=make_result(ServiceName.YOUTUBE)))
        link_hash = client.post("/api/v1/resolve", json={"link": "https://youtu.be/x"}).json()["linkHash"]
        assert client.get(f"/api/v1/links/{link_hash}/keywords").status_code == 400


@pytest.mark.unit
class Describe_download_endpoint:
    def test_given_non_http_url_should_answer_400(self, client):
        resp = client.get("/api/v1/download", params={"url": "file:///etc/passwd"})
        assert resp.status_code == 400

    def test_given_missing_url_should_answer_400_error(self, client):
        resp = client.get("/api/v1/download")
        assert resp.status_code == 400
        assert "url" in resp.json()["error"]

    def test_should_stream_upstream_bytes_as_attachment(self, client):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["range"] = request.headers.get("range")
            return httpx.Response(206, content=b"0123456789",
                                  headers={"Content-Type": "video/mp4", "Content-Range": "bytes 0-9/100"})

        app.state.stream_proxy = StreamProxy(transport=httpx.MockTransport(handler))
        resp = client.get(
            "/api/v1/download",
            params={"url": "https://cdn.example.com/v.mp4", "filename": "Meu Vídeo.mp4"},
            headers={"Range": "bytes=0-9"},
        )

        assert resp.status_code == 206
        assert resp.content == b"0123456789"
        assert seen["range"] == "bytes=0-9"
        assert resp.headers["content-disposition"] == 'attachment; filename="meu-video.mp4"'
        assert resp.headers["content-range"] == "bytes 0-9/100"

    def test_given_unreachable_upstream_should_answer_502(self, client):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        app.state.stream_proxy = StreamProxy(transport=httpx.MockTransport(handler))
        resp = client.get("/api/v1/download", params={"url": "https://cdn.example.com/v.mp4"})
        assert resp.status_code == 502

    def test_given_failing_primary_should_serve_fallback(self, client):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/primary.mp4":
                return httpx.Response(403, content=b"<html>Forbidden</html>", headers={"Content-Type": "text/html"})
            return httpx.Response(200, content=b"video-bytes", headers={"Content-Type": "video/mp4"})

        app.state.stream_proxy = StreamProxy(transport=httpx.MockTransport(handler))
        resp = client.get("/api/v1/download", params={
            "url": "https://cdn.example.com/primary.mp4",
            "fallback": "https://cdn.example.com/backup.mp4",
        })

        assert resp.status_code == 200
        assert resp.content == b"video-bytes"
        assert resp.headers["content-disposition"] == 'attachment; filename="backup.mp4"'

    def test_given_unreachable_primary_should_serve_fallback(self, client):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "down.example.com":
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, content=b"ok")

        app.state.stream_proxy = StreamProxy(transport=httpx.MockTransport(handler))
        resp = client.get("/api/v1/download", params={
            "url": "https://down.example.com/v.mp4", "fallback": "https://cdn.example.com/v.mp4"})
        assert resp.status_code == 200
        assert resp.content == b"ok"

    def test_given_error_status_everywhere_should_answer_502_json(self, client):
        """Upstream error pages are never streamed as an attachment."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(str(request.url))
            return httpx.Response(404, content=b"<html>Not Found</html>")

        app.state.stream_proxy = StreamProxy(transport=httpx.MockTransport(handler))
        resp = client.get("/api/v1/download", params={
            "url": "https://cdn.example.com/a.mp4", "fallback": "https://cdn.example.com/b.mp4"})

        assert resp.status_code == 502
        assert "error" in resp.json()
        assert "content-disposition" not in resp.headers
        assert calls == ["https://cdn.example.com/a.mp4", "https://cdn.example.com/b.mp4"]

    def test_given_error_status_without_fallback_should_answer_502(self, client):
        app.state.stream_proxy = StreamProxy(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
        resp = client.get("/api/v1/download", params={"url": "https://cdn.example.com/a.mp4"})
        assert resp.status_code == 502

    def test_given_invalid_fallback_should_ignore_it(self, client):
        app.state.stream_proxy = StreamProxy(transport=httpx.MockTransport(lambda r: httpx.Response(200, content=b"ok")))
        resp = client.get("/api/v1/download", params={"url": "https://cdn.example.com/a.mp4", "fallback": "nope"})
        assert resp.status_code == 200
        assert resp.headers["content-disposition"] == 'attachment; filename="a.mp4"'


@pytest.mark.unit
class Describe_attachment_name:
    def test_given_no_filename_should_use_url_segment(self):
        assert attachment_name("https://cdn.example.com/path/Clip_01.webm") == "clip-01.webm"

    def test_given_name_without_extension_should_default_to_mp4(self):
        assert attachment_name("https://cdn.example.com/", "my clip") == "my-clip.mp4"


@pytest.mark.unit
def test_health(client):
    assert client.get("/api/health").json()["status"] == "online"
