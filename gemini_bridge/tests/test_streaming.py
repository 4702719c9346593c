import httpx

from gemini_bridge.providers.gemini_client import GeminiClient
from gemini_bridge.providers.streaming import decode_sse_lines, iter_sse_chunks


class SettingsStub:
    api_key = "k"
    http_timeout = 1.0
    base_url = "https://example.test/v1beta/"
    cache_mode = "none"
    cache_ttl = 60
    cache_store = None


def test_decode_sse_lines_in_order():
    received = []
    lines = ['data: {"x":1}', ": keep-alive", 'data: {"x":2}']
    count = decode_sse_lines(lines, received.append)
    assert count == 2
    assert received == [{"x": 1}, {"x": 2}]


def test_decode_sse_line_skips_invalid_json():
    received = []
    decode_sse_lines(['data: {"x":', "data: [DONE]", b'data: {"y": 3}'], received.append)
    assert received == [{"y": 3}]


class FakeStreamResponse:
    def __init__(self, status_code, lines=(), payload=None):
        self.status_code = status_code
        self._lines = list(lines)
        self._payload = payload

    def iter_lines(self):
        for line in self._lines:
            yield line

    def read(self):
        return b""

    def json(self):
        if self._payload is None:
            raise ValueError("empty")
        return self._payload


class StreamContext:
    def __init__(self, response):
        self._response = response

    def __enter__(self):
        return self._response

    def __exit__(self, *args):
        return False


def _client_with(response=None, error=None, captured=None):
    class Client:
        def __init__(self, *a, **kw):
            pass

        def request(self, *a, **kw):
            raise AssertionError("request should not be called in stream test")

        def stream(self, method, url, json=None, headers=None):
            if captured is not None:
                captured.update({"method": method, "url": url, "json": json})
            if error is not None:
                raise error
            return StreamContext(response)

        def close(self):
            pass

    return Client


def test_stream_generate_content_invokes_callback(monkeypatch):
    lines = [
        'data: {"candidates": [{"content": {"parts": [{"text": "hel"}]}}]}',
        "",
        'data: {"candidates": [{"content": {"parts": [{"text": "lo"}]}, "finishReason": "STOP"}]}',
    ]
    captured = {}
    monkeypatch.setattr("httpx.Client", _client_with(FakeStreamResponse(200, lines), captured=captured))
    client = GeminiClient(SettingsStub())
    chunks = []
    result = client.stream_generate_content("gemini-2.0-flash", "hi", chunks.append)
    assert result.ok is True
    assert result.status == 200
    assert result.to_dict() == {"ok": True, "status": 200}
    assert [c["candidates"][0]["content"]["parts"][0]["text"] for c in chunks] == ["hel", "lo"]
    assert captured["url"] == "models/gemini-2.0-flash:streamGenerateContent?alt=sse"
    assert captured["json"]["contents"] == [{"role": "user", "parts": [{"text": "hi"}]}]


def test_stream_generate_content_api_error(monkeypatch):
    response = FakeStreamResponse(429, payload={"error": {"message": "Resource exhausted"}})
    monkeypatch.setattr("httpx.Client", _client_with(response))
    chunks = []
    result = GeminiClient(SettingsStub()).stream_generate_content("m", "hi", chunks.append)
    assert result.ok is False
    assert result.status == 429
    assert result.error == "Resource exhausted"
    assert chunks == []


def test_stream_generate_content_transport_failure(monkeypatch):
    monkeypatch.setattr("httpx.Client", _client_with(error=httpx.ReadTimeout("timed out")))
    result = GeminiClient(SettingsStub()).stream_generate_content("m", "hi", lambda c: None)
    assert result.ok is False
    assert result.status == 0
    assert "timed out" in result.error


def test_iter_sse_chunks_skips_undecodable_lines():
    lines = ['data: {"x":1}', "data: not-json", "id: 7", 'data: {"x":2}']
    assert list(iter_sse_chunks(lines)) == [{"x": 1}, {"x": 2}]


def test_stream_callback_exception_ends_call(monkeypatch):
    lines = ['data: {"n": 1}', 'data: {"n": 2}']
    monkeypatch.setattr("httpx.Client", _client_with(FakeStreamResponse(200, lines)))
    seen = []

    def callback(chunk):
        seen.append(chunk)
        raise RuntimeError("consumer failed")

    result = GeminiClient(SettingsStub()).stream_generate_content("m", "hi", callback)
    assert result.ok is False
    assert result.status == 0
    assert result.error == "consumer failed"
    assert seen == [{"n": 1}]
