import base64

import pytest

from gemini_bridge.domain.exceptions import ConfigurationError
from gemini_bridge.providers.gemini_client import GeminiClient, normalize_contents


class SettingsStub:
    api_key = "k"
    http_timeout = 1.0
    base_url = "https://example.test/v1beta/"
    cache_mode = "none"
    cache_ttl = 60
    cache_store = None
    generation_config = {}
    safety_settings = []
    system_instruction = None


class Resp:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = {} if payload is None else payload

    def json(self):
        return self._payload


class FakeClient:
    def __init__(self, *responses):
        self.calls = []
        self._responses = list(responses) or [Resp()]

    def _next(self):
        if len(self._responses) > 1:
            return self._responses.pop(0)
        return self._responses[0]

    def request(self, method, url, json=None, params=None, headers=None):
        self.calls.append({"method": method, "url": url, "json": json, "params": params})
        return self._next()

    def put(self, url, content=None, headers=None):
        self.calls.append({"method": "PUT", "url": url, "content": content, "headers": headers})
        return self._next()

    def close(self):
        pass


def test_normalize_contents_variants():
    turns = [{"role": "user", "parts": [{"text": "a"}]}, {"role": "model", "parts": [{"text": "b"}]}]
    assert normalize_contents("hi") == [{"role": "user", "parts": [{"text": "hi"}]}]
    assert normalize_contents(turns) == turns
    assert normalize_contents(turns[0]) == [turns[0]]
    assert normalize_contents(42) == [{"role": "user", "parts": [{"text": "42"}]}]


def test_generate_content_minimal_body():
    fake = FakeClient()
    GeminiClient(SettingsStub(), http_client=fake).generate_content("gemini-2.0-flash", "hello")
    call = fake.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == "models/gemini-2.0-flash:generateContent"
    assert call["json"] == {"contents": [{"role": "user", "parts": [{"text": "hello"}]}]}


def test_generate_content_merges_defaults_and_instance_fields():
    class Cfg(SettingsStub):
        generation_config = {"temperature": 0.2, "maxOutputTokens": 100}
        safety_settings = [{"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_NONE"}]
        system_instruction = "Be terse."

    fake = FakeClient()
    client = GeminiClient(Cfg(), http_client=fake)
    client.generate_content("models/gemini-2.0-flash", "hello", {"temperature": 0.9, "topK": 5})
    body = fake.calls[0]["json"]
    assert fake.calls[0]["url"] == "models/gemini-2.0-flash:generateContent"
    assert body["generationConfig"] == {"temperature": 0.9, "maxOutputTokens": 100, "topK": 5}
    assert body["safetySettings"] == Cfg.safety_settings
    assert body["systemInstruction"] == {"parts": [{"text": "Be terse."}]}
    # 覆盖参数不会写回实例默认值
    assert Cfg.generation_config == {"temperature": 0.2, "maxOutputTokens": 100}


def test_count_tokens():
    fake = FakeClient(Resp(200, {"totalTokens": 7}))
    client = GeminiClient(SettingsStub(), http_client=fake)
    assert client.count_tokens("m", "how many") == 7
    assert fake.calls[0]["url"] == "models/m:countTokens"
    assert fake.calls[0]["json"] == {"contents": [{"role": "user", "parts": [{"text": "how many"}]}]}


def test_count_tokens_failure_returns_none():
    client = GeminiClient(SettingsStub(), http_client=FakeClient(Resp(500, {})))
    assert client.count_tokens("m", "x") is None
    client = GeminiClient(SettingsStub(), http_client=FakeClient(Resp(200, {})))
    assert client.count_tokens("m", "x") is None


def test_embed_and_batch_embed_do_not_share_state():
    fake = FakeClient()
    client = GeminiClient(SettingsStub(), http_client=fake)
    client.embed_content("text-embedding-004", "alpha", task_type="RETRIEVAL_DOCUMENT")
    client.embed_content("text-embedding-004", "beta")
    requests = [{"model": "models/text-embedding-004", "content": {"parts": [{"text": "x"}]}}]
    client.batch_embed_contents("text-embedding-004", requests)
    client.batch_embed_contents("text-embedding-004", [])

    first, second, batch, empty = (c["json"] for c in fake.calls)
    assert first == {"content": {"parts": [{"text": "alpha"}]}, "taskType": "RETRIEVAL_DOCUMENT"}
    assert second == {"content": {"parts": [{"text": "beta"}]}}
    assert batch == {"requests": requests}
    assert batch["requests"] is not requests
    assert empty == {"requests": []}
    assert fake.calls[2]["url"] == "models/text-embedding-004:batchEmbedContents"


def test_upload_file_puts_base64_payload(tmp_path):
    source = tmp_path / "notes.txt"
    source.write_bytes(b"hello file")
    fake = FakeClient(
        Resp(200, {"file": {"name": "files/abc", "uploadUri": "https://upload.example.test/u/1"}}),
        Resp(200, {"file": {"name": "files/abc", "state": "ACTIVE"}}),
    )
    env = GeminiClient(SettingsStub(), http_client=fake).upload_file(source, "text/plain")
    meta, put = fake.calls
    assert meta["url"] == "files"
    assert meta["json"] == {"file": {"mimeType": "text/plain", "displayName": "notes.txt"}}
    assert put["method"] == "PUT"
    assert put["url"] == "https://upload.example.test/u/1"
    assert base64.b64decode(put["content"]) == b"hello file"
    assert put["headers"]["Content-Type"] == "text/plain"
    assert env.ok is True
    assert env.data["file"]["state"] == "ACTIVE"


def test_upload_file_without_upload_url():
    fake = FakeClient(Resp(200, {"file": {"name": "files/abc"}}))
    env = GeminiClient(SettingsStub(), http_client=fake).upload_file(b"raw", "application/pdf", "doc.pdf")
    assert env.ok is False
    assert env.error == "Upload URL not returned"
    assert len(fake.calls) == 1


def test_upload_file_missing_source(tmp_path):
    fake = FakeClient()
    env = GeminiClient(SettingsStub(), http_client=fake).upload_file(tmp_path / "missing.bin", "image/png")
    assert env.ok is False
    assert env.status == 0
    assert fake.calls == []


def test_file_and_model_endpoints():
    fake = FakeClient()
    client = GeminiClient(SettingsStub(), http_client=fake)
    client.get_file("abc")
    client.delete_file("files/abc")
    client.list_files(page_size=10)
    client.list_models(page_token="next")
    client.get_model("gemini-2.0-flash")
    assert [(c["method"], c["url"]) for c in fake.calls] == [
        ("GET", "files/abc"),
        ("DELETE", "files/abc"),
        ("GET", "files"),
        ("GET", "models"),
        ("GET", "models/gemini-2.0-flash"),
    ]
    assert fake.calls[2]["params"] == {"pageSize": 10}
    assert fake.calls[3]["params"] == {"pageToken": "next"}
    assert all(c["json"] is None for c in fake.calls)


def test_missing_api_key_is_fatal():
    class Cfg(SettingsStub):
        api_key = "  "

    with pytest.raises(ConfigurationError) as exc:
        GeminiClient(Cfg(), http_client=FakeClient())
    assert exc.value.code == "MISSING_API_KEY"


def test_invalid_cache_mode_is_fatal():
    class Cfg(SettingsStub):
        cache_mode = "redis"

    with pytest.raises(ConfigurationError) as exc:
        GeminiClient(Cfg(), http_client=FakeClient())
    assert exc.value.code == "INVALID_CACHE_MODE"


def test_non_positive_cache_ttl_is_fatal():
    for ttl in (0, -5):
        class Cfg(SettingsStub):
            cache_ttl = ttl

        with pytest.raises(ConfigurationError) as exc:
            GeminiClient(Cfg(), http_client=FakeClient())
        assert exc.value.code == "INVALID_CACHE_TTL"
