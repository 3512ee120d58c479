from community_data.city_description import (
    GeminiCityDescriptionClient,
    NoopCityDescriptionClient,
    parse_description,
)


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code
        self.text = str(payload)

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def post(self, url, json=None, timeout=None):
        self.calls.append((url, json))
        return self.response


def gemini_payload(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def test_from_env_without_key_is_noop(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    client = GeminiCityDescriptionClient.from_env()
    assert isinstance(client, NoopCityDescriptionClient)
    result = client.describe("Austin", "TX")
    assert result.description is None
    assert result.status == "skipped_no_api_key"


def test_from_env_reads_model(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "k")
    monkeypatch.setenv("GEMINI_MODEL", "gemini-test")
    client = GeminiCityDescriptionClient.from_env()
    assert isinstance(client, GeminiCityDescriptionClient)
    assert client.model == "gemini-test"


def test_parse_description_handles_fences_and_prose():
    assert parse_description('```json\n{"description": "Hilly and green."}\n```') == ("Hilly and green.", None)
    assert parse_description("Just prose.") == ("Just prose.", None)
    assert parse_description('{"summary": "x"}') == (None, "missing_description")
    assert parse_description("   ") == (None, "empty_response")


def test_describe_returns_model_text():
    session = FakeSession(FakeResponse(gemini_payload('{"description": "Live music capital."}')))
    client = GeminiCityDescriptionClient(api_key="secret", model="m", session=session)
    result = client.describe("Austin", "TX")
    assert result.status == "ok"
    assert result.description == "Live music capital."
    assert "Austin, TX" in session.calls[0][1]["contents"][0]["parts"][0]["text"]


def test_describe_redacts_key_in_errors():
    session = FakeSession(FakeResponse({"error": "bad key secret"}, status_code=403))
    client = GeminiCityDescriptionClient(api_key="secret", model="m", session=session)
    result = client.describe("Austin", "TX")
    assert result.status == "error"
    assert result.description is None
    assert "secret" not in (result.error or "")
