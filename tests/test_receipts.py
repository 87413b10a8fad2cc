import io
import json
import urllib.error
from datetime import date

import pytest

from finbud import receipts
from finbud.errors import ConfigurationError, InvalidResponse, UpstreamUnavailable, ValidationError
from finbud.receipts import (
    GeminiProvider,
    OpenAIProvider,
    ReceiptClassifier,
    extract_json,
    get_provider_from_config,
    parse_total,
)


class DummyProvider:
    def __init__(self, reply):
        self.reply = reply
        self.calls = []

    def generate(self, prompt, image_base64):
        self.calls.append((prompt, image_base64))
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


class FakeResponse(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def test_extract_json_strict():
    assert extract_json('  {"total": 12.5, "vendor": "Cafe"}\n') == {"total": 12.5, "vendor": "Cafe"}


def test_extract_json_tolerates_prose_and_fences():
    text = 'Sure! Here is the data:\n```json\n{"total": "8.40", "note": "a {brace} inside"}\n```\nThanks.'
    assert extract_json(text) == {"total": "8.40", "note": "a {brace} inside"}


def test_extract_json_skips_unparseable_braces():
    assert extract_json('{not json} then {"total": 3}') == {"total": 3}


def test_extract_json_finds_object_inside_array():
    assert extract_json('[{"total": 5, "vendor": "Kiosk"}]') == {"total": 5, "vendor": "Kiosk"}
    assert extract_json('"see below" {"total": 2}') == {"total": 2}


@pytest.mark.parametrize("reply", ["", "I cannot read this receipt.", "[1, 2]", "{broken"])
def test_extract_json_invalid(reply):
    with pytest.raises(InvalidResponse):
        extract_json(reply)


@pytest.mark.parametrize(
    "value, expected",
    [
        (12.5, 12.5),
        (7, 7.0),
        ("23.99", 23.99),
        ("$1,234.50", 1234.5),
        ("12.00 USD", 12.0),
        (".99", 0.99),
        ("$.50", 0.5),
        ("Total: 12.", 12.0),
        ("1e3", 1000.0),
        ("1e999", None),
        ("n/a", None),
        (None, None),
        (-4, None),
        ("-4.00", None),
        (True, None),
    ],
)
def test_parse_total(value, expected):
    assert parse_total(value) == expected


def test_process_creates_receipt_expense(repo):
    provider = DummyProvider('{"total": "42.10", "category": "Food", "description": "Groceries", "vendor": "Fresh Mart"}')
    classifier = ReceiptClassifier(provider=provider, repository=repo)

    receipt_data, tx = classifier.process("aW1hZ2U=")

    assert receipt_data["vendor"] == "Fresh Mart"
    assert tx.type == "expense"
    assert tx.amount == 42.1
    assert tx.category == "food"
    assert tx.description == "Groceries"
    assert tx.vendor == "Fresh Mart"
    assert tx.source == "receipt"
    assert tx.date == date.today().isoformat()
    assert repo.list() == [tx]
    assert provider.calls[0][1] == "aW1hZ2U="
    assert "Only return valid JSON" in provider.calls[0][0]


def test_process_fills_defaults(repo):
    classifier = ReceiptClassifier(provider=DummyProvider('{"vendor": "Corner Shop", "category": "snacks"}'), repository=repo)
    _, tx = classifier.process("aW1hZ2U=")
    assert tx.amount == 0.0
    assert tx.category == "other"
    assert tx.description == "Corner Shop"
    assert tx.to_dict()["vendor"] == "Corner Shop"

    _, bare = ReceiptClassifier(provider=DummyProvider("{}"), repository=repo).process("aW1hZ2U=")
    assert bare.description == "Receipt expense"
    assert bare.vendor == ""
    assert bare.to_dict()["vendor"] == ""


@pytest.mark.parametrize("category", [7, ["food"], {"name": "food"}, None, True])
def test_non_string_category_becomes_other(repo, category):
    reply = json.dumps({"total": 5, "category": category, "vendor": "Kiosk"})
    _, tx = ReceiptClassifier(provider=DummyProvider(reply), repository=repo).process("aW1hZ2U=")
    assert tx.category == "other"
    assert tx.amount == 5.0
    assert repo.list() == [tx]


def test_strict_total_rejects_unreadable_amount(repo):
    classifier = ReceiptClassifier(provider=DummyProvider('{"total": "??"}'), repository=repo, strict_total=True)
    with pytest.raises(InvalidResponse):
        classifier.process("aW1hZ2U=")
    assert repo.list() == []


def test_non_json_reply_creates_nothing(repo):
    classifier = ReceiptClassifier(provider=DummyProvider("This looks like a coffee receipt."), repository=repo)
    with pytest.raises(InvalidResponse):
        classifier.process("aW1hZ2U=")
    assert repo.list() == []


def test_transport_failure_creates_nothing(repo):
    classifier = ReceiptClassifier(provider=DummyProvider(UpstreamUnavailable("down")), repository=repo)
    with pytest.raises(UpstreamUnavailable):
        classifier.process("aW1hZ2U=")
    assert repo.list() == []


def test_missing_image(repo):
    with pytest.raises(ValidationError):
        ReceiptClassifier(provider=DummyProvider("{}"), repository=repo).process("")


def test_gemini_provider_request(monkeypatch):
    captured = {}

    def fake_urlopen(req, timeout):
        captured["url"] = req.full_url
        captured["timeout"] = timeout
        captured["body"] = json.loads(req.data)
        captured["key"] = req.get_header("X-goog-api-key")
        reply = {"candidates": [{"content": {"parts": [{"text": '{"total": 5}'}]}}]}
        return FakeResponse(json.dumps(reply).encode())

    monkeypatch.setattr(receipts.urllib.request, "urlopen", fake_urlopen)
    text = GeminiProvider(api_key="secret", timeout=7).generate("prompt", "aW1n")

    assert text == '{"total": 5}'
    assert captured["url"].endswith("/models/gemini-1.5-flash:generateContent")
    assert captured["timeout"] == 7
    assert captured["key"] == "secret"
    parts = captured["body"]["contents"][0]["parts"]
    assert parts[1]["inline_data"] == {"mime_type": "image/jpeg", "data": "aW1n"}
    assert captured["body"]["generationConfig"]["maxOutputTokens"] == 256


def test_gemini_provider_empty_candidates(monkeypatch):
    monkeypatch.setattr(
        receipts.urllib.request,
        "urlopen",
        lambda req, timeout: FakeResponse(b'{"candidates": []}'),
    )
    with pytest.raises(InvalidResponse, match="No response"):
        GeminiProvider(api_key="k").generate("p", "i")


@pytest.mark.parametrize(
    "error",
    [
        urllib.error.HTTPError("https://example.test", 503, "Unavailable", {}, None),
        urllib.error.URLError("connection refused"),
        TimeoutError("timed out"),
    ],
)
def test_provider_transport_errors(monkeypatch, error):
    def fake_urlopen(req, timeout):
        raise error

    monkeypatch.setattr(receipts.urllib.request, "urlopen", fake_urlopen)
    with pytest.raises(UpstreamUnavailable):
        OpenAIProvider(api_key="k").generate("p", "i")


def test_openai_provider_sends_data_uri(monkeypatch):
    captured = {}

    def fake_urlopen(req, timeout):
        captured["body"] = json.loads(req.data)
        captured["auth"] = req.get_header("Authorization")
        return FakeResponse(b'{"choices": [{"message": {"content": "{}"}}]}')

    monkeypatch.setattr(receipts.urllib.request, "urlopen", fake_urlopen)
    assert OpenAIProvider(api_key="k").generate("p", "aW1n") == "{}"
    content = captured["body"]["messages"][0]["content"]
    assert content[1]["image_url"]["url"] == "data:image/jpeg;base64,aW1n"
    assert captured["auth"] == "Bearer k"


def test_get_provider_from_config():
    cfg = {"classifier": {"provider": "gemini", "model": None, "timeout": 3}}
    provider = get_provider_from_config(cfg, environ={"GEMINI_API_KEY": "abc"})
    assert isinstance(provider, GeminiProvider)
    assert provider.api_key == "abc"
    assert provider.timeout == 3.0

    openai = get_provider_from_config({"classifier": {"provider": "openai", "model": "gpt-x"}}, environ={"OPENAI_API_KEY": "o"})
    assert isinstance(openai, OpenAIProvider)
    assert openai.model == "gpt-x"


def test_get_provider_requires_key():
    with pytest.raises(ConfigurationError, match="Gemini API key not configured"):
        get_provider_from_config({"classifier": {"provider": "gemini"}}, environ={})
    with pytest.raises(ConfigurationError):
        get_provider_from_config({"classifier": {"provider": "openai"}}, environ={})
    with pytest.raises(ConfigurationError):
        get_provider_from_config({"classifier": {"provider": "carrier-pigeon"}}, environ={})
