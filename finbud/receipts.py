# finbud/receipts.py
from __future__ import annotations

import json
import logging
import math
import os
import re
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Dict, Iterator, List, Protocol, Tuple

from huggingface_hub import InferenceClient

from finbud.core.models import (
    EXPENSE,
    EXPENSE_CATEGORIES,
    RECEIPT,
    Transaction,
    normalize_category,
    today_iso,
    utc_now_iso,
)
from finbud.errors import (
    ConfigurationError,
    InvalidResponse,
    UpstreamUnavailable,
    ValidationError,
)
from finbud.repository import TransactionRepository, new_transaction_id

logger = logging.getLogger(__name__)

_GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
_OPENAI_URL = "https://api.openai.com/v1/chat/completions"

DEFAULT_MODELS = {
    "gemini": "gemini-1.5-flash",
    "openai": "gpt-4o-mini",
    "huggingface": "Qwen/Qwen2.5-VL-7B-Instruct",
}

RECEIPT_PROMPT = (
    "Analyze this receipt image and extract the following information in JSON format:\n"
    "{\n"
    '  "total": "total amount as number",\n'
    '  "category": "expense category (' + ", ".join(EXPENSE_CATEGORIES) + ')",\n'
    '  "description": "brief description of the purchase",\n'
    '  "vendor": "store/vendor name if visible"\n'
    "}\n"
    "Only return valid JSON, no additional text."
)


class ReceiptProvider(Protocol):
    """A vision model that answers a prompt about one image."""

    def generate(self, prompt: str, image_base64: str) -> str:
        """Return the raw model reply text."""


def _post_json(url: str, payload: dict, headers: Dict[str, str], timeout: float) -> dict:
    """POST JSON and return the parsed JSON reply.

    Any transport problem, including a non-2xx status, raises
    UpstreamUnavailable.
    """
    data = json.dumps(payload).encode()
    req = urllib.request.Request(url, data=data, method="POST")
    req.add_header("Content-Type", "application/json")
    for name, value in headers.items():
        req.add_header(name, value)
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            raw = resp.read().decode()
    except urllib.error.HTTPError as exc:
        raise UpstreamUnavailable(f"Classifier API error: {exc.code}") from exc
    except (urllib.error.URLError, TimeoutError, OSError) as exc:
        raise UpstreamUnavailable(f"Classifier unreachable: {exc}") from exc
    logger.debug("Classifier ◀ %s", raw)
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidResponse("Classifier returned a non-JSON envelope") from exc


@dataclass
class GeminiProvider:
    api_key: str
    model: str = DEFAULT_MODELS["gemini"]
    timeout: float = 10

    def generate(self, prompt: str, image_base64: str) -> str:
        payload = {
            "contents": [
                {
                    "parts": [
                        {"text": prompt},
                        {"inline_data": {"mime_type": "image/jpeg", "data": image_base64}},
                    ]
                }
            ],
            "generationConfig": {
                "temperature": 0.1,
                "topK": 1,
                "topP": 1,
                "maxOutputTokens": 256,
            },
        }
        logger.debug("Gemini ▶ POST model=%s (%d base64 chars)", self.model, len(image_base64))
        resp_data = _post_json(
            _GEMINI_URL.format(model=self.model),
            payload,
            {"x-goog-api-key": self.api_key},
            self.timeout,
        )
        try:
            text = resp_data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            text = None
        if not text:
            raise InvalidResponse("No response from Gemini API")
        return text


@dataclass
class OpenAIProvider:
    api_key: str
    model: str = DEFAULT_MODELS["openai"]
    timeout: float = 10

    def generate(self, prompt: str, image_base64: str) -> str:
        payload = {
            "model": self.model,
            "temperature": 0.1,
            "max_tokens": 256,
            "messages": _vision_messages(prompt, image_base64),
        }
        logger.debug("OpenAI ▶ POST model=%s (%d base64 chars)", self.model, len(image_base64))
        resp_data = _post_json(
            _OPENAI_URL,
            payload,
            {"Authorization": f"Bearer {self.api_key}"},
            self.timeout,
        )
        try:
            text = resp_data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            text = None
        if not text:
            raise InvalidResponse("No response from OpenAI API")
        return text


@dataclass
class HuggingFaceProvider:
    model: str = DEFAULT_MODELS["huggingface"]
    token: str | None = None
    timeout: float = 10

    def __post_init__(self) -> None:
        self._client = InferenceClient(api_key=self.token, timeout=self.timeout)

    def generate(self, prompt: str, image_base64: str) -> str:
        try:
            out = self._client.chat_completion(
                messages=_vision_messages(prompt, image_base64),
                model=self.model,
                max_tokens=256,
                temperature=0.1,
            )
        except Exception as exc:
            raise UpstreamUnavailable(f"Hugging Face inference failed: {exc}") from exc
        text = out.choices[0].message.content if out.choices else None
        if not text:
            raise InvalidResponse("No response from Hugging Face inference")
        return text


def _vision_messages(prompt: str, image_base64: str) -> List[dict]:
    return [
        {
            "role": "user",
            "content": [
                {"type": "text", "text": prompt},
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:image/jpeg;base64,{image_base64}"},
                },
            ],
        }
    ]


def get_provider_from_config(config: dict, environ: Dict[str, str] | None = None) -> ReceiptProvider:
    env = os.environ if environ is None else environ
    cfg = dict(config.get("classifier") or {})
    provider = str(cfg.get("provider") or "gemini").lower()
    model = cfg.get("model") or DEFAULT_MODELS.get(provider)
    timeout = float(cfg.get("timeout") or 10)

    if provider == "openai":
        api_key = env.get("OPENAI_API_KEY")
        if not api_key:
            raise ConfigurationError("OpenAI API key not configured")
        return OpenAIProvider(api_key=api_key, model=model, timeout=timeout)

    if provider == "huggingface":
        return HuggingFaceProvider(model=model, token=env.get("HF_API_TOKEN"), timeout=timeout)

    if provider != "gemini":
        raise ConfigurationError(f"Unknown classifier provider '{provider}'")
    api_key = env.get("GEMINI_API_KEY")
    if not api_key:
        raise ConfigurationError("Gemini API key not configured")
    return GeminiProvider(api_key=api_key, model=model, timeout=timeout)


# -----------------------------------------------------------------------------
# Reply parsing
# -----------------------------------------------------------------------------

def _json_objects(text: str) -> Iterator[str]:
    """Yield balanced ``{...}`` blocks of ``text`` in order."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        end = -1
        for idx in range(start, len(text)):
            ch = text[idx]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    end = idx
                    break
        if end == -1:
            return
        yield text[start:end + 1]
        start = text.find("{", end + 1)


def extract_json(text: str) -> dict:
    """Parse the classifier reply into a dict.

    Strict parsing of the trimmed reply is tried first; unless that yields
    an object, each balanced JSON object inside the text is tried in turn.
    """
    stripped = (text or "").strip()
    try:
        data = json.loads(stripped)
    except json.JSONDecodeError:
        data = None
    if not isinstance(data, dict):
        data = None
        for block in _json_objects(stripped):
            try:
                data = json.loads(block)
            except json.JSONDecodeError:
                continue
            if isinstance(data, dict):
                break
    if not isinstance(data, dict):
        logger.warning("Failed to parse classifier reply as JSON: %s", stripped[:200])
        raise InvalidResponse("Invalid response format from classifier")
    return data


_NUMBER_RE = re.compile(r"-?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?")


def parse_total(value: object) -> float | None:
    """Return the receipt total as a non-negative float, or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        amount = float(value)
    else:
        match = _NUMBER_RE.search(str(value or "").replace(",", ""))
        if not match:
            return None
        amount = float(match.group(0))
    if not math.isfinite(amount) or amount < 0:
        return None
    return amount


# -----------------------------------------------------------------------------
# Adapter
# -----------------------------------------------------------------------------

@dataclass
class ReceiptClassifier:
    """Turn a receipt image into a stored expense transaction."""

    provider: ReceiptProvider
    repository: TransactionRepository
    strict_total: bool = False
    prompt: str = RECEIPT_PROMPT

    def classify(self, image_base64: str) -> dict:
        if not image_base64:
            raise ValidationError("No image provided")
        reply = self.provider.generate(self.prompt, image_base64)
        return extract_json(reply)

    def to_transaction(self, receipt_data: dict) -> Transaction:
        amount = parse_total(receipt_data.get("total"))
        if amount is None:
            if self.strict_total:
                raise InvalidResponse(f"Unreadable receipt total: {receipt_data.get('total')!r}")
            logger.warning(
                "Receipt total %r is not a number; recording 0",
                receipt_data.get("total"),
            )
            amount = 0.0

        vendor = str(receipt_data.get("vendor") or "").strip()
        description = str(receipt_data.get("description") or "").strip()
        return Transaction(
            id=new_transaction_id(),
            type=EXPENSE,
            amount=amount,
            category=normalize_category(EXPENSE, receipt_data.get("category")),
            description=description or vendor or "Receipt expense",
            date=today_iso(),
            createdAt=utc_now_iso(),
            source=RECEIPT,
            vendor=vendor,
        )

    def process(self, image_base64: str) -> Tuple[dict, Transaction]:
        receipt_data = self.classify(image_base64)
        transaction = self.to_transaction(receipt_data)
        return receipt_data, self.repository.add(transaction)
