import base64
from typing import Any, Dict, List

import httpx
import pytest
from fastapi.testclient import TestClient

from draft_extraction import DraftExtractionService
from draft_settings import DraftGuardrails
from main import app
from providers.openai_receipt_vision import OpenAIReceiptDraftProvider
from shared.provider_settings import OpenAIConfig, ProviderSettings

client = TestClient(app)

IMAGE_DATA_URL = "data:image/jpeg;base64," + base64.b64encode(b"\xff\xd8\xffreceipt").decode("ascii")
CATEGORIES = [{"id": "cat-groceries", "name": "Groceries"}, {"id": "cat-fuel", "name": "Fuel"}]
ACCOUNTS = [{"id": "acc-card", "name": "Visa", "type": "card"}]


def _payload(**overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"imageDataUrl": IMAGE_DATA_URL, "categories": CATEGORIES, "accounts": ACCOUNTS}
    payload.update(overrides)
    return payload


def _openai_settings() -> ProviderSettings:
    return ProviderSettings(
        provider_name="openai",
        timeout_seconds=5.0,
        temperature=0.1,
        max_output_tokens=800,
        openai=OpenAIConfig(api_key="test-api-key", model="gpt-4.1-mini", api_base="https://api.openai.test/v1"),
    )


class _FactorySpy:
    def __init__(self, handler=None):
        self.calls: List[DraftGuardrails] = []
        self._handler = handler

    def __call__(self, guardrails: DraftGuardrails) -> DraftExtractionService:
        self.calls.append(guardrails)
        http_client = httpx.Client(transport=httpx.MockTransport(self._handler))
        provider = OpenAIReceiptDraftProvider(settings=_openai_settings(), http_client=http_client)
        return DraftExtractionService(provider, guardrails)


@pytest.fixture
def factory_override():
    original = app.state.draft_service_factory

    def install(spy: _FactorySpy) -> _FactorySpy:
        app.state.draft_service_factory = spy
        return spy

    try:
        yield install
    finally:
        app.state.draft_service_factory = original


def test_health_check():
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "expense-service"}


def test_non_image_url_is_rejected_before_any_outbound_call(factory_override):
    spy = factory_override(_FactorySpy())

    response = client.post("/expenses/parse", json=_payload(imageDataUrl="https://example.com/r.png"))

    assert response.status_code == 400
    assert response.json() == {"error": "imageDataUrl must be a data:image/* URL"}
    assert spy.calls == []


def test_missing_image_is_rejected(factory_override):
    spy = factory_override(_FactorySpy())

    response = client.post("/expenses/parse", json={"categories": CATEGORIES})

    assert response.status_code == 400
    assert response.json() == {"error": "imageDataUrl is required"}
    assert spy.calls == []


def test_unparseable_body_returns_400():
    response = client.post(
        "/expenses/parse",
        content=b"{not json",
        headers={"content-type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid JSON body")


def test_missing_api_key_returns_500(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("RECEIPT_DRAFT_PROVIDER", raising=False)

    response = client.post("/expenses/parse", json=_payload())

    assert response.status_code == 500
    body = response.json()
    assert "draft" not in body
    assert "OPENAI_API_KEY" in body["error"]


def test_unsupported_provider_returns_500(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("RECEIPT_DRAFT_PROVIDER", "gemini")

    response = client.post("/expenses/parse", json=_payload())

    assert response.status_code == 500
    assert "gemini" in response.json()["error"]


def test_upstream_failure_returns_500_without_draft(factory_override):
    calls: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500, json={"error": {"message": "server exploded"}})

    factory_override(_FactorySpy(handler))

    response = client.post("/expenses/parse", json=_payload())

    assert response.status_code == 500
    body = response.json()
    assert "draft" not in body
    assert body["error"].startswith("OpenAI error (500): ")
    assert "server exploded" in body["error"]
    assert len(calls) == 1


def test_non_json_upstream_body_returns_json_error(factory_override):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>gateway</html>", headers={"content-type": "text/html"})

    factory_override(_FactorySpy(handler))

    response = client.post("/expenses/parse", json=_payload())

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/json")
    body = response.json()
    assert "draft" not in body
    assert body["error"].startswith("OpenAI request failed: ")


class _ExplodingService:
    provider_name = "exploding"

    def __init__(self):
        self.closed = False

    def extract_from_image(self, image, categories, accounts):
        raise RuntimeError("secret detail from " + IMAGE_DATA_URL)

    def close(self) -> None:
        self.closed = True


def test_unexpected_error_returns_generic_json(factory_override):
    service = _ExplodingService()
    factory_override(lambda guardrails: service)
    lenient_client = TestClient(app, raise_server_exceptions=False)

    response = lenient_client.post("/expenses/parse", json=_payload())

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/json")
    assert response.json() == {"error": "Server error"}
    assert service.closed is True


def test_invalid_mock_fixture_returns_json_error(monkeypatch: pytest.MonkeyPatch, tmp_path):
    fixture = tmp_path / "broken.json"
    fixture.write_text("{not json", encoding="utf-8")
    monkeypatch.setenv("RECEIPT_DRAFT_PROVIDER", "mock")
    monkeypatch.setenv("RECEIPT_DRAFT_PROVIDER_FIXTURE", str(fixture))

    response = client.post("/expenses/parse", json=_payload())

    assert response.status_code == 500
    assert "not valid JSON" in response.json()["error"]


def test_malformed_model_json_returns_raw_prefix(factory_override):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "id": "resp_bad",
                "object": "response",
                "status": "completed",
                "output": [
                    {
                        "id": "msg_bad",
                        "type": "message",
                        "role": "assistant",
                        "status": "completed",
                        "content": [{"type": "output_text", "text": "```json\n{oops", "annotations": []}],
                    }
                ],
            },
        )

    factory_override(_FactorySpy(handler))

    response = client.post("/expenses/parse", json=_payload())

    assert response.status_code == 500
    body = response.json()
    assert body["error"].startswith("Model did not return valid JSON. Got: ")
    assert body["raw"] == "```json\n{oops"


def test_guardrail_nulls_hallucinated_ids(factory_override):
    model_text = (
        '{"amount": 42.5, "expense_date": "2024-06-01", "description": "Shell fuel",'
        ' "category_id": "cat-9", "account_id": "acc-card", "confidence": "high", "warnings": []}'
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "id": "resp_ok",
                "object": "response",
                "status": "completed",
                "output": [
                    {
                        "id": "msg_ok",
                        "type": "message",
                        "role": "assistant",
                        "status": "completed",
                        "content": [{"type": "output_text", "text": model_text, "annotations": []}],
                    }
                ],
            },
        )

    factory_override(_FactorySpy(handler))

    response = client.post("/expenses/parse", json=_payload())

    assert response.status_code == 200
    draft = response.json()["draft"]
    assert draft["amount"] == 43
    assert draft["category_id"] is None
    assert draft["account_id"] == "acc-card"
    assert draft["confidence"] == "low"
    assert draft["warnings"] == ["Model suggested a category_id not in allowed list; set to null."]


def test_mock_provider_round_trip(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("RECEIPT_DRAFT_PROVIDER", "mock")
    monkeypatch.delenv("RECEIPT_DRAFT_PROVIDER_FIXTURE", raising=False)

    response = client.post("/expenses/parse", json=_payload(), headers={"x-request-id": "req-123"})

    assert response.status_code == 200
    assert response.headers["x-request-id"] == "req-123"
    assert response.json() == {
        "draft": {
            "amount": 1250,
            "expense_date": "2024-03-09",
            "description": "Fresh Mart - groceries",
            "category_id": "cat-groceries",
            "account_id": "acc-card",
            "confidence": "high",
            "warnings": [],
        }
    }


def test_mock_provider_without_reference_lists_nulls_ids(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("RECEIPT_DRAFT_PROVIDER", "mock")
    monkeypatch.delenv("RECEIPT_DRAFT_PROVIDER_FIXTURE", raising=False)

    response = client.post("/expenses/parse", json={"imageDataUrl": IMAGE_DATA_URL})

    assert response.status_code == 200
    draft = response.json()["draft"]
    assert draft["category_id"] is None
    assert draft["account_id"] is None
    assert draft["confidence"] == "low"
    assert len(draft["warnings"]) == 2
