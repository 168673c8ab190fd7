"""Tests for POST /api/diagnose with the analysis service mocked out."""

import asyncio
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from main import create_app
from services.diagnosis.messages import DISCLAIMER, TECHNICAL_DIFFICULTIES, UNEXPECTED_FORMAT
from utils.config import Settings


@pytest.fixture
def upstream_calls():
    return []


@pytest.fixture
def upstream(upstream_calls):
    """Mutable upstream behaviour: tests set `upstream["handler"]`."""
    state = {"handler": lambda request: httpx.Response(200, json={"answer": "Likely benign"})}

    def dispatch(request: httpx.Request) -> httpx.Response:
        upstream_calls.append(request)
        return state["handler"](request)

    state["transport"] = httpx.MockTransport(dispatch)
    return state


@pytest.fixture
def client(tmp_path, upstream):
    app = create_app(Settings(database_dir=str(tmp_path)), upstream_transport=upstream["transport"])
    with TestClient(app) as test_client:
        yield test_client


def post(client, **body):
    return client.post("/api/diagnose", json=body)


def test_missing_question_is_bad_request(client, upstream_calls):
    resp = post(client, image_b64="QUJD")
    assert resp.status_code == 400
    assert resp.json() == {"error": "Missing required field: question"}
    assert upstream_calls == []


def test_unparseable_body_is_bad_request(client):
    resp = client.post("/api/diagnose", content=b"{nope", headers={"Content-Type": "application/json"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid request format"}


@pytest.mark.parametrize("image", [None, "", "no-image"])
def test_without_image_returns_canned_guidance(client, upstream_calls, image):
    body = {"question": "Is this a rash?"}
    if image is not None:
        body["image_b64"] = image
    resp = client.post("/api/diagnose", json=body)
    assert resp.status_code == 200
    text = resp.json()["response"]
    assert '"Is this a rash?"' in text
    assert "upload" in text.lower()
    assert upstream_calls == []


def test_success_forwards_and_adds_disclaimer(client, upstream_calls):
    resp = post(client, question="What is this?", image_b64="data:image/png;base64,QUJD")
    assert resp.status_code == 200
    assert resp.json()["response"] == "Likely benign" + DISCLAIMER
    assert "timestamp" in resp.json()

    forwarded = upstream_calls[0]
    assert json.loads(forwarded.content) == {"image_b64": "QUJD", "question": "What is this?"}
    assert forwarded.headers["User-Agent"] == "V-SIDS/1.0"


@pytest.mark.parametrize(
    "upstream_status, expected_status",
    [(405, 503), (400, 400), (429, 429), (500, 503), (504, 503), (418, 503)],
)
def test_upstream_errors_are_mapped(client, upstream, upstream_status, expected_status):
    upstream["handler"] = lambda request: httpx.Response(upstream_status, text="nope")
    resp = post(client, question="q", image_b64="QUJD")
    assert resp.status_code == expected_status
    assert resp.json()["error"]


def test_upstream_timeout_is_408(client, upstream):
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    upstream["handler"] = handler
    resp = post(client, question="q", image_b64="QUJD")
    assert resp.status_code == 408


def test_upstream_unreachable_is_502(client, upstream):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    upstream["handler"] = handler
    resp = post(client, question="q", image_b64="QUJD")
    assert resp.status_code == 502
    assert "refused" not in resp.json()["error"]


def test_upstream_error_marker_is_soft_failure(client, upstream):
    upstream["handler"] = lambda request: httpx.Response(200, json={"answer": "LLaVA Error: CUDA OOM"})
    resp = post(client, question="q", image_b64="QUJD")
    assert resp.status_code == 200
    assert resp.json()["response"] == TECHNICAL_DIFFICULTIES
    assert resp.json()["upstream_error"] is True


def test_unknown_shape_uses_fallback_text(client, upstream):
    upstream["handler"] = lambda request: httpx.Response(200, json={"weird": 1})
    resp = post(client, question="q", image_b64="QUJD")
    assert resp.json()["response"] == UNEXPECTED_FORMAT
    assert resp.json()["unexpected_format"] is True


def test_list_body_is_unwrapped(client, upstream):
    upstream["handler"] = lambda request: httpx.Response(200, json=[{"diagnosis": "Psoriasis"}])
    resp = post(client, question="q", image_b64="QUJD")
    assert resp.json()["response"] == "Psoriasis" + DISCLAIMER


def test_get_is_not_allowed(client):
    resp = client.get("/api/diagnose")
    assert resp.status_code == 405
    assert resp.json() == {"error": "Method not allowed"}


def test_slow_upstream_body_is_408(tmp_path):
    async def body():
        for chunk in (b'{"answer": ', b'"Likely benign"', b"}"):
            await asyncio.sleep(0.2)
            yield chunk

    async def handler(request):
        return httpx.Response(200, content=body(), headers={"Content-Type": "application/json"})

    settings = Settings(database_dir=str(tmp_path), request_timeout=0.3)
    app = create_app(settings, upstream_transport=httpx.MockTransport(handler))
    with TestClient(app) as test_client:
        resp = post(test_client, question="What is this?", image_b64="QUJD")

    assert resp.status_code == 408
    assert resp.json() == {"error": "Request timeout. Please try again with a smaller image."}
