import asyncio
import base64
import io
import threading

import httpx

from aquarelle_sim import inspiration
from aquarelle_sim.inspiration import ERROR_PROMPT, NO_KEY_PROMPT, InspirationClient


def _client(handler, api_key="test-key"):
    return InspirationClient(api_key=api_key, transport=httpx.MockTransport(handler))


def _text_response(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def test_prompt_without_key_uses_canned_prompt(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("API_KEY", raising=False)
    assert asyncio.run(inspiration.generate_inspiration_prompt()) == NO_KEY_PROMPT
    assert asyncio.run(inspiration.generate_reference_image("a lighthouse")) is None


def test_prompt_success():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["key"] = request.headers["x-goog-api-key"]
        return httpx.Response(200, json=_text_response("  A heron wading through morning mist.\n"))

    prompt = asyncio.run(_client(handler).inspiration_prompt())
    assert prompt == "A heron wading through morning mist."
    assert seen["url"].endswith(f"models/{inspiration.TEXT_MODEL}:generateContent")
    assert seen["key"] == "test-key"


def test_prompt_http_error_falls_back():
    def handler(request):
        return httpx.Response(500, json={"error": "boom"})

    assert asyncio.run(_client(handler).inspiration_prompt()) == ERROR_PROMPT


def test_prompt_malformed_body_falls_back():
    def handler(request):
        return httpx.Response(200, content=b"not json")

    assert asyncio.run(_client(handler).inspiration_prompt()) == ERROR_PROMPT


def test_prompt_network_error_falls_back():
    def handler(request):
        raise httpx.ConnectError("offline", request=request)

    assert asyncio.run(_client(handler).inspiration_prompt()) == ERROR_PROMPT


def test_reference_image_returns_data_uri():
    def handler(request):
        body = {"candidates": [{"content": {"parts": [
            {"text": "Here you go"},
            {"inlineData": {"mimeType": "image/png", "data": "iVBORw0KGgo="}},
        ]}}]}
        return httpx.Response(200, json=body)

    uri = asyncio.run(_client(handler).reference_image("a lighthouse"))
    assert uri == "data:image/png;base64,iVBORw0KGgo="


def test_reference_image_without_image_part_is_none():
    def handler(request):
        return httpx.Response(200, json=_text_response("I can only describe it."))

    assert asyncio.run(_client(handler).reference_image("a lighthouse")) is None


def test_reference_image_error_is_none():
    def handler(request):
        return httpx.Response(403)

    assert asyncio.run(_client(handler).reference_image("a lighthouse")) is None


def test_save_reference_writes_png(tmp_path):
    import PIL.Image

    buf = io.BytesIO()
    PIL.Image.new("RGB", (4, 3), (200, 10, 10)).save(buf, format="PNG")
    uri = "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")

    path = inspiration.save_reference(uri, str(tmp_path))
    assert path is not None
    with PIL.Image.open(path) as img:
        assert img.size == (4, 3)


def test_save_reference_bad_payload_is_none(tmp_path):
    assert inspiration.save_reference("data:image/png;base64,!!", str(tmp_path)) is None
    assert inspiration.save_reference("no-comma-here", str(tmp_path)) is None
    # valid base64 but not an image
    assert inspiration.save_reference("data:image/png;base64,aGVsbG8=", str(tmp_path)) is None
    assert list(tmp_path.iterdir()) == []


def test_save_reference_unwritable_directory_is_none(tmp_path):
    import PIL.Image

    buf = io.BytesIO()
    PIL.Image.new("RGB", (2, 2)).save(buf, format="PNG")
    uri = "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")
    assert inspiration.save_reference(uri, str(tmp_path / "missing")) is None


def test_run_in_background_hands_none_on_failure():
    done = threading.Event()
    results = []

    async def failing():
        raise RuntimeError("worker blew up")

    def on_done(value):
        results.append(value)
        done.set()

    inspiration.run_in_background(failing, on_done)
    assert done.wait(timeout=5.0)
    assert results == [None]


def test_run_in_background_hands_result():
    done = threading.Event()
    results = []

    async def ok():
        return "A quiet harbour at dawn."

    def on_done(value):
        results.append(value)
        done.set()

    inspiration.run_in_background(ok, on_done)
    assert done.wait(timeout=5.0)
    assert results == ["A quiet harbour at dawn."]
