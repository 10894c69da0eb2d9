from __future__ import annotations

import json

import httpx
import pytest

from src.offload.exceptions import NotConfiguredError, RemoteServiceError
from src.offload.optimizer.optimizer_client import (
    ImagePayload,
    OptimizerClient,
    parse_optimize_response,
)
from tests.mocks.http import DummyAsyncClient, DummyHTTPResponse, install_client


def test_results_array_is_kept_in_request_order() -> None:
    body = json.dumps(
        {
            "success": True,
            "results": [
                {"success": True, "file": "a.jpg", "data": {"base64": "AAA", "targetFormat": "webp"}},
                {"success": False, "file": "b.jpg", "error": "too large"},
            ],
        }
    )

    results = parse_optimize_response(200, body)

    assert [result.file for result in results] == ["a.jpg", "b.jpg"]
    assert results[0].data is not None and results[0].data.targetFormat == "webp"
    assert results[1].error_message == "too large"


@pytest.mark.parametrize(
    "body",
    [
        {"success": True, "batch": False, "results": {"success": True, "file": "a.jpg"}},
        {"success": True, "results": {"success": True, "file": "a.jpg"}},
    ],
)
def test_single_object_results_become_one_element_list(body) -> None:
    results = parse_optimize_response(200, json.dumps(body))

    assert len(results) == 1
    assert results[0].file == "a.jpg"


@pytest.mark.parametrize(
    "body",
    [{"success": True, "processed": 0, "results": [{"success": True}]}, {"success": True}, {"success": True, "results": []}],
)
def test_empty_results_become_empty_list(body) -> None:
    assert parse_optimize_response(200, json.dumps(body)) == []


@pytest.mark.parametrize(
    ("status_code", "text"),
    [
        (500, '{"success": true}'),
        (401, ""),
        (302, '{"success": true, "results": []}'),
        (200, ""),
        (200, '{"success": true, "results": [{"a": 1}'),
        (200, '{"success": true, "results": [}]}'),
        (200, '{"success": true, "results": {"a": "}"}'),
        (200, '{"success": false, "message": "quota"}'),
        (200, "[1, 2]"),
    ],
)
def test_malformed_or_failed_responses_raise(status_code: int, text: str) -> None:
    with pytest.raises(RemoteServiceError):
        parse_optimize_response(status_code, text)


@pytest.mark.parametrize("status_code", [201, 202])
def test_any_2xx_status_is_accepted(status_code: int) -> None:
    body = json.dumps({"success": True, "results": [{"success": True, "file": "a.jpg"}]})

    results = parse_optimize_response(status_code, body)

    assert [result.file for result in results] == ["a.jpg"]


def test_entry_that_is_not_an_object_becomes_failed_result() -> None:
    results = parse_optimize_response(200, json.dumps({"success": True, "results": ["oops"]}))

    assert results[0].success is False
    assert results[0].error_message == "malformed result entry"


@pytest.mark.asyncio
async def test_optimize_posts_payload_with_api_key(monkeypatch) -> None:
    client = install_client(
        monkeypatch,
        DummyAsyncClient(post=[DummyHTTPResponse(200, {"success": True, "results": [{"success": True, "skipped": True}]})]),
    )
    optimizer = OptimizerClient(api_key="k-123", base_url="https://api-eu.nofb.nexwinds.com/", timeout_seconds=42)

    results = await optimizer.optimize([ImagePayload(file="a.jpg", image_data="data:image/jpeg;base64,AA==")], max_size_kb=150)

    assert results[0].skipped is True
    call = client.calls_for("post")[0]
    assert call["url"] == "https://api-eu.nofb.nexwinds.com/v1/images/wp/optimize"
    assert call["headers"]["x-api-key"] == "k-123"
    assert call["json"]["images"] == [{"file": "a.jpg", "imageData": "data:image/jpeg;base64,AA=="}]
    assert call["json"]["maxSizeKb"] == 150
    assert client.timeouts == [42]


@pytest.mark.asyncio
async def test_transport_error_is_reported_as_remote_failure(monkeypatch) -> None:
    install_client(monkeypatch, DummyAsyncClient(post=[httpx.ConnectTimeout("timed out")]))
    optimizer = OptimizerClient(api_key="k", base_url="https://api-us.nofb.nexwinds.com")

    with pytest.raises(RemoteServiceError):
        await optimizer.optimize([ImagePayload(file="a.jpg", image_data="x")], max_size_kb=150)


@pytest.mark.asyncio
async def test_missing_key_is_not_configured() -> None:
    optimizer = OptimizerClient(api_key="", base_url="https://api-us.nofb.nexwinds.com")

    with pytest.raises(NotConfiguredError) as excinfo:
        await optimizer.account_status()

    assert excinfo.value.missing == ["OPTIMIZER_API_KEY"]
