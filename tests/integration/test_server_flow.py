from __future__ import annotations

import json
from urllib import request


def test_server_reports_health_and_tools(api_base_url: str) -> None:
    with request.urlopen(f"{api_base_url}/health", timeout=5.0) as response:
        assert json.loads(response.read().decode("utf-8"))["status"] == "ok"

    with request.urlopen(f"{api_base_url}/tools", timeout=5.0) as response:
        names = {tool["name"] for tool in json.loads(response.read().decode("utf-8"))["tools"]}
    assert "batch_move" in names
    assert "auto_agent" in names


def test_submission_without_api_key_is_rejected(api_base_url: str, post_json) -> None:
    status, body = post_json(
        api_base_url,
        "/interactions",
        {"task": "batch_move", "instruction": "Group textures", "selection": ["Assets/a.png"]},
    )

    assert status == 400
    assert "No API key configured" in str(body["detail"])


def test_empty_instruction_is_rejected(api_base_url: str, post_json) -> None:
    status, body = post_json(api_base_url, "/interactions", {"task": "chat", "instruction": ""})

    assert status == 422
    assert any(item["loc"] == ["body", "instruction"] for item in body["detail"])
