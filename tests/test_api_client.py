from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import pytest
import requests

from permit_cli.api.client import PermitClient, facts_path
from permit_cli.util.errors import PermitAPIError


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, text: Optional[str] = None) -> None:
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else (json.dumps(body) if body is not None else "")
        self.content = self.text.encode("utf-8")

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self) -> Any:
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeSession:
    def __init__(self, responses: List[Any]) -> None:
        self.headers: Dict[str, str] = {}
        self.responses = list(responses)
        self.requests: List[Dict[str, Any]] = []
        self.closed = False

    def request(self, method, url, params=None, json=None, timeout=None):
        self.requests.append({"method": method, "url": url, "params": params, "json": json, "timeout": timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def close(self) -> None:
        self.closed = True


def test_client_sets_bearer_header_and_builds_urls() -> None:
    session = FakeSession([FakeResponse(body={"data": []})])
    client = PermitClient("permit_key_abc", base_url="https://api.example.test/", timeout=5, session=session)

    body = client.get("/v2/projects", params={"page": 1, "role": None, "tenant": ""})

    assert body == {"data": []}
    assert session.headers["Authorization"] == "Bearer permit_key_abc"
    assert session.requests[0]["url"] == "https://api.example.test/v2/projects"
    assert session.requests[0]["params"] == {"page": 1}
    assert session.requests[0]["timeout"] == 5


def test_client_raises_api_error_with_status_and_detail() -> None:
    session = FakeSession([FakeResponse(status_code=403, body={"message": "forbidden key"})])
    client = PermitClient("permit_key_abc", session=session)

    with pytest.raises(PermitAPIError) as excinfo:
        client.get("v2/projects")

    assert excinfo.value.status == 403
    assert "forbidden key" in str(excinfo.value)


def test_client_wraps_transport_errors() -> None:
    session = FakeSession([requests.ConnectionError("refused")])
    client = PermitClient("permit_key_abc", session=session)

    with pytest.raises(PermitAPIError) as excinfo:
        client.get("v2/projects")

    assert excinfo.value.status is None


def test_client_rejects_non_json_success_body() -> None:
    session = FakeSession([FakeResponse(status_code=200, body=None, text="<html>")])
    client = PermitClient("permit_key_abc", session=session)

    with pytest.raises(PermitAPIError):
        client.get("v2/projects")


def test_client_returns_none_for_empty_body_and_sends_json() -> None:
    session = FakeSession([FakeResponse(status_code=204)])
    with PermitClient("permit_key_abc", session=session) as client:
        assert client.delete("v2/x", json={"tenant": "t"}) is None

    assert session.requests[0]["method"] == "DELETE"
    assert session.requests[0]["json"] == {"tenant": "t"}
    assert session.closed is True


def test_client_requires_token() -> None:
    with pytest.raises(PermitAPIError):
        PermitClient("")


def test_facts_path_requires_scope() -> None:
    assert facts_path("p", "e", "/users") == "v2/facts/p/e/users"
    with pytest.raises(PermitAPIError):
        facts_path("", "e", "users")
