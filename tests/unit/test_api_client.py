from __future__ import annotations

import base64

import httpx
import pytest

from conftest import RecordingHandler
from hrsync.api.client import TransientNetworkError, UnexpectedResponseError


def test_basic_auth_header(make_client):
    handler = RecordingHandler({("GET", "/v1/people/111"): httpx.Response(200, json={"id": "111"})})
    client = make_client(handler)
    assert client.get_person("111") == {"id": "111"}
    auth = handler.requests[0].headers["Authorization"]
    assert auth == "Basic " + base64.b64encode(b"SERVICE-1:secret-token").decode("ascii")
    assert str(handler.requests[0].url).startswith("https://api.hibob.test/v1/people/111")


def test_find_by_field_builds_filter(make_client):
    handler = RecordingHandler({
        ("POST", "/v1/people/search"): httpx.Response(200, json={"employees": [{"id": "111"}]}),
    })
    employees = make_client(handler).find_by_field("root.work.employeeIdInCompany", "E1")
    assert employees == [{"id": "111"}]
    body = RecordingHandler.body(handler.requests[0])
    assert body["showInactive"] is True
    assert body["filters"] == [
        {"fieldPath": "root.work.employeeIdInCompany", "operator": "equals", "values": ["E1"]}
    ]


def test_update_person_returns_raw_response(make_client):
    handler = RecordingHandler({("PUT", "/v1/people/111"): httpx.Response(400, text="bad value")})
    response = make_client(handler).update_person("111", {"work": {"title": "x"}})
    assert response.status_code == 400
    assert RecordingHandler.body(handler.requests[0]) == {"work": {"title": "x"}}


@pytest.mark.parametrize(
    "status,error",
    [(429, TransientNetworkError), (503, TransientNetworkError), (403, UnexpectedResponseError)],
)
def test_read_helpers_classify_errors(make_client, status: int, error: type):
    handler = RecordingHandler({("GET", "/v1/metadata/fields"): httpx.Response(status, text="nope")})
    with pytest.raises(error) as excinfo:
        make_client(handler).get_fields()
    assert excinfo.value.status_code == status


def test_network_failure_is_transient(make_client):
    def boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    handler = RecordingHandler({("GET", "/v1/metadata/lists"): boom})
    with pytest.raises(TransientNetworkError, match="connection refused"):
        make_client(handler).get_lists()


def test_history_helpers(make_client):
    handler = RecordingHandler({
        ("GET", "/v1/people/111/salaries"): httpx.Response(200, json={"values": [{"effectiveDate": "2024-01-01"}]}),
        ("POST", "/v1/people/111/salaries"): httpx.Response(200, json={}),
    })
    client = make_client(handler)
    assert client.list_history("111", "salaries") == [{"effectiveDate": "2024-01-01"}]
    assert client.add_history("111", "salaries", {"effectiveDate": "2024-02-01"}).status_code == 200
    with pytest.raises(ValueError):
        client.list_history("111", "pensions")


def test_create_list_item_requires_id(make_client):
    handler = RecordingHandler({
        ("POST", "/v1/metadata/lists/department"): [
            httpx.Response(200, json={"id": "d_new", "name": "Legal"}),
            httpx.Response(200, json={}),
        ],
    })
    client = make_client(handler)
    assert client.create_list_item("department", "Legal")["id"] == "d_new"
    with pytest.raises(UnexpectedResponseError):
        client.create_list_item("department", "Legal")
