import httpx
import pytest

from backoffice.services.api_client import (
    ApiClient,
    ApiError,
    NetworkError,
    clean_params,
    resolve_base_url,
)


def _client(handler):
    return ApiClient("http://testserver/api", transport=httpx.MockTransport(handler))


class TestBaseUrl:

    @pytest.mark.parametrize("base, expected", [
        (None, "http://localhost:5000/api"),
        ("", "http://localhost:5000/api"),
        ("/api/", "http://localhost:5000/api"),
        ("/v2/api", "http://localhost:5000/v2/api"),
        ("https://pos.example.com/api/", "https://pos.example.com/api"),
    ])
    def test_resolve(self, base, expected):
        assert resolve_base_url(base, "http://localhost:5000") == expected


def test_clean_params_drops_empty_values():
    assert clean_params({"a": None, "b": "", "c": 0, "d": True, "e": "x"}) == {"c": "0", "d": "true", "e": "x"}
    assert clean_params(None) == {}


def test_bearer_token_and_query():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        seen["url"] = str(request.url)
        return httpx.Response(200, json={"ok": True})

    api = _client(handler)
    res = api.send("GET", "/expenses", token="tkn", params={"date_from": "2024-01-01", "date_to": None})

    assert res == {"ok": True}
    assert seen["auth"] == "Bearer tkn"
    assert seen["url"] == "http://testserver/api/expenses?date_from=2024-01-01"


def test_non_json_and_blob_bodies():
    api = _client(lambda request: httpx.Response(200, text="a,b\n1,2", headers={"content-type": "text/csv"}))

    assert api.send("GET", "/export") == "a,b\n1,2"
    assert api.send("GET", "/export", expect_blob=True) == b"a,b\n1,2"


def test_error_status_carries_backend_message():
    api = _client(lambda request: httpx.Response(422, json={"error": "amount must be > 0", "field": "amount"}))

    with pytest.raises(ApiError) as info:
        api.send("POST", "/cogs", json={"amount": 0})

    assert info.value.status == 422
    assert info.value.message == "amount must be > 0"
    assert info.value.body["field"] == "amount"


def test_error_without_json_body():
    api = _client(lambda request: httpx.Response(503, text="upstream down"))

    with pytest.raises(ApiError) as info:
        api.send("GET", "/expenses")

    assert info.value.status == 503
    assert info.value.body == {}


def test_transport_failure_is_network_error():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(NetworkError):
        _client(handler).send("GET", "/expenses")
