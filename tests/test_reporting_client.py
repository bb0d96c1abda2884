"""Tests for the Reporting API client and endpoint catalogue."""

from unittest.mock import MagicMock

import pytest
import requests

from allocation_admin.errors import ValidationError
from allocation_admin.reporting.client import ReportingApiClient, ReportingApiError, ReportingEndpoint


def _response(status=200, body=None, content_type="application/json", reason="OK"):
    response = MagicMock()
    response.status_code = status
    response.ok = status < 400
    response.reason = reason
    response.headers = {"Content-Type": content_type} if content_type else {}
    response.json.return_value = body
    return response


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def client(session):
    return ReportingApiClient("tok", base_url="https://reporting.test/v1/", timeout=5, session=session)


class TestEndpoints:
    def test_catalogue_is_closed(self):
        assert ReportingEndpoint.from_slug("customers-in-group") is ReportingEndpoint.CUSTOMERS_IN_GROUP
        assert ReportingEndpoint.from_slug("drop-tables") is None

    def test_params(self):
        assert ReportingEndpoint.ORDERS_BY_TYPE.params == ["order_type", "start", "end"]
        assert ReportingEndpoint.CLUBS.params == []

    def test_build_path_quotes_values(self):
        assert ReportingEndpoint.PRODUCT.build_path(sku="CAB/19") == "/products/CAB%2F19"

    def test_missing_params(self):
        with pytest.raises(ValidationError) as exc:
            ReportingEndpoint.ADDRESSES.build_path(limit=10)
        assert exc.value.data == {"missing": ["page"]}


class TestRequests:
    def test_sends_token_header(self, client, session):
        session.get.return_value = _response(body={"id": "c1"})

        assert client.get_customer("c1") == {"id": "c1"}

        url = session.get.call_args.args[0]
        kwargs = session.get.call_args.kwargs
        assert url == "https://reporting.test/v1/customers/c1"
        assert kwargs["headers"]["X-Auth-Token"] == "tok"
        assert kwargs["timeout"] == 5

    def test_missing_token(self, session):
        client = ReportingApiClient(None, session=session)
        with pytest.raises(ReportingApiError, match="API token is missing"):
            client.get_clubs()
        session.get.assert_not_called()

    def test_network_error(self, client, session):
        session.get.side_effect = requests.ConnectionError("refused")
        with pytest.raises(ReportingApiError) as exc:
            client.get_groups()
        assert exc.value.as_envelope()["status"] == 0
        assert exc.value.as_envelope()["statusText"] == "Network Error"
        assert exc.value.status_code == 502

    def test_http_error_uses_body_message(self, client, session):
        session.get.return_value = _response(404, {"error": {"message": "Customer not found"}}, reason="Not Found")
        with pytest.raises(ReportingApiError) as exc:
            client.get_customer("zz")
        assert exc.value.as_envelope() == {
            "status": 404,
            "statusText": "Not Found",
            "message": "API request failed: Customer not found",
        }
        assert exc.value.status_code == 404

    @pytest.mark.parametrize("status,reason", [(401, "Unauthorized"), (403, "Forbidden")])
    def test_upstream_auth_failure_is_bad_gateway(self, client, session, status, reason):
        session.get.return_value = _response(status, {"error": {"message": "Invalid token"}}, reason=reason)
        with pytest.raises(ReportingApiError) as exc:
            client.get_clubs()
        assert exc.value.status_code == 502
        assert exc.value.as_envelope()["status"] == status

    def test_http_error_without_json(self, client, session):
        session.get.return_value = _response(500, content_type="text/html", reason="Internal Server Error")
        with pytest.raises(ReportingApiError, match="Internal Server Error"):
            client.get_inventory_levels()

    def test_error_in_success_body(self, client, session):
        session.get.return_value = _response(200, {"error": {"message": "Bad range", "code": 400}})
        with pytest.raises(ReportingApiError) as exc:
            client.get_orders_by_creation("2024-01-01", "2024-01-31")
        assert exc.value.status == 400
        assert exc.value.message == "Bad range"

    def test_non_json_success_is_none(self, client, session):
        session.get.return_value = _response(200, content_type="text/plain")
        assert client.get_active_wishes() is None
