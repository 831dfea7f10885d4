# tests/unit/capture/collectors/test_http.py
"""Tests for HttpCollector against a mocked transport (respx)."""

import json
from datetime import UTC, datetime

import httpx
import pytest
import respx

from apicapture.capture.collectors.http import (
    APPLICATION_ID_HEADER,
    CONFIG_ETAG_HEADER,
    HttpCollector,
)
from apicapture.capture.errors import (
    CollectorAPIError,
    CollectorConfigurationError,
    CollectorError,
    CollectorTimeoutError,
)
from apicapture.capture.protocols import CollectorProtocol
from tests.fixtures.capture import make_event

BASE = "https://collector.example.com"


@pytest.fixture
def collector():
    c = HttpCollector()
    c.configure({"application_id": "app-123", "collector_endpoint": BASE + "/", "timeout_seconds": 5})
    yield c
    c.close()


class TestConfigure:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(HttpCollector(), CollectorProtocol)

    def test_requires_application_id(self) -> None:
        with pytest.raises(CollectorConfigurationError, match="application_id"):
            HttpCollector().configure({"collector_endpoint": BASE})

    def test_requires_http_endpoint(self) -> None:
        with pytest.raises(CollectorConfigurationError, match="collector_endpoint"):
            HttpCollector().configure({"application_id": "x", "collector_endpoint": "ftp://nope"})

    @pytest.mark.parametrize("timeout", [0, -1, "10", True])
    def test_rejects_bad_timeout(self, timeout: object) -> None:
        with pytest.raises(CollectorConfigurationError, match="timeout_seconds"):
            HttpCollector().configure({"application_id": "x", "collector_endpoint": BASE, "timeout_seconds": timeout})

    def test_unconfigured_use_raises(self) -> None:
        with pytest.raises(CollectorError, match="before configure"):
            HttpCollector().fetch_app_config()

    def test_close_is_idempotent(self, collector: HttpCollector) -> None:
        collector.close()
        collector.close()


class TestFetchAppConfig:
    @respx.mock
    def test_parses_rates_and_etag(self, collector: HttpCollector) -> None:
        route = respx.get(f"{BASE}/v1/config").mock(
            return_value=httpx.Response(
                200,
                json={
                    "sample_rate": 40,
                    "user_sample_rate": {"u1": 10},
                    "company_sample_rate": {"c1": 0},
                    "regex_config": [],
                },
                headers={CONFIG_ETAG_HEADER: "etag-1"},
            )
        )

        config = collector.fetch_app_config()

        assert route.calls.last.request.headers[APPLICATION_ID_HEADER] == "app-123"
        assert config.global_rate == 40
        assert config.user_rates == {"u1": 10}
        assert config.company_rates == {"c1": 0}
        assert config.etag == "etag-1"
        assert config.fetched_at is None

    @respx.mock
    def test_missing_fields_default_to_full_sampling(self, collector: HttpCollector) -> None:
        respx.get(f"{BASE}/v1/config").mock(return_value=httpx.Response(200, json={}))
        config = collector.fetch_app_config()
        assert config.global_rate == 100
        assert config.etag is None

    @respx.mock
    def test_error_status_raises_api_error(self, collector: HttpCollector) -> None:
        respx.get(f"{BASE}/v1/config").mock(return_value=httpx.Response(503, text="unavailable"))
        with pytest.raises(CollectorAPIError) as exc_info:
            collector.fetch_app_config()
        assert exc_info.value.status_code == 503
        assert exc_info.value.body == "unavailable"

    @respx.mock
    def test_out_of_range_rate_rejected(self, collector: HttpCollector) -> None:
        respx.get(f"{BASE}/v1/config").mock(return_value=httpx.Response(200, json={"sample_rate": 150}))
        with pytest.raises(CollectorError, match="invalid config body"):
            collector.fetch_app_config()

    @respx.mock
    @pytest.mark.parametrize("field", ["user_sample_rate", "company_sample_rate"])
    def test_out_of_range_override_rejected(self, collector: HttpCollector, field: str) -> None:
        respx.get(f"{BASE}/v1/config").mock(return_value=httpx.Response(200, json={field: {"x": 150}}))
        with pytest.raises(CollectorError, match="invalid config body"):
            collector.fetch_app_config()

    @respx.mock
    def test_timeout_raises_timeout_error(self, collector: HttpCollector) -> None:
        respx.get(f"{BASE}/v1/config").mock(side_effect=httpx.ReadTimeout("timed out"))
        with pytest.raises(CollectorTimeoutError):
            collector.fetch_app_config()

    @respx.mock
    def test_connection_error_raises_collector_error(self, collector: HttpCollector) -> None:
        respx.get(f"{BASE}/v1/config").mock(side_effect=httpx.ConnectError("refused"))
        with pytest.raises(CollectorError, match="config fetch failed"):
            collector.fetch_app_config()


class TestCreateEventsBatch:
    @respx.mock
    def test_posts_wire_events(self, collector: HttpCollector) -> None:
        route = respx.post(f"{BASE}/v1/events/batch").mock(
            return_value=httpx.Response(201, headers={CONFIG_ETAG_HEADER: "etag-2"})
        )
        events = [make_event("u1", "c1").with_weight(2), make_event("u2")]

        response = collector.create_events_batch(events)

        assert response.accepted
        assert response.config_etag == "etag-2"
        body = json.loads(route.calls.last.request.content)
        assert [e["user_id"] for e in body] == ["u1", "u2"]
        assert body[0]["weight"] == 2
        assert body[0]["company_id"] == "c1"
        assert "company_id" not in body[1]

    @respx.mock
    def test_error_status_is_returned_not_raised(self, collector: HttpCollector) -> None:
        respx.post(f"{BASE}/v1/events/batch").mock(return_value=httpx.Response(200))
        response = collector.create_events_batch([make_event()])
        assert response.status_code == 200
        assert not response.accepted

    @respx.mock
    def test_timeout_raises_timeout_error(self, collector: HttpCollector) -> None:
        respx.post(f"{BASE}/v1/events/batch").mock(side_effect=httpx.WriteTimeout("timed out"))
        with pytest.raises(CollectorTimeoutError):
            collector.create_events_batch([make_event()])

    @respx.mock
    def test_non_json_payload_values_sent_as_strings(self, collector: HttpCollector) -> None:
        route = respx.post(f"{BASE}/v1/events/batch").mock(return_value=httpx.Response(201))
        at = datetime(2024, 5, 1, 12, 30, tzinfo=UTC)

        response = collector.create_events_batch([make_event(request={"time": at, "verb": "GET"})])

        assert response.accepted
        body = json.loads(route.calls.last.request.content)
        assert body[0]["request"] == {"time": str(at), "verb": "GET"}
        assert route.calls.last.request.headers["Content-Type"].startswith("application/json")

    @respx.mock
    def test_unencodable_batch_raises_collector_error(self, collector: HttpCollector) -> None:
        route = respx.post(f"{BASE}/v1/events/batch").mock(return_value=httpx.Response(201))
        with pytest.raises(CollectorError, match="not encodable"):
            collector.create_events_batch([make_event(headers={("a", "b"): "tuple key"})])
        assert not route.called
