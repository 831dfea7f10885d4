# src/apicapture/capture/collectors/http.py
"""HTTP collector: ships batches to the remote collection API over httpx.

Endpoints (relative to collector_endpoint):
    GET  /v1/config        sampling policy (JSON, validated with pydantic)
    POST /v1/events/batch  JSON array of events; 201 means accepted

Every request carries the application id header. The config version is
advertised in a response header on both endpoints, which lets the capture
manager notice policy changes between periodic refreshes.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Annotated, Any

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from apicapture.capture.errors import (
    CollectorAPIError,
    CollectorConfigurationError,
    CollectorError,
    CollectorTimeoutError,
)
from apicapture.contracts.events import BatchResponse, SampleConfig, encode_events

if TYPE_CHECKING:
    from apicapture.contracts.events import EventRecord

logger = structlog.get_logger(__name__)

APPLICATION_ID_HEADER = "X-Moesif-Application-Id"
CONFIG_ETAG_HEADER = "X-Moesif-Config-ETag"

CONFIG_PATH = "/v1/config"
EVENTS_BATCH_PATH = "/v1/events/batch"

SampleRate = Annotated[int, Field(ge=0, le=100)]


class AppConfigResponse(BaseModel):
    """Body of GET /v1/config.

    Unknown keys are ignored; the collector may publish more than sampling.
    """

    model_config = {"frozen": True, "extra": "ignore"}

    sample_rate: SampleRate = Field(default=100, description="Global keep percentage")
    user_sample_rate: dict[str, SampleRate] = Field(default_factory=dict, description="Per-user overrides")
    company_sample_rate: dict[str, SampleRate] = Field(default_factory=dict, description="Per-company overrides")

    def to_sample_config(self, etag: str | None) -> SampleConfig:
        return SampleConfig(
            global_rate=self.sample_rate,
            user_rates=dict(self.user_sample_rate),
            company_rates=dict(self.company_sample_rate),
            etag=etag,
        )


class HttpCollector:
    """Collector for the remote collection API.

    Configuration options:
        application_id: Application id sent with every request (required)
        collector_endpoint: Base URL of the collection API (required)
        timeout_seconds: Request timeout (default 30)

    Example configuration:
        collector:
          name: http
          options:
            timeout_seconds: 10
    """

    _name = "http"

    def __init__(self) -> None:
        """Initialize unconfigured collector."""
        self._client: httpx.Client | None = None
        self._base_url = ""

    @property
    def name(self) -> str:
        return self._name

    def configure(self, config: dict[str, Any]) -> None:
        """Create the HTTP client from collector options.

        Raises:
            CollectorConfigurationError: If a required option is missing or invalid
        """
        application_id = config.get("application_id")
        if not isinstance(application_id, str) or not application_id:
            raise CollectorConfigurationError(self._name, "'application_id' is required and must be a non-empty string")

        endpoint = config.get("collector_endpoint")
        if not isinstance(endpoint, str) or not endpoint.startswith(("http://", "https://")):
            raise CollectorConfigurationError(
                self._name,
                f"'collector_endpoint' must be an http(s) URL, got {endpoint!r}",
            )

        timeout = config.get("timeout_seconds", 30.0)
        if isinstance(timeout, bool) or not isinstance(timeout, int | float) or timeout <= 0:
            raise CollectorConfigurationError(self._name, f"'timeout_seconds' must be a positive number, got {timeout!r}")

        if self._client is not None:
            self._client.close()
        self._base_url = endpoint.rstrip("/")
        self._client = httpx.Client(
            base_url=self._base_url,
            timeout=float(timeout),
            headers={
                APPLICATION_ID_HEADER: application_id,
                "Content-Type": "application/json; charset=utf-8",
            },
        )
        logger.debug("HTTP collector configured", endpoint=self._base_url, timeout_seconds=timeout)

    def _require_client(self) -> httpx.Client:
        if self._client is None:
            raise CollectorError("HTTP collector used before configure()")
        return self._client

    def fetch_app_config(self) -> SampleConfig:
        """GET the sampling policy.

        Raises:
            CollectorTimeoutError: Request timed out
            CollectorAPIError: Non-2xx status
            CollectorError: Transport failure or malformed body
        """
        client = self._require_client()
        try:
            response = client.get(CONFIG_PATH)
        except httpx.TimeoutException as e:
            raise CollectorTimeoutError(f"config fetch timed out: {e}") from e
        except httpx.HTTPError as e:
            raise CollectorError(f"config fetch failed: {e}") from e

        if not response.is_success:
            raise CollectorAPIError(response.status_code, response.text)

        try:
            body = AppConfigResponse.model_validate_json(response.content)
        except ValidationError as e:
            raise CollectorError(f"invalid config body: {e.error_count()} validation error(s)") from e
        return body.to_sample_config(response.headers.get(CONFIG_ETAG_HEADER))

    def create_events_batch(self, events: Sequence[EventRecord]) -> BatchResponse:
        """POST a batch of events.

        Any HTTP answer is returned as a BatchResponse, error statuses
        included; only transport failures raise.

        Raises:
            CollectorTimeoutError: Request timed out
            CollectorError: Transport failure, or a payload JSON cannot encode
        """
        client = self._require_client()
        try:
            body = encode_events(events)
        except (TypeError, ValueError) as e:
            raise CollectorError(f"event batch not encodable: {e}") from e

        try:
            response = client.post(EVENTS_BATCH_PATH, content=body)
        except httpx.TimeoutException as e:
            raise CollectorTimeoutError(f"event batch timed out: {e}") from e
        except httpx.HTTPError as e:
            raise CollectorError(f"event batch failed: {e}") from e

        return BatchResponse(
            status_code=response.status_code,
            config_etag=response.headers.get(CONFIG_ETAG_HEADER),
        )

    def close(self) -> None:
        """Close the underlying httpx client. Idempotent."""
        if self._client is not None:
            self._client.close()
            self._client = None
