# src/apicapture/contracts/events.py
"""Data records that cross the host <-> capture <-> collector boundaries.

EventRecord is what the host pipeline submits. The payload is opaque to the
capture subsystem; only the identity fields are consulted (for sampling) and
the weight is assigned once, before the record is buffered.

SampleConfig is the immutable snapshot of the collector's sampling policy.
It is replaced wholesale on every successful fetch, never mutated.
"""

from __future__ import annotations

import json
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

# Collector status code signalling that a batch was accepted
BATCH_ACCEPTED_STATUS = 201

FULL_SAMPLE_RATE = 100


def _validate_rate(name: str, rate: int) -> None:
    if type(rate) is not int:
        raise ValueError(f"{name} must be an int, got {type(rate).__name__}")
    if not 0 <= rate <= FULL_SAMPLE_RATE:
        raise ValueError(f"{name} must be within [0, 100], got {rate}")


@dataclass(frozen=True, slots=True)
class EventRecord:
    """One captured request/response exchange.

    Attributes:
        payload: Opaque, already-built event body (request/response sections)
        user_id: Identified user, used for per-user sample rates
        company_id: Identified company, used for per-company sample rates
        weight: Replay weight, set by the capture manager before buffering
        session_token: Optional session token forwarded to the collector
        metadata: Optional free-form metadata forwarded to the collector
    """

    payload: Mapping[str, Any]
    user_id: str | None = None
    company_id: str | None = None
    weight: int | None = None
    session_token: str | None = None
    metadata: Mapping[str, Any] | None = None

    def with_weight(self, weight: int) -> EventRecord:
        """Return a copy carrying the replay weight.

        Raises:
            ValueError: If a weight was already assigned or weight < 1.
        """
        if self.weight is not None:
            raise ValueError(f"weight already assigned ({self.weight})")
        if weight < 1:
            raise ValueError(f"weight must be >= 1, got {weight}")
        return replace(self, weight=weight)

    def to_wire(self) -> dict[str, Any]:
        """Render the record as a JSON-compatible dict for the collector.

        Identity fields are merged over the payload; unset fields are omitted.
        """
        data: dict[str, Any] = dict(self.payload)
        optional = {
            "user_id": self.user_id,
            "company_id": self.company_id,
            "weight": self.weight,
            "session_token": self.session_token,
            "metadata": dict(self.metadata) if self.metadata is not None else None,
        }
        for key, value in optional.items():
            if value is not None:
                data[key] = value
        return data

    def to_json(self) -> str:
        """Encode the wire form as one JSON document.

        Raises:
            TypeError: A payload key is not a str/int/float/bool/None.
            ValueError: The payload contains a reference cycle.
        """
        return json.dumps(self.to_wire(), default=str)


@dataclass(frozen=True, slots=True)
class SampleConfig:
    """Sampling policy published by the collector.

    Rates are percentages in [0, 100]. Identities missing from the override
    maps fall through to global_rate.

    Attributes:
        global_rate: Default keep percentage
        user_rates: Per-user overrides
        company_rates: Per-company overrides
        fetched_at: Monotonic time of the successful fetch, None for defaults
        etag: Version tag of the config as advertised by the collector
    """

    global_rate: int = FULL_SAMPLE_RATE
    user_rates: Mapping[str, int] = field(default_factory=dict)
    company_rates: Mapping[str, int] = field(default_factory=dict)
    fetched_at: float | None = None
    etag: str | None = None

    def __post_init__(self) -> None:
        _validate_rate("global_rate", self.global_rate)
        for user_id, rate in self.user_rates.items():
            _validate_rate(f"user_rates[{user_id!r}]", rate)
        for company_id, rate in self.company_rates.items():
            _validate_rate(f"company_rates[{company_id!r}]", rate)

    @classmethod
    def default(cls) -> SampleConfig:
        """Sample everything, no overrides, never fetched."""
        return cls()

    def rate_for(self, user_id: str | None, company_id: str | None) -> int:
        """Effective sample rate: user override, then company override, then global."""
        if user_id is not None and user_id in self.user_rates:
            return self.user_rates[user_id]
        if company_id is not None and company_id in self.company_rates:
            return self.company_rates[company_id]
        return self.global_rate

    def failed_open(self) -> SampleConfig:
        """Copy with global_rate forced to 100, keeping everything else."""
        return replace(self, global_rate=FULL_SAMPLE_RATE)


@dataclass(frozen=True, slots=True)
class BatchResponse:
    """Outcome of a batch submission that reached the collector.

    Attributes:
        status_code: HTTP-style status; only BATCH_ACCEPTED_STATUS is success
        config_etag: Config version advertised alongside the response, if any
    """

    status_code: int
    config_etag: str | None = None

    @property
    def accepted(self) -> bool:
        return self.status_code == BATCH_ACCEPTED_STATUS


def encode_events(events: Iterable[EventRecord]) -> bytes:
    """UTF-8 JSON array body for a batch.

    Payload values without a JSON type (datetime, UUID, Decimal) are sent as
    their str() form, matching what the console collector prints.
    """
    return json.dumps([event.to_wire() for event in events], default=str).encode("utf-8")


def weight_for_rate(rate: int) -> int:
    """Replay weight for an event kept at the given sample rate.

    Raises:
        ValueError: If rate is not positive (a zero rate never keeps events).
    """
    if rate <= 0:
        raise ValueError(f"weight is undefined for sample rate {rate}")
    return math.floor(FULL_SAMPLE_RATE / rate)


def build_request_uri(host: str, uri: str, secure: bool) -> str:
    """Build an absolute request URI for an event payload.

    Absolute URIs are returned unchanged. Otherwise the scheme is chosen from
    ``secure`` and a leading slash is added to the route when missing.
    """
    if "://" in uri:
        return uri
    scheme = "https://" if secure else "http://"
    route = uri if uri.startswith("/") else "/" + uri
    return scheme + host + route
