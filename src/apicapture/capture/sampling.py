# src/apicapture/capture/sampling.py
"""Two-stage sampling of captured events.

Stage 1 (static): a locally configured percentage, independent of the
collector. Acts as a circuit breaker on capture volume.

Stage 2 (adaptive): the collector-published rate for the event's identity
(user override, then company override, then global rate).

Both draws must pass. A kept event gets weight = floor(100 / rate) so that
aggregations downstream can scale sampled counts back to true volume.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import TYPE_CHECKING

from apicapture.contracts.events import weight_for_rate

if TYPE_CHECKING:
    from apicapture.capture.app_config import AppConfigCache
    from apicapture.contracts.events import EventRecord


@dataclass(frozen=True, slots=True)
class SamplingDecision:
    """Outcome of sampling one event.

    Attributes:
        keep: Whether the event should be buffered
        weight: Replay weight for kept events, None otherwise
        sample_rate: Effective adaptive rate consulted for this event
    """

    keep: bool
    weight: int | None
    sample_rate: int


class SamplingDecider:
    """Decides whether to keep an event and with which weight.

    Reads the AppConfigCache snapshot without locking; a refresh in progress
    never delays a decision.
    """

    def __init__(
        self,
        config_cache: AppConfigCache,
        *,
        static_sampling_percentage: float = 100.0,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the decider.

        Args:
            config_cache: Source of the adaptive sampling config.
            static_sampling_percentage: Local percentage in [0, 100].
            rng: Random source. Inject a seeded Random for deterministic tests.

        Raises:
            ValueError: If static_sampling_percentage is outside [0, 100].
        """
        if not 0 <= static_sampling_percentage <= 100:
            raise ValueError(f"static_sampling_percentage must be within [0, 100], got {static_sampling_percentage}")
        self._cache = config_cache
        self._static_percentage = static_sampling_percentage
        self._rng = rng if rng is not None else random.Random()

    def _draw(self) -> float:
        """Uniform draw in [0, 100)."""
        return self._rng.random() * 100

    def decide(self, event: EventRecord) -> SamplingDecision:
        """Decide keep/reject for an event based on its original identity fields."""
        rate = self._cache.current.rate_for(event.user_id, event.company_id)

        if not self._draw() < self._static_percentage:
            return SamplingDecision(keep=False, weight=None, sample_rate=rate)

        # A zero rate never keeps, and would leave the weight undefined
        if rate <= 0:
            return SamplingDecision(keep=False, weight=None, sample_rate=rate)

        if rate >= self._draw():
            return SamplingDecision(keep=True, weight=weight_for_rate(rate), sample_rate=rate)
        return SamplingDecision(keep=False, weight=None, sample_rate=rate)
