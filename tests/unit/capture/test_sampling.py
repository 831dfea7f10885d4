# tests/unit/capture/test_sampling.py
"""Tests for SamplingDecider: static stage, adaptive stage, weights."""

from unittest.mock import MagicMock

import pytest

from apicapture.capture.sampling import SamplingDecider
from apicapture.contracts.events import SampleConfig
from tests.fixtures.capture import make_event


class FixedRandom:
    """random.Random stand-in returning scripted values in [0, 1)."""

    def __init__(self, *values: float) -> None:
        self._values = list(values)

    def random(self) -> float:
        return self._values.pop(0)


def _cache(config: SampleConfig) -> MagicMock:
    cache = MagicMock()
    cache.current = config
    return cache


class TestAdaptiveStage:
    def test_full_rate_keeps_with_weight_one(self) -> None:
        decider = SamplingDecider(_cache(SampleConfig()), rng=FixedRandom(0.0, 0.99))
        decision = decider.decide(make_event())
        assert decision.keep
        assert decision.weight == 1
        assert decision.sample_rate == 100

    def test_rate_equal_to_draw_keeps(self) -> None:
        # static draw 0, adaptive draw 50.0 -> 50 >= 50 keeps
        decider = SamplingDecider(_cache(SampleConfig(global_rate=50)), rng=FixedRandom(0.0, 0.5))
        decision = decider.decide(make_event())
        assert decision.keep
        assert decision.weight == 2

    def test_rate_below_draw_rejects(self) -> None:
        decider = SamplingDecider(_cache(SampleConfig(global_rate=30)), rng=FixedRandom(0.0, 0.31))
        decision = decider.decide(make_event())
        assert not decision.keep
        assert decision.weight is None

    def test_zero_rate_never_keeps(self) -> None:
        decider = SamplingDecider(_cache(SampleConfig(global_rate=0)), rng=FixedRandom(0.0, 0.0))
        decision = decider.decide(make_event())
        assert not decision.keep
        assert decision.sample_rate == 0

    def test_user_override_wins_over_company(self) -> None:
        config = SampleConfig(global_rate=100, user_rates={"u1": 0}, company_rates={"c1": 100})
        decider = SamplingDecider(_cache(config), rng=FixedRandom(0.0, 0.0))
        decision = decider.decide(make_event("u1", "c1"))
        assert not decision.keep
        assert decision.sample_rate == 0

    def test_company_override_when_user_unknown(self) -> None:
        config = SampleConfig(global_rate=100, company_rates={"c1": 25})
        decider = SamplingDecider(_cache(config), rng=FixedRandom(0.0, 0.1))
        decision = decider.decide(make_event("someone", "c1"))
        assert decision.keep
        assert decision.weight == 4

    @pytest.mark.parametrize(
        ("rate", "weight"),
        [(100, 1), (50, 2), (33, 3), (30, 3), (7, 14), (1, 100)],
    )
    def test_weight_is_floor_of_inverse_rate(self, rate: int, weight: int) -> None:
        decider = SamplingDecider(_cache(SampleConfig(global_rate=rate)), rng=FixedRandom(0.0, 0.0))
        assert decider.decide(make_event()).weight == weight


class TestStaticStage:
    def test_rejects_invalid_percentage(self) -> None:
        with pytest.raises(ValueError, match="static_sampling_percentage"):
            SamplingDecider(_cache(SampleConfig()), static_sampling_percentage=101)

    def test_zero_percent_rejects_everything(self) -> None:
        decider = SamplingDecider(_cache(SampleConfig()), static_sampling_percentage=0, rng=FixedRandom(0.0))
        assert not decider.decide(make_event()).keep

    def test_static_draw_at_percentage_rejects(self) -> None:
        # draw 50.0 is not < 50
        decider = SamplingDecider(_cache(SampleConfig()), static_sampling_percentage=50, rng=FixedRandom(0.5))
        assert not decider.decide(make_event()).keep

    def test_static_pass_then_adaptive(self) -> None:
        decider = SamplingDecider(_cache(SampleConfig()), static_sampling_percentage=50, rng=FixedRandom(0.49, 0.99))
        decision = decider.decide(make_event())
        assert decision.keep
        assert decision.weight == 1

    def test_reads_latest_snapshot_each_time(self) -> None:
        cache = _cache(SampleConfig(global_rate=0))
        decider = SamplingDecider(cache, rng=FixedRandom(0.0, 0.0, 0.0, 0.0))
        assert not decider.decide(make_event()).keep

        cache.current = SampleConfig(global_rate=100)

        assert decider.decide(make_event()).keep
