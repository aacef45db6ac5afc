import math

import pytest

from simulation.constants import SimulationConstants, constants_from_table, snap_to_step


def test_clamp_amount_snaps_and_never_goes_negative(constants) -> None:
    assert constants.clamp_amount(-5.0) == 0.0
    assert constants.clamp_amount(0.0) == 0.0
    assert constants.clamp_amount(0.0004) == 0.001
    assert constants.clamp_amount(307.60184) == pytest.approx(307.602)


def test_clamp_price_snaps_small_values_to_zero(constants) -> None:
    assert constants.clamp_price(-1.0) == 0.0
    assert constants.clamp_price(0.0004) == 0.0
    assert constants.clamp_price(2.0449) == pytest.approx(2.045)


def test_snap_uses_default_step_when_step_invalid() -> None:
    assert snap_to_step(1.23456, 0.0) == pytest.approx(1.235)


def test_price_band_swaps_misordered_multipliers() -> None:
    misconfigured = SimulationConstants(min_price_multiplier=3.0, max_price_multiplier=0.3)
    assert misconfigured.price_band(10.0) == pytest.approx((3.0, 30.0))


def test_price_band_defaults_for_non_positive_multipliers() -> None:
    constants = SimulationConstants(min_price_multiplier=0.0, max_price_multiplier=-1.0)
    assert constants.price_band(10.0) == pytest.approx((3.0, 30.0))


def test_constants_from_flat_mapping() -> None:
    constants = constants_from_table({
        "tick_period": 1.5,
        "average_price_collect_ticks": 0,
        "unknown_setting": 42,
        "max_processes_per_tick": float("nan"),
    })
    assert constants.seconds_per_tick == 1.5
    assert constants.collect_every_ticks == 1
    assert constants.max_starts_per_tick == SimulationConstants().max_starts_per_tick
    assert constants.version == 1


def test_constants_versions_increase_on_reload() -> None:
    first = constants_from_table(None)
    second = constants_from_table({}, base=first)
    assert second.version == first.version + 1


def test_resource_classes(constants) -> None:
    assert constants.is_currency("PR_Credits")
    assert not constants.is_currency("PR_Workers")
    assert constants.is_population("PR_Workers")
    assert constants.is_population("PR_Engineers")
    assert not math.isnan(constants.granularity)


def test_price_band_edges_sit_on_the_granularity_grid(constants) -> None:
    low, high = constants.price_band(1.234)
    assert low == pytest.approx(0.371)
    assert high == pytest.approx(3.702)
    for edge in (low, high):
        steps = edge / constants.granularity
        assert abs(steps - round(steps)) < 1e-6
    assert low >= 1.234 * constants.min_price_multiplier
