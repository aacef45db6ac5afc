import dataclasses
import json
import shutil

import pytest

from conftest import SAMPLE_CONFIG_DIR, planet_record, static_data
from simulation.constants import SimulationConstants
from simulation.data_models import SlotGroup
from simulation.engine import EconomyEngine

BASE_COSTS = {"PR_Credits": 1.0, "PR_Ore": 1.0, "PR_Metal": 5.0, "PR_Food": 1.5}


def _engine(smelt_recipe, **overrides) -> EconomyEngine:
    constants = dataclasses.replace(SimulationConstants(version=1), seconds_per_tick=1.0, **overrides)
    planets = [
        planet_record(
            planet_id="P_A",
            start={"PR_Ore": 300, "PR_Food": 50},
            slots=[SlotGroup("PS_Mining", 1, 100.0)],
            consumption={"PR_Food": 1},
        ),
        planet_record(planet_id="P_B", start={"PR_Ore": 20, "PR_Food": 500}, consumption={"PR_Food": 1}),
    ]
    engine = EconomyEngine(static_data=static_data(BASE_COSTS, [smelt_recipe], planets), constants=constants)
    engine.start()
    return engine


def test_register_and_snapshot(smelt_recipe) -> None:
    engine = _engine(smelt_recipe)
    handle = engine.register_planet("P_A")

    resources = {r.resource_id: r for r in engine.get_resource_snapshot(handle)}
    assert resources["PR_Ore"].current_amount == 300.0
    assert len(engine.get_slot_snapshot(handle)) == 1

    resources["PR_Ore"].current_amount = 0.0
    assert engine.get_planet(handle).resource("PR_Ore").current_amount == 300.0


def test_duplicate_registration_returns_existing_handle(smelt_recipe) -> None:
    engine = _engine(smelt_recipe)
    first = engine.register_planet("P_A")
    assert engine.register_planet("P_A") == first
    assert len(engine.planets()) == 1


def test_unregister_removes_planet(smelt_recipe) -> None:
    engine = _engine(smelt_recipe)
    handle = engine.register_planet("P_A")
    engine.unregister_planet(handle)

    assert engine.planets() == []
    with pytest.raises(KeyError):
        engine.get_resource_snapshot(handle)
    with pytest.raises(KeyError):
        engine.get_handle(handle.handle_id)

    # Unknown handles are ignored
    engine.unregister_planet(handle)


def test_unknown_planet_registers_but_idles(smelt_recipe) -> None:
    engine = _engine(smelt_recipe)
    handle = engine.register_planet("P_Nowhere")
    engine.advance_clock(3.0)
    assert engine.get_resource_snapshot(handle) == []


def test_clock_drives_planets_then_market(smelt_recipe) -> None:
    engine = _engine(smelt_recipe, average_price_collect_ticks=2)
    a = engine.register_planet("P_A")
    engine.register_planet("P_B")

    assert engine.advance_clock(1.0) == 1
    assert engine.get_galactic_price("PR_Food") == 0.0
    assert engine.get_planet(a).resource("PR_Ore").current_amount == pytest.approx(200.0)

    assert engine.advance_clock(1.0) == 1
    food_a = engine.get_planet(a).resource("PR_Food").current_price
    assert food_a > 1.5
    assert engine.get_galactic_price("PR_Food") > 0.0
    assert engine.get_galactic_price("PR_Credits") == 1.0
    assert engine.get_galactic_price("PR_Unknown") == 0.0
    assert engine.market.collections == 1


def test_registration_during_tick_is_deferred(smelt_recipe) -> None:
    engine = _engine(smelt_recipe)
    a = engine.register_planet("P_A")
    planet_a = engine.get_planet(a)
    original_on_tick = planet_a.on_tick
    late_handles = []

    def on_tick_and_register(ticks):
        original_on_tick(ticks)
        if not late_handles:
            late_handles.append(engine.register_planet("P_B"))

    planet_a.on_tick = on_tick_and_register
    engine.advance_clock(1.0)

    late = late_handles[0]
    assert late in engine.planets()
    # Registered mid-tick, so it did not take part in that tick
    assert engine.get_planet(late).resource("PR_Food").current_amount == 500.0

    engine.advance_clock(1.0)
    assert engine.get_planet(late).resource("PR_Food").current_amount == pytest.approx(499.0)


def test_failing_planet_does_not_stop_the_tick(smelt_recipe) -> None:
    engine = _engine(smelt_recipe)
    a = engine.register_planet("P_A")
    b = engine.register_planet("P_B")

    def broken(_ticks):
        raise RuntimeError("corrupt ledger")

    engine.get_planet(a).on_tick = broken
    assert engine.advance_clock(1.0) == 1
    assert engine.get_planet(b).resource("PR_Food").current_amount == pytest.approx(499.0)


def test_set_time_scale_and_pause(smelt_recipe) -> None:
    engine = _engine(smelt_recipe)
    assert engine.set_time_scale(10.0) == 5.0
    assert engine.advance_clock(1.0) == 5

    engine.pause()
    assert engine.advance_clock(10.0) == 0
    engine.resume()
    assert engine.set_time_scale(1.0) == 1.0
    assert engine.advance_clock(1.0) == 1


def test_missing_config_dir_uses_defaults(tmp_path) -> None:
    engine = EconomyEngine(config_dir=str(tmp_path / "nowhere"))
    assert engine.get_constants().seconds_per_tick == SimulationConstants().seconds_per_tick
    assert engine.static_data.planets == {}
    assert engine.register_all_planets() == []


def test_reload_constants_reconfigures_clock(tmp_path) -> None:
    const_file = tmp_path / "planet_const.json"
    const_file.write_text(json.dumps([{"name": "seconds_per_tick", "value": 2.0}]), encoding="utf-8")
    engine = EconomyEngine(config_dir=str(tmp_path))
    engine.start()
    assert engine.clock.tick_period == 2.0
    first_version = engine.get_constants().version

    assert engine.advance_clock(1.5) == 0
    const_file.write_text(json.dumps([{"name": "seconds_per_tick", "value": 0.5}]), encoding="utf-8")
    constants = engine.reload_constants()

    assert constants.version == first_version + 1
    assert engine.clock.tick_period == 0.5
    # Accumulated time is kept and re-divided by the new period
    assert engine.advance_clock(0.0) == 0
    assert engine.advance_clock(0.5) == 4


def test_set_constants_bumps_version(smelt_recipe) -> None:
    engine = _engine(smelt_recipe)
    before = engine.get_constants().version
    updated = engine.set_constants(dataclasses.replace(engine.get_constants(), seconds_per_tick=3.0))
    assert updated.version == before + 1
    assert engine.clock.tick_period == 3.0


def test_reload_catalogs_keeps_ledgers(tmp_path) -> None:
    config_dir = tmp_path / "cfg"
    shutil.copytree(SAMPLE_CONFIG_DIR, config_dir)
    engine = EconomyEngine(config_dir=str(config_dir))
    engine.start()
    handles = engine.register_all_planets()
    assert handles

    engine.advance_clock(engine.clock.tick_period * 3)
    before = {h.handle_id: engine.get_resource_snapshot(h) for h in handles}
    old_catalog = engine.recipe_catalog

    engine.reload_catalogs()

    assert engine.recipe_catalog is not old_catalog
    for handle in handles:
        assert engine.get_resource_snapshot(handle) == before[handle.handle_id]
        assert engine.get_planet(handle).recipe_catalog is engine.recipe_catalog


def test_constants_reload_during_tick_waits_for_tick_end(tmp_path, smelt_recipe) -> None:
    const_file = tmp_path / "planet_const.json"
    const_file.write_text(json.dumps({"seconds_per_tick": 1.0}), encoding="utf-8")
    planets = [planet_record(planet_id="P_A", start={"PR_Food": 50}, consumption={"PR_Food": 1})]
    engine = EconomyEngine(
        config_dir=str(tmp_path),
        static_data=static_data(BASE_COSTS, [smelt_recipe], planets),
    )
    engine.start()
    planet_a = engine.get_planet(engine.register_planet("P_A"))
    before = engine.get_constants()
    seen_during_tick = []

    original_on_tick = planet_a.on_tick

    def on_tick_and_reload(ticks):
        original_on_tick(ticks)
        if not seen_during_tick:
            const_file.write_text(json.dumps({"seconds_per_tick": 2.0}), encoding="utf-8")
            seen_during_tick.append(engine.reload_constants())
            seen_during_tick.append(engine.get_constants())

    planet_a.on_tick = on_tick_and_reload
    assert engine.advance_clock(1.0) == 1

    assert seen_during_tick == [before, before]
    assert engine.get_constants().version == before.version + 1
    assert engine.clock.tick_period == 2.0


def test_set_constants_during_tick_waits_for_tick_end(smelt_recipe) -> None:
    engine = _engine(smelt_recipe)
    planet_a = engine.get_planet(engine.register_planet("P_A"))
    before = engine.get_constants()
    returned = []

    original_on_tick = planet_a.on_tick

    def on_tick_and_swap(ticks):
        original_on_tick(ticks)
        if not returned:
            returned.append(engine.set_constants(dataclasses.replace(before, seconds_per_tick=3.0)))

    planet_a.on_tick = on_tick_and_swap
    engine.advance_clock(1.0)

    assert returned == [before]
    assert engine.get_constants().seconds_per_tick == 3.0
    assert engine.get_constants().version == before.version + 1
    assert engine.clock.tick_period == 3.0
