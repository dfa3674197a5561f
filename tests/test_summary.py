import pytest

from windfleet.signals import ACTUAL_POWER, FORECAST_POWER, SignalTable
from windfleet.summary import (
    TurbineSnapshot,
    energy_by_turbine,
    forecast_day_night,
    kwh_to_mwh,
    lowest_performing,
    mwh_to_kwh,
    performance_ratio,
    realtime_total,
    snapshot_turbines,
    total_energy,
)

from tests.conftest import entry, utc

WINDOW = (utc(2025, 3, 1, 4), utc(2025, 3, 2, 3, 59, 59, 999000))

def snap(tid, measurement, forecast, online=True):
    return TurbineSnapshot(
        aggregate_id=tid, name=f"T{tid}", measurement=measurement, timestamp=None,
        online=online, excluded=False, latitude=0.0, longitude=0.0, location="",
        forecast_next_10_min=forecast, forecast_timestamp=None,
    )

def test_day_night_split_uses_ten_to_twenty_two_utc():
    table = SignalTable.decode([
        entry(152, FORECAST_POWER, {
            "2025-03-01T09:00:00Z": 1000,
            "2025-03-01T10:00:00Z": 2000,
            "2025-03-01T21:00:00Z": 3000,
            "2025-03-01T22:00:00Z": 4000,
            "2025-03-01T23:00:00Z": None,
        }),
        entry(153, FORECAST_POWER, {"2025-03-01T12:00:00Z": 500}),
    ])
    split = forecast_day_night(table)
    assert split.day_mwh == pytest.approx(5.5)
    assert split.night_mwh == pytest.approx(5.0)

def test_energy_uses_ten_minute_interval_by_default():
    table = SignalTable.decode([
        entry(152, ACTUAL_POWER, {"2025-03-01T04:00:00Z": 600, "2025-03-01T04:10:00Z": 1200, "2025-03-01T04:20:00Z": None}),
        entry(153, ACTUAL_POWER, {"2025-03-01T04:00:00Z": 6000}),
    ])
    energy = energy_by_turbine(table)
    assert energy[152] == pytest.approx(0.3)
    assert energy[153] == pytest.approx(1.0)
    assert total_energy(table) == pytest.approx(1.3)
    assert energy_by_turbine(table, interval_minutes=60)[152] == pytest.approx(1.8)

@pytest.mark.parametrize("kwh", [0.0, 1.0, 1234.5678, 1e9, 0.001])
def test_kwh_mwh_conversion_round_trips(kwh):
    assert mwh_to_kwh(kwh_to_mwh(kwh)) == pytest.approx(kwh)

def test_realtime_total_sums_latest_and_keeps_newest_timestamp():
    table = SignalTable.decode([
        entry(152, ACTUAL_POWER, {"2025-03-01T12:00:00Z": 100}),
        entry(153, ACTUAL_POWER, {"2025-03-01T12:10:00Z": 50}),
        entry(154, ACTUAL_POWER, {"2025-03-01T11:50:00Z": None}),
    ])
    total = realtime_total(table)
    assert total.value == 150
    assert total.timestamp == utc(2025, 3, 1, 12, 10)
    assert realtime_total(SignalTable()).timestamp is None

def test_snapshot_marks_selection_and_online_state(registry):
    live = SignalTable.decode([entry(152, ACTUAL_POWER, {"2025-03-01T12:00:00Z": 420})])
    nxt = SignalTable.decode([
        entry(152, FORECAST_POWER, {"2025-03-01T12:10:00Z": 500}),
        entry(153, FORECAST_POWER, {"2025-03-01T12:10:00Z": None}),
    ])
    rows = snapshot_turbines(registry, [152, 153, 154], [152, 153], live, nxt)
    by_id = {r.aggregate_id: r for r in rows}
    assert [r.aggregate_id for r in rows] == [152, 153, 154]
    assert by_id[152].online and by_id[152].measurement == 420
    assert by_id[152].forecast_next_10_min == 500
    assert by_id[152].location == "Playa Kanoa"
    assert by_id[152].latitude == pytest.approx(12.174414)
    assert not by_id[153].online and by_id[153].measurement == 0
    assert by_id[153].forecast_next_10_min == 0
    assert by_id[154].excluded and by_id[154].forecast_next_10_min is None

def test_performance_ratio_is_zero_without_forecast():
    assert performance_ratio(snap(1, 100, 0)) == 0
    assert performance_ratio(snap(1, 100, None)) == 0
    assert performance_ratio(snap(1, None, 100)) == 0
    assert performance_ratio(snap(1, 50, 100)) == 0.5

def test_lowest_today_picks_worst_ratio_among_online():
    turbines = [snap(1, 450, 500), snap(2, 100, 500), snap(3, 0, 500, online=False)]
    lowest = lowest_performing(turbines, WINDOW, exact_today=True)
    assert lowest.aggregate_id == 2
    assert lowest.performance_ratio == pytest.approx(0.2)
    assert (lowest.start, lowest.end) == WINDOW

def test_lowest_today_ties_keep_list_order():
    turbines = [snap(7, 100, 200), snap(8, 50, 100)]
    assert lowest_performing(turbines, WINDOW, exact_today=True).aggregate_id == 7

def test_lowest_today_without_online_turbines_is_none():
    assert lowest_performing([snap(1, 0, 5, online=False)], WINDOW, exact_today=True) is None

def test_lowest_historical_uses_energy_regardless_of_online():
    turbines = [snap(1, 450, 500), snap(2, 0, 0, online=False), snap(3, 10, 500)]
    lowest = lowest_performing(turbines, WINDOW, exact_today=False, energy={1: 5.0, 2: 0.5, 3: 1.0})
    assert lowest.aggregate_id == 2
    assert lowest.total_mwh == 0.5

def test_lowest_historical_missing_energy_counts_as_zero():
    turbines = [snap(1, 0, 0), snap(2, 0, 0)]
    lowest = lowest_performing(turbines, WINDOW, exact_today=False, energy={1: 3.0})
    assert lowest.aggregate_id == 2
    assert lowest.total_mwh == 0.0
