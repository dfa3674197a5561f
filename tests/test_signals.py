from datetime import timedelta

import pytz

from windfleet.signals import ACTUAL_POWER, FORECAST_POWER, SignalTable, merge_devices, merge_site

from tests.conftest import entry, utc

T0 = utc(2025, 3, 1, 4)
TIMELINE = [T0 + timedelta(hours=h) for h in range(6)]

def h(n: int) -> str:
    return (T0 + timedelta(hours=n)).strftime("%Y-%m-%dT%H:%M:%SZ")

def test_decode_builds_typed_lookup_and_skips_malformed_entries():
    table = SignalTable.decode([
        entry(152, ACTUAL_POWER, {h(1): 10, h(0): 5}),
        entry("153", FORECAST_POWER, {h(0): None}),
        {"aggregateId": 154, "data": {h(0): 1}},
        {"aggregateId": None, "dataSignal": {"dataSignalId": 5}, "data": {}},
        entry(155, ACTUAL_POWER, {"garbage": 3, h(2): "7.5"}),
        "not-an-object",
    ])
    assert list(table.series(ACTUAL_POWER, 152).values()) == [5.0, 10.0]
    assert table.series(FORECAST_POWER, 153) == {T0: None}
    assert table.series(ACTUAL_POWER, 155) == {T0 + timedelta(hours=2): 7.5}
    assert table.series(ACTUAL_POWER, 154) == {}

def test_decode_of_non_list_is_empty():
    assert not SignalTable.decode({"error": "nope"})
    assert not SignalTable.decode(None)

def test_site_merge_sums_devices_and_nulls_after_last_live():
    table = SignalTable.decode([
        entry(152, ACTUAL_POWER, {h(0): 100, h(1): 0, h(2): 50}),
        entry(153, ACTUAL_POWER, {h(0): 20, h(2): 5}),
        entry(152, FORECAST_POWER, {h(n): 10 for n in range(6)}),
        entry(153, FORECAST_POWER, {h(n): 1 for n in range(6)}),
    ])
    merged = merge_site(table, TIMELINE)
    assert merged.live == [120.0, 0.0, 55.0, None, None, None]
    assert merged.forecast == [11.0] * 6
    assert merged.last_live_index == 2

def test_live_zero_is_kept_but_gaps_are_not_contributions():
    table = SignalTable.decode([
        entry(152, ACTUAL_POWER, {h(0): 0, h(1): None, h(3): 4}),
    ])
    merged = merge_site(table, TIMELINE)
    assert merged.live == [0.0, None, None, 4.0, None, None]
    k = merged.last_live_index
    assert all(v is None for v in merged.live[k + 1:])

def test_readings_off_the_timeline_are_dropped():
    table = SignalTable.decode([
        entry(152, ACTUAL_POWER, {h(-1): 99, "2025-03-01T04:30:00Z": 7, h(0): 1}),
        entry(152, FORECAST_POWER, {h(10): 5}),
    ])
    merged = merge_site(table, TIMELINE)
    assert merged.live == [1.0, None, None, None, None, None]
    assert merged.forecast == [0.0] * 6

def test_forecast_defaults_to_zero_and_live_to_none():
    merged = merge_site(SignalTable(), TIMELINE)
    assert merged.live == [None] * 6
    assert merged.forecast == [0.0] * 6
    assert merged.last_live_index == -1

def test_device_merge_tracks_each_device_independently():
    table = SignalTable.decode([
        entry(152, ACTUAL_POWER, {h(0): 1, h(4): 2}),
        entry(153, ACTUAL_POWER, {h(1): 3}),
        entry(153, FORECAST_POWER, {h(5): 9}),
    ])
    per_device = merge_devices(table, TIMELINE)
    assert sorted(per_device) == [152, 153]
    assert per_device[152].live == [1.0, None, None, None, 2.0, None]
    assert per_device[152].last_live_index == 4
    assert per_device[153].live == [None, 3.0, None, None, None, None]
    assert per_device[153].last_live_index == 1
    assert per_device[153].forecast == [0.0, 0.0, 0.0, 0.0, 0.0, 9.0]

def test_coarse_merge_matches_by_position_in_present_set():
    weeks = [utc(2025, 3, 3), utc(2025, 3, 10)]
    table = SignalTable.decode([
        entry(152, ACTUAL_POWER, {"2025-03-03T00:00:00Z": 10, "2025-03-10T00:00:00Z": 20}),
        entry(153, ACTUAL_POWER, {"2025-03-10T00:00:00Z": 1}),
    ])
    merged = merge_site(table, weeks)
    assert merged.live == [10.0, 21.0]

def test_decode_reads_offsetless_keys_in_the_given_zone():
    tz = pytz.timezone("America/Curacao")
    table = SignalTable.decode([
        entry(152, ACTUAL_POWER, {"2025-03-01T00:00:00": 100, "2025-03-02T00:00:00+00:00": 5}),
    ], tz=tz)
    assert list(table.series(ACTUAL_POWER, 152)) == [utc(2025, 3, 1, 4), utc(2025, 3, 2)]
