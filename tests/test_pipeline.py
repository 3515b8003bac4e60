"""End-to-end tests for normalize()."""
import datetime as dt
import logging

import pytest

from darkcycle_align.data_processing.errors import MalformedInputError, NoOnsetDetectedError
from darkcycle_align.data_processing.pipeline import normalize
from darkcycle_align.data_processing.schemas import EventRecord, NormalizeConfig, SensorSample

from helpers import hours, make_events, make_samples, onset

# Recording starts inside the dark phase: lights on at 06:00, off at 18:00.
SENSOR = [
    ("2024-03-10 00:00", 0.5),
    ("2024-03-10 06:00", 180.0),
    ("2024-03-10 12:00", 175.0),
    ("2024-03-10 18:00", 0.4),
    ("2024-03-11 00:00", 0.6),
    ("2024-03-11 06:00", 182.0),
    ("2024-03-11 12:00", 181.0),
]


def test_end_to_end_offsets():
    events = make_events(["2024-03-10 05:00", "2024-03-10 17:00", "2024-03-10 20:00", "2024-03-11 05:00"])
    result = normalize(events, make_samples(SENSOR))

    assert result.onsets == [onset("2024-03-09 18:00", synthetic=True), onset("2024-03-10 18:00")]
    offsets = [r.offset for r in result.records]
    assert offsets == [hours(-13), hours(-1), hours(2), hours(-13)]
    assert result.report.boundary_repaired
    assert result.report.unassigned == []


def test_end_to_end_normalized():
    events = make_events(["2024-03-10 20:00", "2024-03-11 05:00"])
    cfg = NormalizeConfig(normalize_to_positive_cycle=True)
    result = normalize(events, make_samples(SENSOR), cfg)
    assert [r.offset for r in result.records] == [hours(2), hours(11)]
    assert [r.cycle_date for r in result.records] == [dt.date(2024, 3, 10), dt.date(2024, 3, 10)]


def test_synthetic_onset_in_the_morning_gives_positive_offset():
    # lights come on at 18:00, so the synthetic onset sits at 06:00 the same day
    sensor = make_samples([("2024-03-10 05:00", 0.0), ("2024-03-10 18:00", 100.0), ("2024-03-11 06:00", 0.0)])
    (rec,) = normalize(make_events(["2024-03-10 17:00"]), sensor).records
    assert rec.assigned_onset == onset("2024-03-10 06:00", synthetic=True)
    assert rec.offset == hours(11)


def test_event_at_onset_has_zero_offset():
    (rec,) = normalize(make_events(["2024-03-10 18:00"]), make_samples(SENSOR)).records
    assert rec.assigned_onset == onset("2024-03-10 18:00")
    assert rec.offset == dt.timedelta(0)


def test_unassigned_events_are_reported(caplog):
    sensor = make_samples([("2024-03-10 12:00", 100.0), ("2024-03-10 18:00", 0.0)])
    events = make_events(["2024-03-10 11:00", "2024-03-10 19:00"])
    with caplog.at_level(logging.WARNING):
        result = normalize(events, sensor)
    assert len(result.records) == 2
    assert result.report.unassigned == [0]
    assert not result.report.boundary_repaired
    assert result.records[0].unassigned
    assert "unassigned" in caplog.text


def test_outlier_candidates_removed():
    sensor = make_samples(
        [
            ("2024-03-10 12:00", 100.0),
            ("2024-03-10 18:00", 0.0),
            ("2024-03-10 23:00", 100.0),  # someone switched the light on
            ("2024-03-11 03:10", 0.0),
            ("2024-03-11 06:00", 100.0),
        ]
    )
    cfg = NormalizeConfig(
        plausibility_window_start=dt.time(17, 0),
        plausibility_window_end=dt.time(19, 0),
    )
    events = make_events(["2024-03-11 04:00"])
    result = normalize(events, sensor, cfg)
    assert result.report.n_candidates == 2
    # synthetic onset (23:00 - 12h = 11:00) and the 03:10 candidate are both outside the window
    assert result.report.n_outliers_removed == 2
    assert result.onsets == [onset("2024-03-10 18:00")]
    assert result.records[0].assigned_onset == onset("2024-03-10 18:00")


def test_constant_illumination_raises():
    sensor = make_samples([("2024-03-10 12:00", 100.0), ("2024-03-10 18:00", 90.0)])
    with pytest.raises(NoOnsetDetectedError) as exc:
        normalize(make_events(["2024-03-10 19:00"]), sensor)
    assert exc.value.reason == "no_transitions"


def test_wrong_threshold_reported_as_no_onset():
    with pytest.raises(NoOnsetDetectedError):
        normalize([], make_samples(SENSOR), NormalizeConfig(illumination_threshold=1000.0))


def test_window_removing_everything_raises():
    cfg = NormalizeConfig(plausibility_window_start=dt.time(9, 0), plausibility_window_end=dt.time(10, 0))
    with pytest.raises(NoOnsetDetectedError) as exc:
        normalize(make_events(["2024-03-10 19:00"]), make_samples(SENSOR), cfg)
    assert exc.value.reason == "all_filtered"


def test_boundary_repair_can_be_disabled():
    events = make_events(["2024-03-10 05:00"])
    result = normalize(events, make_samples(SENSOR), NormalizeConfig(repair_boundary=False))
    assert result.records[0].unassigned
    assert all(not o.synthetic for o in result.onsets)


def test_non_monotonic_sensor_stream_fails_fast():
    sensor = make_samples([("2024-03-10 18:00", 0.0), ("2024-03-10 06:00", 100.0)])
    with pytest.raises(MalformedInputError) as exc:
        normalize([], sensor)
    assert exc.value.stream == "sensor"
    assert exc.value.index == 1


def test_non_monotonic_events_fail_fast():
    events = make_events(["2024-03-10 20:00", "2024-03-10 19:00"])
    with pytest.raises(MalformedInputError) as exc:
        normalize(events, make_samples(SENSOR))
    assert exc.value.stream == "events"


def test_missing_timestamp_fails_fast():
    events = [EventRecord(date=dt.date(2024, 3, 10), time=None)]  # type: ignore[arg-type]
    with pytest.raises(MalformedInputError):
        normalize(events, make_samples(SENSOR))


def test_inputs_are_not_mutated():
    sensor = make_samples(SENSOR)
    events = make_events(["2024-03-10 20:00"])
    before = (list(sensor), list(events))
    normalize(events, sensor, NormalizeConfig(normalize_to_positive_cycle=True))
    assert (sensor, events) == before


def test_timings_collected_per_stage():
    timings = {}
    normalize(make_events(["2024-03-10 20:00"]), make_samples(SENSOR), timings=timings)
    assert set(timings) == {"classify", "detect", "repair", "filter", "join"}


def test_ten_hour_light_period_keeps_real_onset():
    # recording starts in the light; lights off 18:00, back on 08:00 (14 h dark)
    sensor = make_samples([("2024-03-10 12:00", 100.0), ("2024-03-10 18:00", 0.0), ("2024-03-11 08:00", 100.0)])
    result = normalize(make_events(["2024-03-10 21:00"]), sensor)
    (rec,) = result.records
    assert rec.assigned_onset == onset("2024-03-10 18:00")
    assert rec.offset == hours(3)
    assert result.onsets == [onset("2024-03-10 18:00")]
    assert result.report.boundary_repair == "superseded"
    assert not result.report.boundary_repaired


def test_repair_status_reported():
    result = normalize(make_events(["2024-03-10 20:00"]), make_samples(SENSOR))
    assert result.report.boundary_repair == "applied"
    assert result.report.as_dict()["boundary_repair"] == "applied"

    cfg = NormalizeConfig(plausibility_window_start=dt.time(17, 0), plausibility_window_end=dt.time(19, 0))
    sensor = make_samples([("2024-03-10 00:00", 0.5), ("2024-03-10 07:00", 180.0), ("2024-03-10 18:00", 0.4)])
    # synthetic onset at 19:00 the day before falls outside [17:00, 19:00)
    assert normalize([], sensor, cfg).report.boundary_repair == "filtered"

    result = normalize([], make_samples(SENSOR), NormalizeConfig(repair_boundary=False))
    assert result.report.boundary_repair == "disabled"


def test_interleaved_locations_rejected():
    sensor = []
    for hour in (12, 13, 14):
        t = dt.datetime(2024, 3, 10, hour)
        sensor.append(SensorSample(date=t.date(), time=t.time(), illumination=100.0, location="A"))
        sensor.append(SensorSample(date=t.date(), time=t.time(), illumination=0.0, location="B"))
    with pytest.raises(MalformedInputError) as exc:
        normalize(make_events(["2024-03-10 20:00"]), sensor)
    assert exc.value.stream == "sensor"
    assert exc.value.index == 1


def test_single_location_accepted():
    sensor = [
        SensorSample(date=s.date, time=s.time, illumination=s.illumination, location="A")
        for s in make_samples(SENSOR)
    ]
    result = normalize(make_events(["2024-03-10 20:00"]), sensor)
    assert result.records[0].offset == hours(2)


def test_light_onset_only_without_repair_is_not_a_window_problem():
    sensor = make_samples([("2024-03-10 05:00", 0.0), ("2024-03-10 07:00", 100.0)])
    with pytest.raises(NoOnsetDetectedError) as exc:
        normalize(make_events(["2024-03-10 08:00"]), sensor, NormalizeConfig(repair_boundary=False))
    assert exc.value.reason == "no_dark_onset"


def test_light_onset_only_with_repair_uses_synthetic_onset():
    sensor = make_samples([("2024-03-10 05:00", 0.0), ("2024-03-10 07:00", 100.0)])
    (rec,) = normalize(make_events(["2024-03-10 08:00"]), sensor).records
    assert rec.assigned_onset == onset("2024-03-09 19:00", synthetic=True)
    assert rec.offset == hours(-11)
