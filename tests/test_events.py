from __future__ import annotations

from datetime import date, timedelta

import pytest

from build_calendars import (
    aggregate,
    build_event,
    build_events,
    check_record,
    make_uid,
    parse_year_record,
    should_skip,
    weekday_number,
)
from languages import ENGLISH, SWEDISH

JANUARY_2024_WEEKENDS = {6, 7, 13, 14, 20, 21, 27, 28}


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (date(2024, 1, 7), 0),
        (date(2024, 1, 1), 1),
        (date(2024, 1, 3), 3),
        (date(2024, 1, 6), 6),
        (date(2000, 2, 29), 2),
    ],
)
def test_weekday_number_starts_on_sunday(value, expected):
    assert weekday_number(value) == expected


def test_skip_depends_only_on_weekday():
    start = date(2023, 1, 1)
    for offset in range(730):
        current = start + timedelta(days=offset)
        assert should_skip(current, {0, 6}) == (current.weekday() >= 5)


def test_uid_is_stable_per_date():
    assert make_uid(date(2024, 1, 31)) == make_uid(date(2024, 1, 31)) == "workhours-20240131@workhours"
    assert make_uid(date(2024, 1, 31), "example.org") == "workhours-20240131@example.org"
    assert make_uid(date(2024, 1, 31)) != make_uid(date(2023, 1, 31))


def test_build_event_skips_weekend():
    record = parse_year_record({"year": 2024, "months": {"1": {"6": 8}}})

    assert build_event(date(2024, 1, 6), 8, ENGLISH, aggregate(record), last_day=6) is None


def test_january_scenario(month_days):
    days = month_days(2024, 1)
    days["2"] = 0
    record = parse_year_record({"year": 2024, "months": {"1": days}})

    events = build_events(record, ENGLISH)

    emitted_days = [event.day.day for event in events]
    assert len(events) == 31 - len(JANUARY_2024_WEEKENDS)
    assert not JANUARY_2024_WEEKENDS & set(emitted_days)
    assert emitted_days == sorted(emitted_days)
    last = events[-1]
    assert last.day == date(2024, 1, 31)
    assert last.uid == "workhours-20240131@workhours"
    assert last.summary == "🕒 Work Hours: 8"
    assert last.description.endswith("Total work hours for January: 240")
    assert "Total work hours" not in events[-2].description
    assert events[1].description == "Work hours for 2 January: 0 hours"


def test_skipped_days_do_not_change_month_total(month_days):
    days = month_days(2024, 1, hours=0)
    days["6"] = 5  # Saturday
    days["31"] = 3
    record = parse_year_record({"year": 2024, "months": {"1": days}})

    events = build_events(record, ENGLISH)

    assert date(2024, 1, 6) not in {event.day for event in events}
    assert events[-1].description.endswith("Total work hours for January: 8")


def test_skip_days_can_be_disabled(month_days):
    record = parse_year_record({"year": 2024, "months": {"1": month_days(2024, 1)}})

    assert len(build_events(record, ENGLISH, skip_days=frozenset())) == 31


def test_month_total_follows_last_recorded_day():
    days = {str(day): 8 for day in range(1, 30)}
    record = parse_year_record({"year": 2024, "months": {"4": days}})

    events = build_events(record, ENGLISH)
    by_day = {event.day.day: event for event in events}

    assert 30 not in by_day
    assert by_day[29].description.endswith("Total work hours for April: 232")
    assert "Total work hours" not in by_day[26].description


def test_missing_middle_days_count_as_zero():
    record = parse_year_record({"year": 2024, "months": {"4": {"1": 8, "3": 6}}})

    events = build_events(record, SWEDISH)

    assert [event.day.day for event in events] == [1, 2, 3]
    assert events[1].summary == "🕒 Arbetstid: 0"
    assert events[2].description.endswith("Totalt arbetade timmar för april: 14")


def test_december_31_carries_yearly_summary(year_record):
    record = year_record(2024)

    events = build_events(record, ENGLISH)
    last = events[-1]

    assert last.day == date(2024, 12, 31)
    assert "Total work hours for December: 248" in last.description
    for name, total in [("January", 248), ("February", 232), ("April", 240), ("December", 248)]:
        assert f"\n{name}: {total}\n" in last.description
    assert last.description.endswith("Total: 2928 hours")
    assert sum("Yearly totals" in event.description for event in events) == 1


def test_monthly_event_hours_match_totals(year_record):
    record = year_record(2024, hours=7.5)
    totals = aggregate(record)

    events = build_events(record, ENGLISH, skip_days=frozenset(), totals=totals)

    for month, total in totals.monthly.items():
        emitted = [event for event in events if event.day.month == month]
        assert len(emitted) * 7.5 == total


def test_check_record_reports_short_month_and_hidden_totals(month_days):
    record = parse_year_record(
        {
            "year": 2023,
            "months": {
                "4": {str(day): 8 for day in range(1, 30)},
                "12": month_days(2023, 12),
            },
        }
    )

    warnings = check_record(record, {0, 6})

    assert warnings == [
        "2023-04 ends at day 29, calendar has 30 days",
        "2023-04 month total is not shown, 2023-04-29 is a skipped day",
        "2023-12 yearly summary is not shown, 2023-12-31 is a skipped day",
    ]


def test_check_record_is_quiet_for_complete_months(year_record):
    assert check_record(year_record(2024), frozenset()) == []
