from __future__ import annotations

import argparse
import calendar
import json
import re
import sys
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, NoReturn

import yaml

from languages import ConfigurationError, LanguageProfile, load_languages

PRODID = "-//workhours//work hours calendar//EN"
SUMMARY_MARKER = "🕒"
FOLD_LIMIT = 75
CRLF = "\r\n"
DEFAULT_SKIP_DAYS = frozenset({0, 6})
DEFAULT_LATEST_FILES = 2
DEFAULT_UID_DOMAIN = "workhours"
DEFAULT_OUTPUT_DIR = Path(__file__).with_name("output") / "calendars"
DEFAULT_CONFIG_PATH = Path(__file__).with_name("config.yaml")

_YEAR_RE = re.compile(r"\d{4}")
_TOKEN_RE = re.compile(r"\$\{(\w+)\}")


@dataclass(frozen=True)
class YearRecord:
    year: int
    months: dict[int, dict[int, float]]

    def last_recorded_day(self, month: int) -> int:
        days = self.months.get(month)
        return max(days) if days else 0


@dataclass(frozen=True)
class YearTotals:
    monthly: dict[int, float]
    total: float


@dataclass(frozen=True)
class CalendarEvent:
    uid: str
    summary: str
    description: str
    day: date


@dataclass(frozen=True)
class RunConfig:
    input_folder: Path
    output_dir: Path
    skip_days: frozenset[int]
    languages: tuple[LanguageProfile, ...]
    dtstamp: str
    latest_files: int = DEFAULT_LATEST_FILES
    uid_domain: str = DEFAULT_UID_DOMAIN


def load_config(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid config file {path}: {exc}") from exc
    return data if isinstance(data, dict) else {}


def resolve_config_path(value: object, base_dir: Path) -> Path | None:
    if value is None:
        return None
    path = Path(str(value))
    return path if path.is_absolute() else base_dir / path


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _parse_key(value: object, source: str, kind: str) -> int:
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValueError(f"{source}: invalid {kind} key {value!r}") from None


def parse_year_record(payload: object, source: str = "<record>") -> YearRecord:
    if not isinstance(payload, dict):
        raise ValueError(f"{source}: expected a JSON object")
    try:
        year = int(payload["year"])
    except (KeyError, TypeError, ValueError):
        raise ValueError(f"{source}: missing or invalid year") from None
    raw_months = payload.get("months") or {}
    if not isinstance(raw_months, dict):
        raise ValueError(f"{source}: months must be an object")

    months: dict[int, dict[int, float]] = {}
    for month_key, raw_days in raw_months.items():
        month = _parse_key(month_key, source, "month")
        if not 1 <= month <= 12:
            raise ValueError(f"{source}: month {month_key!r} is out of range")
        if not isinstance(raw_days, dict):
            raise ValueError(f"{source}: days of month {month} must be an object")
        limit = days_in_month(year, month)
        days: dict[int, float] = {}
        for day_key, hours in raw_days.items():
            day = _parse_key(day_key, source, "day")
            if not 1 <= day <= limit:
                raise ValueError(f"{source}: day {day_key!r} is out of range for {year}-{month:02d}")
            try:
                days[day] = float(hours or 0)
            except (TypeError, ValueError):
                raise ValueError(f"{source}: invalid hours {hours!r} for {year}-{month:02d}-{day:02d}") from None
        months[month] = days
    return YearRecord(year=year, months=months)


def load_year_record(path: Path) -> YearRecord:
    payload = json.loads(path.read_text(encoding="utf-8"))
    return parse_year_record(payload, source=path.name)


def aggregate(record: YearRecord) -> YearTotals:
    """Sum every recorded day per month, skipped weekdays included."""
    monthly: dict[int, float] = {}
    for month in sorted(record.months):
        monthly[month] = sum(record.months[month].values())
    return YearTotals(monthly=monthly, total=sum(monthly.values()))


def format_hours(value: float) -> str:
    text = f"{round(float(value), 2):.2f}".rstrip("0").rstrip(".")
    return "0" if text == "-0" else text


def capitalize(value: str) -> str:
    return value[:1].upper() + value[1:]


def fill_template(template: str, **values: object) -> str:
    """Replace the first `${name}` of each given name in one pass; everything else is copied as-is."""
    used: set[str] = set()

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in values or name in used:
            return match.group(0)
        used.add(name)
        return str(values[name])

    return _TOKEN_RE.sub(substitute, template)


def summarize_day(profile: LanguageProfile, hours: float) -> str:
    return f"{SUMMARY_MARKER} {fill_template(profile.summary_template, hours=format_hours(hours))}"


def describe_day(profile: LanguageProfile, day: int, month: int, hours: float) -> str:
    return fill_template(
        profile.description_template,
        day=day,
        monthName=profile.month_name(month),
        hours=format_hours(hours),
    )


def describe_month_total(profile: LanguageProfile, month: int, total: float) -> str:
    return fill_template(
        profile.month_total_template,
        monthName=profile.month_name(month),
        hours=format_hours(total),
    )


def monthly_breakdown(profile: LanguageProfile, totals: YearTotals) -> list[str]:
    return [
        f"{capitalize(profile.month_name(month))}: {format_hours(total)}"
        for month, total in sorted(totals.monthly.items())
    ]


def describe_year(profile: LanguageProfile, totals: YearTotals) -> str:
    return fill_template(
        profile.yearly_totals_template,
        monthlyTotals="\n".join(monthly_breakdown(profile, totals)),
        yearTotalHours=format_hours(totals.total),
    )


def build_description(
    profile: LanguageProfile,
    totals: YearTotals,
    current: date,
    hours: float,
    last_day: int,
) -> str:
    parts = [describe_day(profile, current.day, current.month, hours)]
    if current.day == last_day:
        parts.append(describe_month_total(profile, current.month, totals.monthly.get(current.month, 0)))
        if current.month == 12:
            parts.append(describe_year(profile, totals))
    return "\n\n".join(parts)


def escape_text(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def fold_line(line: str, limit: int = FOLD_LIMIT) -> str:
    """Fold a content line so no physical line exceeds ``limit`` UTF-8 octets.

    Continuation lines start with a single space, which counts towards the
    limit. Characters are never split across lines.
    """
    chunks: list[str] = []
    current: list[str] = []
    size = 0
    width = limit
    for char in line:
        length = len(char.encode("utf-8"))
        if current and size + length > width:
            chunks.append("".join(current))
            current = []
            size = 0
            width = limit - 1
        current.append(char)
        size += length
    chunks.append("".join(current))
    return (CRLF + " ").join(chunks)


def weekday_number(value: date) -> int:
    """Weekday with 0=Sunday through 6=Saturday."""
    return value.isoweekday() % 7


def should_skip(value: date, skip_days: Iterable[int]) -> bool:
    return weekday_number(value) in skip_days


def make_uid(value: date, domain: str = DEFAULT_UID_DOMAIN) -> str:
    return f"workhours-{value:%Y%m%d}@{domain}"


def build_event(
    current: date,
    hours: float,
    profile: LanguageProfile,
    totals: YearTotals,
    last_day: int,
    skip_days: Iterable[int] = DEFAULT_SKIP_DAYS,
    uid_domain: str = DEFAULT_UID_DOMAIN,
) -> CalendarEvent | None:
    if should_skip(current, skip_days):
        return None
    return CalendarEvent(
        uid=make_uid(current, uid_domain),
        summary=summarize_day(profile, hours),
        description=build_description(profile, totals, current, hours, last_day),
        day=current,
    )


def build_events(
    record: YearRecord,
    profile: LanguageProfile,
    skip_days: Iterable[int] = DEFAULT_SKIP_DAYS,
    uid_domain: str = DEFAULT_UID_DOMAIN,
    totals: YearTotals | None = None,
) -> list[CalendarEvent]:
    totals = totals or aggregate(record)
    events: list[CalendarEvent] = []
    for month in sorted(record.months):
        days = record.months[month]
        last_day = record.last_recorded_day(month)
        for day in range(1, last_day + 1):
            event = build_event(
                date(record.year, month, day),
                days.get(day, 0),
                profile,
                totals,
                last_day,
                skip_days,
                uid_domain,
            )
            if event is not None:
                events.append(event)
    return events


def check_record(record: YearRecord, skip_days: Iterable[int]) -> list[str]:
    warnings: list[str] = []
    for month in sorted(record.months):
        last_day = record.last_recorded_day(month)
        expected = days_in_month(record.year, month)
        if last_day < expected:
            warnings.append(
                f"{record.year}-{month:02d} ends at day {last_day}, calendar has {expected} days"
            )
        if last_day and should_skip(date(record.year, month, last_day), skip_days):
            target = "yearly summary" if month == 12 else "month total"
            warnings.append(
                f"{record.year}-{month:02d} {target} is not shown, "
                f"{date(record.year, month, last_day).isoformat()} is a skipped day"
            )
    return warnings


def format_ics_date(value: date) -> str:
    return value.strftime("%Y%m%d")


def format_dtstamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def event_lines(event: CalendarEvent, dtstamp: str) -> list[str]:
    lines = [
        f"UID:{event.uid}",
        f"SUMMARY:{escape_text(event.summary)}",
        f"DTSTAMP:{dtstamp}",
        f"DTSTART;VALUE=DATE:{format_ics_date(event.day)}",
        f"DTEND;VALUE=DATE:{format_ics_date(event.day + timedelta(days=1))}",
        "STATUS:CONFIRMED",
        "TRANSP:TRANSPARENT",
        "DURATION:P1DT",
        f"DESCRIPTION:{escape_text(event.description)}",
    ]
    return ["BEGIN:VEVENT", *(fold_line(line) for line in lines), "END:VEVENT"]


def render_calendar(events: Iterable[CalendarEvent], dtstamp: str) -> str:
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
    ]
    for event in events:
        lines.extend(event_lines(event, dtstamp))
    lines.append("END:VCALENDAR")
    return CRLF.join(lines) + CRLF


def year_from_filename(name: str) -> int:
    match = _YEAR_RE.search(name)
    return int(match.group(0)) if match else 0


def select_input_files(folder: Path, count: int = DEFAULT_LATEST_FILES) -> list[Path]:
    """The ``count`` most recent year files, oldest first."""
    candidates = sorted(
        path for path in folder.iterdir() if path.is_file() and path.suffix.lower() == ".json"
    )
    latest = sorted(candidates, key=lambda path: year_from_filename(path.name), reverse=True)[:count]
    if not latest:
        raise ConfigurationError(f"No JSON files found in the input folder: {folder}")
    return list(reversed(latest))


def assemble_calendar(
    years: list[tuple[YearRecord, YearTotals]],
    profile: LanguageProfile,
    config: RunConfig,
) -> str:
    events: list[CalendarEvent] = []
    for record, totals in years:
        events.extend(build_events(record, profile, config.skip_days, config.uid_domain, totals))
    events.sort(key=lambda event: event.day)
    return render_calendar(events, config.dtstamp)


def write_calendars(years: list[tuple[YearRecord, YearTotals]], config: RunConfig) -> list[Path]:
    config.output_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for profile in config.languages:
        path = config.output_dir / f"work_hours_{profile.code}.ics"
        path.write_bytes(assemble_calendar(years, profile, config).encode("utf-8"))
        print(f"Wrote {profile.code} calendar to {path}")
        written.append(path)
    return written


def run(config: RunConfig) -> list[Path]:
    files = select_input_files(config.input_folder, config.latest_files)
    print(f"Found the {len(files)} latest year files: {', '.join(path.name for path in files)}")

    years: list[tuple[YearRecord, YearTotals]] = []
    for path in files:
        print(f"Processing file: {path}")
        record = load_year_record(path)
        for warning in check_record(record, config.skip_days):
            print(f"Warning: {path.name}: {warning}")
        years.append((record, aggregate(record)))

    return write_calendars(years, config)


def parse_skip_days(value: object) -> frozenset[int]:
    if isinstance(value, str):
        parts: list[object] = [part.strip() for part in value.split(",") if part.strip()]
    elif isinstance(value, (list, tuple, set, frozenset)):
        parts = list(value)
    else:
        parts = [value]
    days: set[int] = set()
    for part in parts:
        try:
            day = int(str(part))
        except ValueError:
            raise ConfigurationError(f"skipDays must be weekday numbers 0-6, got {part!r}") from None
        if not 0 <= day <= 6:
            raise ConfigurationError(f"skipDays must be weekday numbers 0-6, got {day}")
        days.add(day)
    return frozenset(days)


def build_run_config(
    args: argparse.Namespace,
    config: dict[str, object],
    config_base: Path,
    now: datetime | None = None,
) -> RunConfig:
    input_folder = Path(args.input_folder)
    if not input_folder.is_dir():
        raise ConfigurationError(f"Input folder not found or is not a directory: {input_folder}")

    skip_value = args.skip_days if args.skip_days is not None else config.get("skip_days")
    skip_days = DEFAULT_SKIP_DAYS if skip_value is None else parse_skip_days(skip_value)

    output_dir = args.output_folder or resolve_config_path(config.get("output_dir"), config_base)

    try:
        latest_files = int(config.get("latest_files", DEFAULT_LATEST_FILES))
    except (TypeError, ValueError):
        raise ConfigurationError("latest_files must be an integer") from None
    if latest_files < 1:
        raise ConfigurationError("latest_files must be at least 1")

    return RunConfig(
        input_folder=input_folder,
        output_dir=Path(output_dir) if output_dir else DEFAULT_OUTPUT_DIR,
        skip_days=skip_days,
        languages=load_languages(config.get("languages")),
        dtstamp=format_dtstamp(now or datetime.now(timezone.utc)),
        latest_files=latest_files,
        uid_domain=str(config.get("uid_domain") or DEFAULT_UID_DOMAIN),
    )


class FlagParser(argparse.ArgumentParser):
    """Argument parser for ``-name value`` flags that exits with status 1."""

    def __init__(self, **kwargs: object) -> None:
        kwargs.setdefault("allow_abbrev", False)
        super().__init__(**kwargs)

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(1, f"Error: {message}\n")


def read_config(path: Path | None) -> tuple[dict[str, object], Path]:
    if path is None:
        return load_config(DEFAULT_CONFIG_PATH), DEFAULT_CONFIG_PATH.parent
    if not path.is_file():
        raise ConfigurationError(f"Config file not found: {path}")
    return load_config(path), path.parent


def build_parser() -> FlagParser:
    parser = FlagParser(description="Build localized work hours iCalendar files from yearly JSON records.")
    parser.add_argument(
        "-inputFolder",
        dest="input_folder",
        type=Path,
        required=True,
        help="Folder with work_hours_<year>.json files",
    )
    parser.add_argument(
        "-skipDays",
        dest="skip_days",
        default=None,
        help='Comma-separated weekdays to leave out, 0=Sunday..6=Saturday (default "0,6")',
    )
    parser.add_argument(
        "-outputFolder",
        dest="output_folder",
        type=Path,
        default=None,
        help="Folder to write calendars to (default output/calendars)",
    )
    parser.add_argument(
        "-config",
        dest="config",
        type=Path,
        default=None,
        help="YAML config file (optional)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config, config_base = read_config(args.config)
        run(build_run_config(args, config, config_base))
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
