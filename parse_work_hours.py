from __future__ import annotations

import json
import re
import sys
from dataclasses import dataclass, field
from html.parser import HTMLParser
from pathlib import Path

from build_calendars import (
    FlagParser,
    days_in_month,
    format_hours,
    read_config,
    resolve_config_path,
)
from languages import ConfigurationError, find_language, load_languages

DEFAULT_MAX_WORK_HOURS = 8
DEFAULT_SOURCE_LANGUAGE = "sv"
DEFAULT_WORK_HOURS_DIR = Path(__file__).with_name("output") / "work_hours"
YEAR_HEADING = "referenstidtabell för år"
TOTAL_LABEL = "Total årsarbetstid"
SUM_TOLERANCE = 0.01

_LEADING_INT_RE = re.compile(r"^\s*(\d+)")
_LEADING_NUMBER_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)")
_TOTAL_RE = re.compile(re.escape(TOTAL_LABEL) + r"\D*?(\d+(?:[.,]\d+)?)", re.IGNORECASE)


@dataclass
class _OpenTable:
    row: list[str] | None = None
    cell: list[str] | None = None


class _WorkHoursHTMLParser(HTMLParser):
    """Flatten a reference table page into bold headings, table boundaries and rows, in document order."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.items: list[tuple[str, object]] = []
        self._text: list[str] = []
        self._tables: list[_OpenTable] = []
        self._bold_depth = 0
        self._bold_parts: list[str] = []

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        tag = tag.lower()
        if tag in ("b", "strong"):
            if self._bold_depth == 0:
                self._bold_parts = []
            self._bold_depth += 1
        elif tag == "table":
            self._tables.append(_OpenTable())
            self.items.append(("table", len(self._tables)))
        elif tag == "tr" and self._tables:
            self._close_row(self._tables[-1])
            self._tables[-1].row = []
        elif tag in ("td", "th") and self._tables:
            table = self._tables[-1]
            self._close_cell(table)
            if table.row is None:
                table.row = []
            table.cell = []

    def handle_endtag(self, tag: str) -> None:
        tag = tag.lower()
        if tag in ("b", "strong") and self._bold_depth:
            self._bold_depth -= 1
            if self._bold_depth == 0:
                self.items.append(("bold", " ".join("".join(self._bold_parts).split())))
        elif tag == "table" and self._tables:
            self._close_table()
        elif tag == "tr" and self._tables:
            self._close_row(self._tables[-1])
        elif tag in ("td", "th") and self._tables:
            self._close_cell(self._tables[-1])

    def handle_data(self, data: str) -> None:
        self._text.append(data)
        if self._bold_depth:
            self._bold_parts.append(data)
        if self._tables and self._tables[-1].cell is not None:
            self._tables[-1].cell.append(data)

    def close(self) -> None:
        super().close()
        while self._tables:
            self._close_table()

    def get_text(self) -> str:
        return " ".join("".join(self._text).split())

    def _close_cell(self, table: _OpenTable) -> None:
        if table.cell is None:
            return
        if table.row is not None:
            table.row.append("".join(table.cell).strip())
        table.cell = None

    def _close_row(self, table: _OpenTable) -> None:
        self._close_cell(table)
        if table.row:
            self.items.append(("row", table.row))
        table.row = None

    def _close_table(self) -> None:
        depth = len(self._tables)
        self._close_row(self._tables.pop())
        self.items.append(("end_table", depth))


@dataclass
class ParsedWorkHours:
    year: int
    months: dict[int, dict[int, float]]
    printed_total: float | None
    warnings: list[str] = field(default_factory=list)

    @property
    def total(self) -> float:
        return sum(sum(days.values()) for days in self.months.values())

    def to_json(self) -> dict[str, object]:
        return {
            "year": self.year,
            "months": {
                str(month): {str(day): _json_number(hours) for day, hours in sorted(days.items())}
                for month, days in sorted(self.months.items())
            },
        }


def _json_number(value: float) -> int | float:
    return int(value) if float(value).is_integer() else value


def parse_day(text: str) -> int | None:
    match = _LEADING_INT_RE.match(text)
    return int(match.group(1)) if match else None


def parse_hours(text: str) -> float | None:
    text = text.strip().replace(",", ".")
    if not text:
        return 0.0
    match = _LEADING_NUMBER_RE.match(text)
    return float(match.group(1)) if match else None


def parse_year(items: list[tuple[str, object]]) -> int | None:
    for kind, value in items:
        if kind == "bold" and YEAR_HEADING in str(value).lower():
            match = re.search(r"\d{4}", str(value))
            if match:
                return int(match.group(0))
    return None


def parse_printed_total(text: str) -> float | None:
    match = _TOTAL_RE.search(text)
    return float(match.group(1).replace(",", ".")) if match else None


def parse_work_hours_html(
    html: str,
    month_names: tuple[str, ...],
    max_work_hours: float = DEFAULT_MAX_WORK_HOURS,
) -> ParsedWorkHours:
    parser = _WorkHoursHTMLParser()
    parser.feed(html)
    parser.close()

    year = parse_year(parser.items)
    if year is None:
        raise ValueError("Could not parse the year from the document")

    lookup = {name.lower(): index + 1 for index, name in enumerate(month_names)}
    months: dict[int, dict[int, float]] = {}
    hour_warnings: list[str] = []
    current: int | None = None
    # Depth of the table that holds the current month's rows.
    month_depth: int | None = None
    depth = 0

    for kind, value in parser.items:
        if kind == "bold":
            month = lookup.get(str(value).strip().lower())
            if month is not None:
                current = month
                month_depth = None
                months.setdefault(month, {})
            continue
        if kind == "table":
            depth = int(value)
            if current is not None and month_depth is None:
                month_depth = depth
            continue
        if kind == "end_table":
            if value == month_depth:
                current = None
                month_depth = None
            depth = int(value) - 1
            continue
        if current is None or depth != month_depth:
            continue
        if not isinstance(value, list) or len(value) < 4:
            continue
        day = parse_day(value[0])
        if day is None:
            continue
        label = month_names[current - 1]
        if not 1 <= day <= days_in_month(year, current):
            hour_warnings.append(f"{label} day {day} does not exist in {year}, row ignored")
            continue
        hours = parse_hours(value[2])
        if hours is None:
            hour_warnings.append(f"{label} day {day} has unreadable hours {value[2]!r}, using 0")
            hours = 0.0
        months[current][day] = hours
        if hours > max_work_hours:
            hour_warnings.append(
                f"{label} day {day} exceeds max allowed work hours "
                f"({format_hours(hours)} > {format_hours(max_work_hours)})"
            )

    day_warnings = []
    for month, days in sorted(months.items()):
        expected = days_in_month(year, month)
        if len(days) != expected:
            day_warnings.append(f"{month_names[month - 1]} has {len(days)} days, expected {expected}")

    return ParsedWorkHours(
        year=year,
        months=months,
        printed_total=parse_printed_total(parser.get_text()),
        warnings=day_warnings + hour_warnings,
    )


def check_total(parsed: ParsedWorkHours) -> str | None:
    if parsed.printed_total is None:
        return f'Could not find "{TOTAL_LABEL}" in the document'
    if abs(parsed.total - parsed.printed_total) > SUM_TOLERANCE:
        return (
            f"Parsed work hours ({format_hours(parsed.total)}) do not match "
            f'"{TOTAL_LABEL}" ({format_hours(parsed.printed_total)})'
        )
    return None


def convert_file(
    path: Path,
    output_dir: Path,
    month_names: tuple[str, ...],
    max_work_hours: float,
) -> Path:
    parsed = parse_work_hours_html(path.read_text(encoding="utf-8"), month_names, max_work_hours)
    print(f"Parsed year from HTML: {parsed.year}")

    output_path = output_dir / f"work_hours_{parsed.year}.json"
    output_path.write_text(
        json.dumps(parsed.to_json(), indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
    )
    print(f"JSON file created: {output_path}")

    for warning in parsed.warnings:
        print(f"Warning: {path.name}: {warning}")
    mismatch = check_total(parsed)
    if mismatch:
        print(f"Warning: {path.name}: {mismatch}")
    else:
        print(f"Validation passed: parsed work hours ({format_hours(parsed.total)}) match the printed total")
    return output_path


def build_parser() -> FlagParser:
    parser = FlagParser(description="Convert work hours reference tables (HTML) to yearly JSON records.")
    parser.add_argument(
        "-inputFolder",
        dest="input_folder",
        type=Path,
        required=True,
        help="Folder with .html reference tables",
    )
    parser.add_argument(
        "-maxWorkHours",
        dest="max_work_hours",
        default=None,
        help=f"Warn about days above this many hours (default {DEFAULT_MAX_WORK_HOURS})",
    )
    parser.add_argument(
        "-outputFolder",
        dest="output_folder",
        type=Path,
        default=None,
        help="Folder to write JSON files to (default output/work_hours)",
    )
    parser.add_argument(
        "-config",
        dest="config",
        type=Path,
        default=None,
        help="YAML config file (optional)",
    )
    return parser


def parse_max_work_hours(value: object) -> int:
    try:
        return int(str(value).strip())
    except ValueError:
        raise ConfigurationError("maxWorkHours must be a valid integer.") from None


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config, config_base = read_config(args.config)
        input_folder = Path(args.input_folder)
        if not input_folder.is_dir():
            raise ConfigurationError(f"Input folder not found or is not a directory: {input_folder}")
        max_value = args.max_work_hours if args.max_work_hours is not None else config.get("max_work_hours")
        max_work_hours = DEFAULT_MAX_WORK_HOURS if max_value is None else parse_max_work_hours(max_value)
        language = find_language(
            str(config.get("source_language") or DEFAULT_SOURCE_LANGUAGE),
            load_languages(config.get("languages")),
        )
        output_dir = (
            args.output_folder
            or resolve_config_path(config.get("work_hours_dir"), config_base)
            or DEFAULT_WORK_HOURS_DIR
        )
        files = sorted(
            path for path in input_folder.iterdir() if path.is_file() and path.suffix.lower() == ".html"
        )
        if not files:
            raise ConfigurationError(f"No HTML files found in the input folder: {input_folder}")
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    Path(output_dir).mkdir(parents=True, exist_ok=True)
    for path in files:
        print(f"Processing file: {path}")
        try:
            convert_file(path, Path(output_dir), language.month_names, max_work_hours)
        except ValueError as exc:
            print(f"Error: {path.name}: {exc}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
