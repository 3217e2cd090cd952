from __future__ import annotations

from dataclasses import dataclass


class ConfigurationError(ValueError):
    """Raised for unusable command-line or configuration input."""


@dataclass(frozen=True)
class LanguageProfile:
    code: str
    summary_template: str
    description_template: str
    month_total_template: str
    yearly_totals_template: str
    month_names: tuple[str, ...]

    def month_name(self, month: int) -> str:
        return self.month_names[month - 1]


ENGLISH = LanguageProfile(
    code="en",
    summary_template="Work Hours: ${hours}",
    description_template="Work hours for ${day} ${monthName}: ${hours} hours",
    month_total_template="Total work hours for ${monthName}: ${hours}",
    yearly_totals_template="Yearly totals:\n${monthlyTotals}\nTotal: ${yearTotalHours} hours",
    month_names=(
        "January", "February", "March", "April", "May", "June",
        "July", "August", "September", "October", "November", "December",
    ),
)

SWEDISH = LanguageProfile(
    code="sv",
    summary_template="Arbetstid: ${hours}",
    description_template="Arbetstid ${day} ${monthName}: ${hours} timmar",
    month_total_template="Totalt arbetade timmar för ${monthName}: ${hours}",
    yearly_totals_template="Årsvis sammanställning:\n${monthlyTotals}\nTotal: ${yearTotalHours} timmar",
    month_names=(
        "januari", "februari", "mars", "april", "maj", "juni",
        "juli", "augusti", "september", "oktober", "november", "december",
    ),
)

DEFAULT_LANGUAGES: tuple[LanguageProfile, ...] = (ENGLISH, SWEDISH)

_TEMPLATE_KEYS = (
    "summary_template",
    "description_template",
    "month_total_template",
    "yearly_totals_template",
)


def parse_language(entry: object) -> LanguageProfile:
    if not isinstance(entry, dict):
        raise ConfigurationError("languages must be a list of mappings")
    code = str(entry.get("code", "")).strip()
    if not code:
        raise ConfigurationError("language entry is missing a code")
    month_names = entry.get("month_names")
    if not isinstance(month_names, list) or len(month_names) != 12:
        raise ConfigurationError(f"language {code}: month_names must list 12 names")
    templates = {
        key: str(entry.get(key, getattr(ENGLISH, key)))
        for key in _TEMPLATE_KEYS
    }
    return LanguageProfile(
        code=code,
        month_names=tuple(str(name) for name in month_names),
        **templates,
    )


def load_languages(entries: object) -> tuple[LanguageProfile, ...]:
    """Language profiles from the ``languages`` config key, or the built-in catalog."""
    if not entries:
        return DEFAULT_LANGUAGES
    if not isinstance(entries, list):
        raise ConfigurationError("languages must be a list of mappings")
    profiles = tuple(parse_language(entry) for entry in entries)
    codes = [profile.code for profile in profiles]
    duplicates = sorted({code for code in codes if codes.count(code) > 1})
    if duplicates:
        raise ConfigurationError(f"duplicate language codes: {', '.join(duplicates)}")
    return profiles


def find_language(code: str, languages: tuple[LanguageProfile, ...] = DEFAULT_LANGUAGES) -> LanguageProfile:
    for profile in languages:
        if profile.code == code:
            return profile
    raise ConfigurationError(f"unknown language code: {code}")
