"""Country code helpers shared by the matcher and the calculator."""

from __future__ import annotations

import pycountry

EU_TOKEN = "EU"

# EU member states as of 2024.
EU_COUNTRIES: frozenset[str] = frozenset(
    {
        "AT", "BE", "BG", "HR", "CY", "CZ", "DK", "EE", "FI",
        "FR", "DE", "GR", "HU", "IE", "IT", "LV", "LT", "LU",
        "MT", "NL", "PL", "PT", "RO", "SK", "SI", "ES", "SE",
    }
)


def normalize_country(value: object) -> str:
    """Return an upper-cased, stripped country code or an empty string."""

    if not isinstance(value, str):
        return ""
    return value.strip().upper()


def is_eu_country(code: str) -> bool:
    return normalize_country(code) in EU_COUNTRIES


def country_matches(rule_country: str, country: str) -> bool:
    """Check one side of a rule's country gate.

    An empty rule country is a wildcard, ``EU`` admits any member state and
    anything else must equal the shipment country exactly.
    """

    if not rule_country:
        return True
    if rule_country == EU_TOKEN:
        return country in EU_COUNTRIES
    return rule_country == country


def country_display_name(code: str) -> str:
    """Return the English short name for a country code, falling back to the code."""

    normalized = normalize_country(code)
    if not normalized:
        return ""
    if normalized == EU_TOKEN:
        return "European Union"
    try:
        country = pycountry.countries.get(alpha_2=normalized)
    except (KeyError, LookupError):
        country = None
    if country is None:
        return normalized
    return getattr(country, "common_name", None) or country.name
