"""Country and constituency normalization.

Upstream sources (the photo app, Photon, Nominatim, the precomputed export)
spell countries inconsistently: English or local-language names, ISO alpha-2
or alpha-3 codes, legacy names ("Swaziland"), abbreviations ("U.S.A."). The
:class:`CountryNormalizer` folds all of those onto one canonical English
display name and an alpha-2 code so records group together.

Lookup tables are built lazily from pycountry (names plus its iso3166-1
gettext catalogs for the locale reverse index) and are owned by the
normalizer instance, which is created once per session and passed around.
"""

from __future__ import annotations

import gettext
import re
from functools import cached_property
from typing import Any, Mapping, Optional

import pycountry

from ppd.models import UNKNOWN_COUNTRY_LABEL, UNKNOWN_LOCATION_LABEL, LocationEntry
from ppd.utils.logging import get_logger
from ppd.utils.text import as_text, lookup_key, normalize_whitespace


logger = get_logger(__name__)

# Locales whose region names are indexed back to English.
LOCALE_HINTS: tuple[str, ...] = (
    "es", "fr", "de", "it", "pt", "nl", "da", "sv", "nb", "fi",
    "pl", "cs", "sk", "sl", "hr", "hu", "ro", "bg", "el", "tr",
    "ru", "uk", "sr", "mk", "sq", "hy", "ka", "az", "he", "ar", "fa",
    "hi", "bn", "ur", "th", "vi", "id", "ms", "zh_CN", "ja", "ko",
)

# Short English display names where pycountry only carries the formal one.
DISPLAY_NAME_OVERRIDES: dict[str, str] = {
    "BN": "Brunei",
    "CD": "Congo - Kinshasa",
    "CG": "Congo - Brazzaville",
    "CV": "Cape Verde",
    "FK": "Falkland Islands (Islas Malvinas)",
    "FM": "Micronesia",
    "HK": "Hong Kong",
    "MO": "Macao",
    "PS": "Palestine",
    "RU": "Russia",
    "VA": "Vatican City",
    "WF": "Wallis & Futuna",
    "XK": "Kosovo",
}

# Known non-standard spellings, keyed by lookup key.
NAME_ALIASES: dict[str, str] = {
    "usa": "US",
    "u s a": "US",
    "us": "US",
    "u s": "US",
    "united states of america": "US",
    "uk": "GB",
    "u k": "GB",
    "great britain": "GB",
    "uae": "AE",
    "czech republic": "CZ",
    "ivory coast": "CI",
    "cote divoire": "CI",
    "cote d ivoire": "CI",
    "cabo verde": "CV",
    "swaziland": "SZ",
    "east timor": "TL",
    "timor leste": "TL",
    "turkey": "TR",
    "turkiye": "TR",
    "congo kinshasa": "CD",
    "congo brazzaville": "CG",
    "brunei darussalam": "BN",
    "kosovo": "XK",
    "vatican city": "VA",
    "curacao": "CW",
    "reunion": "RE",
}

# Everyday local-language names for countries whose catalog entry is the
# formal name ("Российская Федерация" but not "Россия"). Keyed by raw name.
LOCALIZED_SHORT_NAMES: dict[str, str] = {
    "Россия": "RU",
    "Rusia": "RU",
    "Russland": "RU",
    "Russie": "RU",
    "Rússia": "RU",
    "Rosja": "RU",
    "Irán": "IR",
    "Иран": "IR",
    "Siria": "SY",
    "Syrien": "SY",
    "Syrie": "SY",
    "Сирия": "SY",
    "Corea del Sur": "KR",
    "Südkorea": "KR",
    "Corée du Sud": "KR",
    "Coreia do Sul": "KR",
    "Южная Корея": "KR",
    "대한민국": "KR",
    "Corea del Norte": "KP",
    "Nordkorea": "KP",
    "Corée du Nord": "KP",
    "Tanzanie": "TZ",
    "Tansania": "TZ",
    "Bolivie": "BO",
    "Bolivien": "BO",
    "Moldavie": "MD",
    "Moldawien": "MD",
    "Молдова": "MD",
    "Laos": "LA",
    "Taïwan": "TW",
    "Taiwán": "TW",
    "台灣": "TW",
    "Vietnam": "VN",
    "Viêt Nam": "VN",
    "Việt Nam": "VN",
    "Chequia": "CZ",
    "Tschechien": "CZ",
    "Tchéquie": "CZ",
    "Česko": "CZ",
    "Niederlande": "NL",
    "Países Bajos": "NL",
    "Pays-Bas": "NL",
    "Nederland": "NL",
    "Venezuela": "VE",
    "Palästina": "PS",
}

COUNTRY_CODE_ALIASES: dict[str, str] = {"UK": "GB"}

PLACEHOLDER_KEYS = frozenset(
    {"", "unknown", "unknown country", "unknown location", "n a", "na", "none", "null", "undefined"}
)

_ALPHA2 = re.compile(r"^[A-Z]{2}$")
_ALPHA3 = re.compile(r"^[A-Z]{3}$")


def normalize_country_code(country_code: Any) -> str:
    """Return an alpha-2 code, converting alpha-3 codes; "" when not derivable."""
    code = as_text(country_code).strip().upper()
    code = COUNTRY_CODE_ALIASES.get(code, code)
    if _ALPHA2.match(code):
        return code
    if _ALPHA3.match(code):
        country = pycountry.countries.get(alpha_3=code)
        if country is not None:
            return country.alpha_2
    return ""


def country_group_key(country: str, country_code: str) -> str:
    """Group key: the code when known, otherwise the lower-cased name."""
    code = normalize_country_code(country_code)
    if code:
        return f"cc:{code}"
    return f"nm:{normalize_whitespace(as_text(country)).lower() or UNKNOWN_COUNTRY_LABEL.lower()}"


def normalize_constituency(value: Any, country: str = "") -> str:
    """Trim/collapse a constituency name; placeholders and country duplicates become ""."""
    text = normalize_whitespace(as_text(value))
    key = lookup_key(text)
    if key in PLACEHOLDER_KEYS:
        return ""
    if country and key == lookup_key(country):
        return ""
    return text


def constituency_group_key(country_key: str, constituency: str) -> str:
    if not constituency:
        return ""
    return f"{country_key}|{lookup_key(constituency)}"


def parse_country_from_label(label: Any) -> str:
    """``"Leeds, United Kingdom"`` -> ``"United Kingdom"``."""
    raw = as_text(label).strip()
    if not raw or lookup_key(raw) in PLACEHOLDER_KEYS:
        return UNKNOWN_COUNTRY_LABEL
    if "," in raw:
        parts = [part.strip() for part in raw.split(",") if part.strip()]
        return parts[-1] if parts else UNKNOWN_COUNTRY_LABEL
    return raw


def country_code_to_flag(country_code: Any) -> str:
    code = normalize_country_code(country_code)
    if not code:
        return "\U0001F30D"
    return "".join(chr(127397 + ord(char)) for char in code)


def format_location_label(country: str, constituency: str) -> str:
    if country == UNKNOWN_COUNTRY_LABEL:
        return UNKNOWN_LOCATION_LABEL
    if constituency:
        return f"{constituency}, {country}"
    return country


class CountryNormalizer:
    """Canonicalizes country names and codes using lazily built lookups."""

    def __init__(self, locales: tuple[str, ...] = LOCALE_HINTS) -> None:
        self.locales = locales

    @cached_property
    def english_by_code(self) -> dict[str, str]:
        names: dict[str, str] = {}
        for country in pycountry.countries:
            names[country.alpha_2] = (
                DISPLAY_NAME_OVERRIDES.get(country.alpha_2)
                or getattr(country, "common_name", None)
                or country.name
            )
        for code, name in DISPLAY_NAME_OVERRIDES.items():
            names.setdefault(code, name)
        return names

    @cached_property
    def code_by_key(self) -> dict[str, str]:
        index: dict[str, str] = {}

        # Localized names first; English names and aliases below take precedence.
        for locale in self.locales:
            translation = self._translation(locale)
            if translation is None:
                continue
            for country in pycountry.countries:
                for source in _english_variants(country):
                    localized = translation.gettext(source)
                    if localized and localized != source:
                        index.setdefault(lookup_key(localized), country.alpha_2)

        for country in pycountry.countries:
            for source in _english_variants(country):
                index[lookup_key(source)] = country.alpha_2

        for code, name in self.english_by_code.items():
            index[lookup_key(name)] = code

        for name, code in LOCALIZED_SHORT_NAMES.items():
            index[lookup_key(name)] = code

        index.update(NAME_ALIASES)
        index.pop("", None)
        logger.debug("normalize.index.built keys=%s", len(index))
        return index

    @staticmethod
    def _translation(locale: str) -> Optional[gettext.NullTranslations]:
        try:
            return gettext.translation("iso3166-1", pycountry.LOCALES_DIR, languages=[locale])
        except OSError:
            logger.debug("normalize.locale.missing locale=%s", locale)
            return None

    def normalize_country_name(self, country: Any) -> str:
        """Return the canonical English name, or the sentinel for empty/unknown input.

        Names that cannot be matched pass through whitespace-collapsed.
        """
        raw = normalize_whitespace(as_text(country))
        key = lookup_key(raw)
        if key in PLACEHOLDER_KEYS:
            return UNKNOWN_COUNTRY_LABEL

        code = self.code_by_key.get(key)
        if code is None and len(raw) in (2, 3):
            # Bare ISO code such as "GB" or "DEU".
            code = normalize_country_code(raw) or None
        if code and code in self.english_by_code:
            return self.english_by_code[code]
        return raw

    def country_code_from_name(self, country: Any) -> str:
        name = self.normalize_country_name(country)
        if name == UNKNOWN_COUNTRY_LABEL:
            return ""
        return normalize_country_code(self.code_by_key.get(lookup_key(name), ""))

    def normalize_entry(self, entry: Any) -> LocationEntry:
        """Normalize a persisted or freshly resolved entry into a LocationEntry.

        Accepts a LocationEntry, a mapping with label/country/countryCode/
        constituency keys, or a legacy ``"City, Country"`` string.
        """
        if isinstance(entry, LocationEntry):
            entry = entry.model_dump(by_alias=True)

        if not entry:
            return LocationEntry()

        if isinstance(entry, str):
            country = self.normalize_country_name(parse_country_from_label(entry))
            return LocationEntry(
                label=entry.strip() or UNKNOWN_LOCATION_LABEL,
                country=country,
                country_code=self.country_code_from_name(country),
            )

        if not isinstance(entry, Mapping):
            return LocationEntry()

        label = as_text(entry.get("label")).strip() or UNKNOWN_LOCATION_LABEL
        country = self.normalize_country_name(entry.get("country") or parse_country_from_label(label))
        if country == UNKNOWN_COUNTRY_LABEL:
            return LocationEntry(label=label)

        country_code = normalize_country_code(
            entry.get("countryCode", entry.get("country_code"))
        ) or self.country_code_from_name(country)
        constituency = normalize_constituency(entry.get("constituency"), country)
        return LocationEntry(
            label=label,
            country=country,
            country_code=country_code,
            constituency=constituency,
        )


def _english_variants(country: Any) -> list[str]:
    variants = [country.name]
    for attr in ("common_name", "official_name"):
        value = getattr(country, attr, None)
        if value:
            variants.append(value)
    return variants
