"""
Culture tables: the locale-dependent pieces of number, date and boolean text.

Cultures are looked up by locale id ("de-DE"); "" is the invariant culture.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

from .errors import ConfigurationError


@dataclass(frozen=True)
class Culture:
    name: str
    decimal_separator: str = "."
    group_separator: str = ","
    currency_symbol: str = "¤"
    # strptime/strftime patterns, tried in order; the first one is used for writing
    date_formats: Tuple[str, ...] = ("%Y-%m-%d",)
    time_formats: Tuple[str, ...] = ("%H:%M:%S", "%H:%M")
    datetime_formats: Tuple[str, ...] = ("%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S")
    true_names: Tuple[str, ...] = ("true",)
    false_names: Tuple[str, ...] = ("false",)


INVARIANT = Culture(name="")

_CULTURES: Dict[str, Culture] = {}


def register_culture(culture: Culture) -> Culture:
    _CULTURES[culture.name.lower()] = culture
    return culture


def get_culture(name: str) -> Culture:
    """Find a culture by id, falling back from "xx-YY" to "xx"."""
    key = (name or "").strip().lower().replace("_", "-")
    if key in _CULTURES:
        return _CULTURES[key]
    lang = key.split("-", 1)[0]
    if lang in _CULTURES:
        return _CULTURES[lang]
    for k, c in _CULTURES.items():
        if k.split("-", 1)[0] == lang:
            return c
    raise ConfigurationError(f"Unknown culture: {name!r}")


register_culture(INVARIANT)
register_culture(Culture(
    name="en-US",
    currency_symbol="$",
    date_formats=("%m/%d/%Y", "%Y-%m-%d"),
    time_formats=("%I:%M:%S %p", "%I:%M %p", "%H:%M:%S"),
    datetime_formats=("%m/%d/%Y %I:%M:%S %p", "%m/%d/%Y %H:%M:%S", "%m/%d/%Y %H:%M", "%Y-%m-%dT%H:%M:%S"),
))
register_culture(Culture(
    name="en-GB",
    currency_symbol="£",
    date_formats=("%d/%m/%Y", "%Y-%m-%d"),
    datetime_formats=("%d/%m/%Y %H:%M:%S", "%d/%m/%Y %H:%M", "%Y-%m-%dT%H:%M:%S"),
))
register_culture(Culture(
    name="de-DE",
    decimal_separator=",",
    group_separator=".",
    currency_symbol="€",
    date_formats=("%d.%m.%Y",),
    datetime_formats=("%d.%m.%Y %H:%M:%S", "%d.%m.%Y %H:%M"),
    true_names=("true", "wahr"),
    false_names=("false", "falsch"),
))
register_culture(Culture(
    name="fr-FR",
    decimal_separator=",",
    group_separator=" ",
    currency_symbol="€",
    date_formats=("%d/%m/%Y",),
    datetime_formats=("%d/%m/%Y %H:%M:%S", "%d/%m/%Y %H:%M"),
    true_names=("true", "vrai"),
    false_names=("false", "faux"),
))
register_culture(Culture(
    name="es-ES",
    decimal_separator=",",
    group_separator=".",
    currency_symbol="€",
    date_formats=("%d/%m/%Y",),
    datetime_formats=("%d/%m/%Y %H:%M:%S", "%d/%m/%Y %H:%M"),
    true_names=("true", "verdadero"),
    false_names=("false", "falso"),
))
register_culture(Culture(
    name="it-IT",
    decimal_separator=",",
    group_separator=".",
    currency_symbol="€",
    date_formats=("%d/%m/%Y",),
    datetime_formats=("%d/%m/%Y %H:%M:%S", "%d/%m/%Y %H:%M"),
    true_names=("true", "vero"),
    false_names=("false", "falso"),
))
register_culture(Culture(
    name="nl-NL",
    decimal_separator=",",
    group_separator=".",
    currency_symbol="€",
    date_formats=("%d-%m-%Y",),
    datetime_formats=("%d-%m-%Y %H:%M:%S", "%d-%m-%Y %H:%M"),
    true_names=("true", "waar"),
    false_names=("false", "onwaar"),
))
register_culture(Culture(
    name="pt-BR",
    decimal_separator=",",
    group_separator=".",
    currency_symbol="R$",
    date_formats=("%d/%m/%Y",),
    datetime_formats=("%d/%m/%Y %H:%M:%S", "%d/%m/%Y %H:%M"),
    true_names=("true", "verdadeiro"),
    false_names=("false", "falso"),
))
register_culture(Culture(
    name="ja-JP",
    currency_symbol="¥",
    date_formats=("%Y/%m/%d",),
    datetime_formats=("%Y/%m/%d %H:%M:%S", "%Y/%m/%d %H:%M"),
))
