"""
Type conversion: field text <-> typed values.

Converters are stateless; everything that varies per member (culture,
formats, styles, boolean and null spellings) travels in
TypeConverterOptions.
"""

from __future__ import annotations

import base64
import binascii
import enum
import re
import types
import typing
import uuid
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, Optional, Tuple, Type, Union

from .culture import INVARIANT, Culture, get_culture
from .errors import ConfigurationError


# ----------------------------
# Styles / options
# ----------------------------

class NumberStyle(enum.IntFlag):
    NONE = 0
    ALLOW_LEADING_WHITE = 1
    ALLOW_TRAILING_WHITE = 2
    ALLOW_LEADING_SIGN = 4
    ALLOW_TRAILING_SIGN = 8
    ALLOW_PARENTHESES = 16
    ALLOW_DECIMAL_POINT = 32
    ALLOW_THOUSANDS = 64
    ALLOW_EXPONENT = 128
    ALLOW_CURRENCY_SYMBOL = 256
    INTEGER = ALLOW_LEADING_WHITE | ALLOW_TRAILING_WHITE | ALLOW_LEADING_SIGN
    NUMBER = INTEGER | ALLOW_TRAILING_SIGN | ALLOW_DECIMAL_POINT | ALLOW_THOUSANDS
    FLOAT = INTEGER | ALLOW_DECIMAL_POINT | ALLOW_EXPONENT
    CURRENCY = NUMBER | ALLOW_PARENTHESES | ALLOW_CURRENCY_SYMBOL
    ANY = CURRENCY | ALLOW_EXPONENT


class DateTimeStyle(enum.IntFlag):
    NONE = 0
    ALLOW_LEADING_WHITE = 1
    ALLOW_TRAILING_WHITE = 2
    ALLOW_WHITE_SPACES = ALLOW_LEADING_WHITE | ALLOW_TRAILING_WHITE
    ASSUME_UNIVERSAL = 4     # naive values are taken as UTC
    ADJUST_TO_UNIVERSAL = 8  # aware values are converted to UTC


@dataclass(frozen=True)
class TypeConverterOptions:
    culture: Optional[str] = None
    formats: Tuple[str, ...] = ()
    number_style: Optional[NumberStyle] = None
    date_time_style: Optional[DateTimeStyle] = None
    true_values: Tuple[str, ...] = ()
    false_values: Tuple[str, ...] = ()
    null_values: Tuple[str, ...] = ()

    @classmethod
    def merge(cls, *sources: Optional["TypeConverterOptions"]) -> "TypeConverterOptions":
        """Later sources win, but only for the options they actually set."""
        merged = cls()
        for src in sources:
            if src is None:
                continue
            changes = {}
            for name in cls.__dataclass_fields__:
                v = getattr(src, name)
                if v is not None and v != ():
                    changes[name] = v
            merged = replace(merged, **changes)
        return merged

    def get_culture(self) -> Culture:
        return get_culture(self.culture) if self.culture else INVARIANT


# ----------------------------
# typing helpers
# ----------------------------

_UNION_TYPES: Tuple[Any, ...] = (typing.Union,)
if hasattr(types, "UnionType"):
    _UNION_TYPES += (types.UnionType,)


def strip_annotated(tp: Any) -> Tuple[Any, Tuple[Any, ...]]:
    """Annotated[T, x, y] -> (T, (x, y)); anything else -> (tp, ())."""
    if typing.get_origin(tp) is typing.Annotated:
        return tp.__origin__, tuple(tp.__metadata__)
    return tp, ()


def optional_inner(tp: Any) -> Optional[Any]:
    """Optional[T] / T | None -> T; anything else -> None."""
    if typing.get_origin(tp) in _UNION_TYPES:
        args = [a for a in typing.get_args(tp) if a is not type(None)]
        if len(args) == 1 and len(typing.get_args(tp)) == 2:
            return args[0]
    return None


def type_default(tp: Any) -> Any:
    """The value a null field yields for a member of type tp."""
    tp, _ = strip_annotated(tp)
    if optional_inner(tp) is not None:
        return None
    if tp in (bool, int, float, str, Decimal, bytes):
        return tp()
    return None


_COLLECTION_ORIGINS = (list, tuple, set, frozenset)


def collection_element(tp: Any) -> Optional[Tuple[type, Any]]:
    """
    (collection class, element type) for list[T], tuple[T, ...], set[T] and
    frozenset[T] (bare classes hold str); None for anything else.
    """
    tp, _ = strip_annotated(tp)
    tp = optional_inner(tp) or tp
    if tp in _COLLECTION_ORIGINS:
        return tp, str
    origin = typing.get_origin(tp)
    if origin not in _COLLECTION_ORIGINS:
        return None
    args = typing.get_args(tp)
    if origin is tuple:
        if len(args) != 2 or args[1] is not Ellipsis:
            return None
        return tuple, args[0]
    return origin, (args[0] if args else str)


# ----------------------------
# Converters
# ----------------------------

class TypeConverter:
    """Base converter. Subclasses override from_text; to_text falls back to format()/str()."""

    def from_text(self, text: str, options: TypeConverterOptions) -> Any:
        raise ValueError(f"No conversion from text defined by {type(self).__name__}")

    def to_text(self, value: Any, options: TypeConverterOptions) -> str:
        if value is None:
            return ""
        for fmt in options.formats:
            try:
                return format(value, fmt)
            except (ValueError, TypeError):
                continue
        return str(value)


class FunctionConverter(TypeConverter):
    """Wraps a plain parse callable (and optional format callable) as a converter."""

    def __init__(self, parse: Callable[[str], Any], format: Optional[Callable[[Any], str]] = None) -> None:
        self._parse = parse
        self._format = format

    def from_text(self, text: str, options: TypeConverterOptions) -> Any:
        return self._parse(text)

    def to_text(self, value: Any, options: TypeConverterOptions) -> str:
        if value is None:
            return ""
        if self._format is None:
            return super().to_text(value, options)
        return self._format(value)


class StrConverter(TypeConverter):
    def from_text(self, text: str, options: TypeConverterOptions) -> Any:
        return text


_NUMBER_RE = re.compile(r"^(?P<int>\d*)(?:\.(?P<frac>\d*))?(?:[eE](?P<exp>[+-]?\d+))?$")
_SPECIAL_FLOATS = {"nan", "inf", "infinity"}


def _normalize_number(text: str, options: TypeConverterOptions, style: NumberStyle) -> str:
    """Reduce culture-formatted number text to Python literal syntax, enforcing style."""
    culture = options.get_culture()
    s = text
    if style & NumberStyle.ALLOW_LEADING_WHITE:
        s = s.lstrip()
    if style & NumberStyle.ALLOW_TRAILING_WHITE:
        s = s.rstrip()

    negative = False
    if style & NumberStyle.ALLOW_PARENTHESES and s.startswith("(") and s.endswith(")"):
        negative = True
        s = s[1:-1]
    if style & NumberStyle.ALLOW_CURRENCY_SYMBOL and culture.currency_symbol in s:
        s = s.replace(culture.currency_symbol, "", 1).strip()

    sign = ""
    if s[:1] in ("+", "-") and style & NumberStyle.ALLOW_LEADING_SIGN:
        sign, s = s[0], s[1:]
    elif s[-1:] in ("+", "-") and style & NumberStyle.ALLOW_TRAILING_SIGN:
        sign, s = s[-1], s[:-1]
    if sign and negative:
        raise ValueError(f"Invalid number: {text!r}")
    if negative:
        sign = "-"

    if style & NumberStyle.ALLOW_THOUSANDS:
        s = s.replace(culture.group_separator, "")
        if culture.group_separator == " ":
            s = s.replace("\xa0", "").replace("\u202f", "")
    if culture.decimal_separator != ".":
        if "." in s:
            raise ValueError(f"Invalid number for culture {culture.name!r}: {text!r}")
        s = s.replace(culture.decimal_separator, ".")

    if s.lower() in _SPECIAL_FLOATS:
        return sign + s.lower()
    m = _NUMBER_RE.match(s)
    if m is None or not (m.group("int") or m.group("frac")):
        raise ValueError(f"Invalid number: {text!r}")
    if m.group("frac") is not None and not style & NumberStyle.ALLOW_DECIMAL_POINT:
        raise ValueError(f"Decimal point not allowed: {text!r}")
    if m.group("exp") is not None and not style & NumberStyle.ALLOW_EXPONENT:
        raise ValueError(f"Exponent not allowed: {text!r}")
    return sign + s


def _localize_number(text: str, culture: Culture) -> str:
    if culture.decimal_separator == "." and culture.group_separator == ",":
        return text
    return text.replace(",", "\0").replace(".", culture.decimal_separator).replace("\0", culture.group_separator)


class _NumberConverter(TypeConverter):
    default_style = NumberStyle.FLOAT | NumberStyle.ALLOW_THOUSANDS

    def _parse(self, s: str) -> Any:
        raise NotImplementedError

    def _format_plain(self, value: Any) -> str:
        return str(value)

    def from_text(self, text: str, options: TypeConverterOptions) -> Any:
        style = options.number_style if options.number_style is not None else self.default_style
        return self._parse(_normalize_number(text, options, style))

    def to_text(self, value: Any, options: TypeConverterOptions) -> str:
        if value is None:
            return ""
        culture = options.get_culture()
        for fmt in options.formats:
            try:
                return _localize_number(format(value, fmt), culture)
            except (ValueError, TypeError):
                continue
        return _localize_number(self._format_plain(value), culture)


class IntConverter(_NumberConverter):
    default_style = NumberStyle.INTEGER

    def _parse(self, s: str) -> Any:
        if s.lstrip("+-").lower() in _SPECIAL_FLOATS:
            raise ValueError(f"Invalid integer: {s!r}")
        d = Decimal(s)
        if d != d.to_integral_value():
            raise ValueError(f"Invalid integer: {s!r}")
        return int(d)

    def _format_plain(self, value: Any) -> str:
        return str(int(value))


class FloatConverter(_NumberConverter):
    def _parse(self, s: str) -> Any:
        return float(s)

    def _format_plain(self, value: Any) -> str:
        return repr(float(value))


class DecimalConverter(_NumberConverter):
    default_style = NumberStyle.NUMBER | NumberStyle.ALLOW_EXPONENT

    def _parse(self, s: str) -> Any:
        try:
            return Decimal(s)
        except InvalidOperation as e:
            raise ValueError(f"Invalid decimal: {s!r}") from e


class BoolConverter(TypeConverter):
    def from_text(self, text: str, options: TypeConverterOptions) -> Any:
        s = text.strip().lower()
        if s in (v.strip().lower() for v in options.true_values):
            return True
        if s in (v.strip().lower() for v in options.false_values):
            return False
        culture = options.get_culture()
        if s in ("1",) + culture.true_names:
            return True
        if s in ("0",) + culture.false_names:
            return False
        raise ValueError(f"Invalid bool literal: {text!r}")

    def to_text(self, value: Any, options: TypeConverterOptions) -> str:
        if value is None:
            return ""
        if value:
            return options.true_values[0] if options.true_values else "true"
        return options.false_values[0] if options.false_values else "false"


def _strip_date_text(text: str, options: TypeConverterOptions) -> str:
    style = options.date_time_style
    if style is None:
        style = DateTimeStyle.ALLOW_WHITE_SPACES
    if style & DateTimeStyle.ALLOW_LEADING_WHITE:
        text = text.lstrip()
    if style & DateTimeStyle.ALLOW_TRAILING_WHITE:
        text = text.rstrip()
    return text


def _apply_utc_style(value: datetime, options: TypeConverterOptions) -> datetime:
    style = options.date_time_style or DateTimeStyle.NONE
    if value.tzinfo is None and style & DateTimeStyle.ASSUME_UNIVERSAL:
        value = value.replace(tzinfo=timezone.utc)
    elif value.tzinfo is not None and style & DateTimeStyle.ADJUST_TO_UNIVERSAL:
        value = value.astimezone(timezone.utc)
    return value


def _strptime_any(text: str, patterns: Iterable[str]) -> Optional[datetime]:
    for pattern in patterns:
        try:
            return datetime.strptime(text, pattern)
        except ValueError:
            continue
    return None


def _strftime_any(value: Any, patterns: Iterable[str]) -> Optional[str]:
    for pattern in patterns:
        try:
            return value.strftime(pattern)
        except ValueError:
            continue
    return None


class DateTimeConverter(TypeConverter):
    def from_text(self, text: str, options: TypeConverterOptions) -> Any:
        s = _strip_date_text(text, options)
        if options.formats:
            value = _strptime_any(s, options.formats)
            if value is None:
                raise ValueError(f"{text!r} does not match any of {list(options.formats)!r}")
            return _apply_utc_style(value, options)
        try:
            value = datetime.fromisoformat(s)
        except ValueError:
            culture = options.get_culture()
            value = _strptime_any(s, culture.datetime_formats + culture.date_formats)
            if value is None:
                raise ValueError(f"Invalid datetime: {text!r}")
        return _apply_utc_style(value, options)

    def to_text(self, value: Any, options: TypeConverterOptions) -> str:
        if value is None:
            return ""
        text = _strftime_any(value, options.formats)
        if text is not None:
            return text
        culture = options.get_culture()
        if culture is INVARIANT:
            return value.isoformat()
        return value.strftime(culture.datetime_formats[0])


class DateConverter(TypeConverter):
    def from_text(self, text: str, options: TypeConverterOptions) -> Any:
        s = _strip_date_text(text, options)
        patterns = options.formats
        if not patterns:
            try:
                return date.fromisoformat(s)
            except ValueError:
                patterns = options.get_culture().date_formats
        value = _strptime_any(s, patterns)
        if value is None:
            raise ValueError(f"Invalid date: {text!r}")
        return value.date()

    def to_text(self, value: Any, options: TypeConverterOptions) -> str:
        if value is None:
            return ""
        text = _strftime_any(value, options.formats)
        if text is not None:
            return text
        culture = options.get_culture()
        if culture is INVARIANT:
            return value.isoformat()
        return value.strftime(culture.date_formats[0])


class TimeConverter(TypeConverter):
    def from_text(self, text: str, options: TypeConverterOptions) -> Any:
        s = _strip_date_text(text, options)
        patterns = options.formats
        if not patterns:
            try:
                return time.fromisoformat(s)
            except ValueError:
                patterns = options.get_culture().time_formats
        value = _strptime_any(s, patterns)
        if value is None:
            raise ValueError(f"Invalid time: {text!r}")
        return value.time()

    def to_text(self, value: Any, options: TypeConverterOptions) -> str:
        if value is None:
            return ""
        text = _strftime_any(value, options.formats)
        return text if text is not None else value.isoformat()


_TIMEDELTA_PY_RE = re.compile(
    r"^(?:(?P<days>-?\d+) days?, )?(?P<h>\d+):(?P<m>\d\d):(?P<s>\d\d)(?:\.(?P<f>\d{1,6}))?$"
)
_TIMEDELTA_DOT_RE = re.compile(
    r"^(?P<sign>-)?(?:(?P<days>\d+)\.)?(?P<h>\d+):(?P<m>\d\d)(?::(?P<s>\d\d)(?:\.(?P<f>\d{1,7}))?)?$"
)


class TimeDeltaConverter(TypeConverter):
    """Accepts str(timedelta) output ("1 day, 2:03:04") and "[-][d.]hh:mm[:ss[.f]]"."""

    def from_text(self, text: str, options: TypeConverterOptions) -> Any:
        s = text.strip()
        m = _TIMEDELTA_PY_RE.match(s)
        sign = 1
        if m is None:
            m = _TIMEDELTA_DOT_RE.match(s)
            if m is None:
                raise ValueError(f"Invalid timedelta: {text!r}")
            if m.group("sign"):
                sign = -1
        frac = (m.group("f") or "")[:6].ljust(6, "0")
        clock = timedelta(
            hours=int(m.group("h")),
            minutes=int(m.group("m")),
            seconds=int(m.group("s") or 0),
            microseconds=int(frac),
        )
        days = timedelta(days=int(m.group("days") or 0))
        return sign * (days + clock)


class UUIDConverter(TypeConverter):
    def from_text(self, text: str, options: TypeConverterOptions) -> Any:
        return uuid.UUID(text.strip())


class BytesConverter(TypeConverter):
    """Hex by default ("0x" prefix optional); format "base64" switches encoding."""

    def from_text(self, text: str, options: TypeConverterOptions) -> Any:
        s = text.strip()
        if "base64" in options.formats:
            try:
                return base64.b64decode(s, validate=True)
            except binascii.Error as e:
                raise ValueError(f"Invalid base64: {text!r}") from e
        if s[:2].lower() == "0x":
            s = s[2:]
        return bytes.fromhex(s)

    def to_text(self, value: Any, options: TypeConverterOptions) -> str:
        if value is None:
            return ""
        if "base64" in options.formats:
            return base64.b64encode(value).decode("ascii")
        return bytes(value).hex()


class EnumConverter(TypeConverter):
    """Matches member names case-insensitively, then member values by their text."""

    def __init__(self, enum_type: Type[enum.Enum]) -> None:
        self.enum_type = enum_type

    def from_text(self, text: str, options: TypeConverterOptions) -> Any:
        s = text.strip()
        for member in self.enum_type:
            if member.name.lower() == s.lower():
                return member
        for member in self.enum_type:
            if str(member.value) == s:
                return member
        raise ValueError(f"{text!r} is not a valid {self.enum_type.__name__}")

    def to_text(self, value: Any, options: TypeConverterOptions) -> str:
        if value is None:
            return ""
        return value.name


class NullableConverter(TypeConverter):
    """Wraps the converter of T for Optional[T]: blank text reads as None."""

    def __init__(self, inner: TypeConverter) -> None:
        self.inner = inner

    def from_text(self, text: str, options: TypeConverterOptions) -> Any:
        if text.strip() == "":
            return None
        return self.inner.from_text(text, options)

    def to_text(self, value: Any, options: TypeConverterOptions) -> str:
        if value is None:
            return ""
        return self.inner.to_text(value, options)


# ----------------------------
# Registry
# ----------------------------

ConverterSpec = Union[TypeConverter, Type[TypeConverter]]


def as_converter(converter: ConverterSpec) -> TypeConverter:
    if isinstance(converter, TypeConverter):
        return converter
    if isinstance(converter, type) and issubclass(converter, TypeConverter):
        return converter()
    raise ConfigurationError(f"{converter!r} is not a TypeConverter")


class TypeConverterRegistry:
    """
    Resolves member types to converters.

    Resolution order: exact registered type, Enum subclasses, then the
    underlying type of Optional[T]. Explicit per-member converters are
    applied by the map, before the registry is consulted.
    """

    def __init__(self) -> None:
        self._converters: Dict[Any, TypeConverter] = {}
        self._options: Dict[Any, TypeConverterOptions] = {}
        self.register(str, StrConverter())
        self.register(int, IntConverter())
        self.register(float, FloatConverter())
        self.register(Decimal, DecimalConverter())
        self.register(bool, BoolConverter())
        self.register(datetime, DateTimeConverter())
        self.register(date, DateConverter())
        self.register(time, TimeConverter())
        self.register(timedelta, TimeDeltaConverter())
        self.register(uuid.UUID, UUIDConverter())
        self.register(bytes, BytesConverter())

    def register(self, tp: Any, converter: ConverterSpec) -> None:
        self._converters[tp] = as_converter(converter)

    def unregister(self, tp: Any) -> None:
        self._converters.pop(tp, None)

    def find(self, tp: Any) -> Optional[TypeConverter]:
        tp, _ = strip_annotated(tp)
        try:
            found = self._converters.get(tp)
        except TypeError:
            return None
        if found is not None:
            return found
        if isinstance(tp, type) and typing.get_origin(tp) is None and issubclass(tp, enum.Enum):
            converter = EnumConverter(tp)
            self._converters[tp] = converter
            return converter
        inner = optional_inner(tp)
        if inner is not None:
            inner_converter = self.find(inner)
            if inner_converter is not None:
                return NullableConverter(inner_converter)
        return None

    def resolve(self, tp: Any) -> TypeConverter:
        converter = self.find(tp)
        if converter is None:
            raise ConfigurationError(f"No type converter registered for {tp!r}")
        return converter

    def has_converter(self, tp: Any) -> bool:
        return self.find(tp) is not None

    def find_collection(self, tp: Any) -> Optional[Tuple[type, TypeConverter]]:
        """(collection class, element converter) when tp is a collection of a convertible type."""
        found = collection_element(tp)
        if found is None:
            return None
        factory, element = found
        converter = self.find(element)
        if converter is None:
            return None
        return factory, converter

    def options_for(self, tp: Any) -> TypeConverterOptions:
        tp, _ = strip_annotated(tp)
        inner = optional_inner(tp)
        return TypeConverterOptions.merge(
            self._options.get(inner) if inner is not None else None,
            self._options.get(tp),
        )

    def set_options(self, tp: Any, options: TypeConverterOptions) -> None:
        """Global options for every member of type tp; member options still win."""
        self._options[tp] = options
