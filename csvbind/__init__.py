"""
csvbind: read and write CSV records as typed Python objects (stdlib-only).

Contract:
- Parsing is RFC 4180 / Excel compatible: any-length delimiter, a single
  quote character, "" escapes inside quoted fields (or a separate escape
  character), CRLF / CR / LF line ends, optional comment lines, an optional
  leading "sep=" line and optional blank trimming (TrimOptions).
- Malformed quoting never stops the parser: the field text is kept
  literally and reported as bad data (raise, callback, or a logged warning).
- Records bind to classes through ClassMaps:
    explicit ClassMap subclasses (fluent),
    Annotated[T, Column(...)] / Annotated[T, Reference(...)] declarations,
    or plain auto-mapping of public annotated members.
  Nested objects map through ReferenceMaps with optional header prefixes.
  list/tuple/set members span repeated same-name columns or an index range.
- Header names are matched after prepare_header_for_match; an explicit
  index always wins over names; name_index picks among duplicate headers.
- Conversion goes through a TypeConverterRegistry; per-member options
  (culture, formats, styles, boolean and null spellings) override
  registry options, which override the configuration culture.
- Compiled binders/serializers are cached per type until cleared.
- Errors: every failure raises a CsvBindError subclass carrying
  row/col/column/member/value/raw_record context.
- Writing: None -> "", bool -> true/false, float -> repr(f),
  datetime -> isoformat() (invariant culture).

API:
- CsvReader(f, config) -> read(), read_header(), get_field(),
  try_get_field(), get_record(T), get_records(T)
- CsvWriter(f, config) -> write_field(), next_record(), write_header(T),
  write_record(obj), write_records(objs)
- CsvParser(f, config) -> iterator of RawRecord

Python: 3.10+
"""

from __future__ import annotations

from .binder import RecordBinder, RecordCache, Row
from .configuration import Configuration
from .converters import (
    BoolConverter,
    BytesConverter,
    DateConverter,
    DateTimeConverter,
    DateTimeStyle,
    DecimalConverter,
    EnumConverter,
    FloatConverter,
    FunctionConverter,
    IntConverter,
    NullableConverter,
    NumberStyle,
    StrConverter,
    TimeConverter,
    TimeDeltaConverter,
    TypeConverter,
    TypeConverterOptions,
    TypeConverterRegistry,
    UUIDConverter,
)
from .culture import INVARIANT, Culture, get_culture, register_culture
from .errors import (
    BadDataError,
    ConfigurationError,
    ConstructionError,
    CsvBindError,
    FieldValidationError,
    HeaderValidationError,
    MissingFieldError,
    TypeConversionError,
)
from .mapping import (
    ClassMap,
    ClassMapRegistry,
    Column,
    MemberMap,
    Reference,
    ReferenceMap,
    csv_record,
)
from .parser import BadDataContext, CsvParser, RawRecord, TrimOptions
from .reader import CsvReader
from .serializer import RecordSerializer
from .writer import CsvWriter

__version__ = "0.1.0"

__all__ = [
    "CsvReader",
    "CsvWriter",
    "CsvParser",
    "RawRecord",
    "BadDataContext",
    "TrimOptions",
    "Configuration",
    "ClassMap",
    "ClassMapRegistry",
    "MemberMap",
    "ReferenceMap",
    "Column",
    "Reference",
    "csv_record",
    "Row",
    "RecordBinder",
    "RecordSerializer",
    "RecordCache",
    "TypeConverter",
    "TypeConverterOptions",
    "TypeConverterRegistry",
    "FunctionConverter",
    "StrConverter",
    "IntConverter",
    "FloatConverter",
    "DecimalConverter",
    "BoolConverter",
    "DateTimeConverter",
    "DateConverter",
    "TimeConverter",
    "TimeDeltaConverter",
    "UUIDConverter",
    "BytesConverter",
    "EnumConverter",
    "NullableConverter",
    "NumberStyle",
    "DateTimeStyle",
    "Culture",
    "INVARIANT",
    "get_culture",
    "register_culture",
    "CsvBindError",
    "ConfigurationError",
    "BadDataError",
    "HeaderValidationError",
    "MissingFieldError",
    "TypeConversionError",
    "FieldValidationError",
    "ConstructionError",
]
