"""CsvReader: parser + header + compiled binders."""

from __future__ import annotations

import logging
from typing import Any, Iterator, List, Optional, Tuple, Type, TypeVar, Union

from .binder import RecordBinder, Row
from .configuration import Configuration
from .converters import TypeConverterOptions
from .errors import CsvBindError, MissingFieldError, TypeConversionError
from .headers import HeaderIndex, validate_header
from .parser import CsvParser, RawRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CsvReader:
    """
    Reads records from a character source (anything with read(size) -> str).

    Typical use::

        reader = CsvReader(f)
        for person in reader.get_records(Person):
            ...

    or record by record with read(), read_header(), get_field() and
    get_record().
    """

    def __init__(self, source: Any, config: Optional[Configuration] = None, *, leave_open: bool = True) -> None:
        self.config = config if config is not None else Configuration()
        self.parser = CsvParser(source, self.config)
        self._source = source
        self._leave_open = leave_open
        self.record: Optional[RawRecord] = None
        self.header: Optional[List[str]] = None
        self._header_index: Optional[HeaderIndex] = None
        self._header_raw: Optional[str] = None

    def __enter__(self) -> "CsvReader":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def close(self) -> None:
        if not self._leave_open and hasattr(self._source, "close"):
            self._source.close()

    # ----------------------------
    # Position / raw introspection
    # ----------------------------

    @property
    def row(self) -> int:
        return self.parser.row

    @property
    def raw_row(self) -> int:
        return self.parser.raw_row

    @property
    def raw_record(self) -> str:
        return self.record.raw if self.record is not None else ""

    @property
    def char_position(self) -> int:
        return self.parser.char_position

    @property
    def byte_position(self) -> Optional[int]:
        return self.parser.byte_position

    # ----------------------------
    # Record-level API
    # ----------------------------

    def read(self) -> bool:
        """Advance to the next record; False at end of stream."""
        self.record = self.parser.read()
        return self.record is not None

    def read_header(self) -> bool:
        """Use the current record as the header."""
        if self.record is None:
            raise CsvBindError("No header record was found; call read() first")
        self.header = list(self.record.fields)
        self._header_index = HeaderIndex(self.header, self.config.prepare_header_for_match)
        self._header_raw = self.record.raw
        logger.debug("Read header %r", self.header)
        return True

    def validate_header(self, target: type) -> None:
        """Raise HeaderValidationError when required members of target have no column."""
        if self._header_index is None:
            raise CsvBindError("The header has not been read")
        class_map = self.config.maps.get(target, self.config)
        validate_header(class_map, self._header_index, raw_record=self._header_raw)

    def _row(self) -> Row:
        if self.record is None:
            raise CsvBindError("No record has been read; call read() first")
        return Row.from_record(self.record, self._header_index)

    def get_field(self, key: Union[int, str], type_: Optional[type] = None, name_index: int = 0) -> Any:
        """Field text by index or header name, converted to type_ when given."""
        row = self._row()
        text = row.get_field(key, name_index)
        if type_ is None:
            return text
        converter = self.config.converters.resolve(type_)
        options = TypeConverterOptions.merge(
            TypeConverterOptions(culture=self.config.culture or None),
            self.config.converters.options_for(type_),
        )
        try:
            return converter.from_text(text, options)
        except CsvBindError:
            raise
        except Exception as e:
            raise TypeConversionError(
                f"Cannot convert field to {getattr(type_, '__name__', type_)}: {e}",
                row=row.row, col=key if isinstance(key, int) else None,
                column=key if isinstance(key, str) else None,
                value=text, raw_record=row.raw_record,
            ) from e

    def try_get_field(self, key: Union[int, str], type_: Optional[type] = None, name_index: int = 0) -> Tuple[bool, Any]:
        """Like get_field, but (False, None) instead of raising for a missing or unconvertible field."""
        try:
            return True, self.get_field(key, type_, name_index)
        except (MissingFieldError, TypeConversionError):
            return False, None

    # ----------------------------
    # Binding
    # ----------------------------

    def _binder(self, target: type) -> RecordBinder:
        cache = self.config.record_cache
        binder = cache.binders.get(target)
        if binder is None:
            if self.config.has_header_record and self._header_index is None:
                raise CsvBindError("The header has not been read; call read() and read_header() first")
            if self.config.converters.has_converter(target):
                class_map = None
            else:
                class_map = self.config.maps.get(target, self.config)
            binder = RecordBinder(target, class_map, self.config, self._header_index, header_raw=self._header_raw)
            cache.binders[target] = binder
        return binder

    def get_record(self, target: Type[T]) -> T:
        """Bind the current record to a new instance of target."""
        row = self._row()
        return self._binder(target).bind(row)

    def get_records(self, target: Type[T]) -> Iterator[T]:
        """Yield every remaining record as target, reading and validating the header first."""
        if self.config.has_header_record and self._header_index is None:
            if not self.read():
                return
            self.read_header()
            self._binder(target)
        while self.read():
            yield self.get_record(target)

    # ----------------------------
    # Cache control
    # ----------------------------

    def clear_record_cache(self, target: Optional[type] = None) -> None:
        """Drop compiled binders so the next read re-resolves the map against the header."""
        self.config.record_cache.clear(target)

    def invalidate_record_cache(self, target: type) -> None:
        """Like clear_record_cache, and also forget the auto-built map for target."""
        self.config.record_cache.clear(target)
        self.config.maps.invalidate(target)
