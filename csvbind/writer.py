"""CsvWriter: field buffer + header + compiled serializers."""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional

from .configuration import Configuration
from .errors import ConfigurationError
from .serializer import RecordSerializer, format_record

logger = logging.getLogger(__name__)


class CsvWriter:
    """
    Writes records to a character sink (anything with write(str)).

    Typical use::

        writer = CsvWriter(f)
        writer.write_records(people)

    or field by field with write_field() and next_record().
    """

    def __init__(self, sink: Any, config: Optional[Configuration] = None, *, leave_open: bool = True) -> None:
        self.config = config if config is not None else Configuration()
        self.config.validate()
        self._sink = sink
        self._leave_open = leave_open
        self._fields: List[str] = []
        self._last_type: Optional[type] = None
        self._header_written = False
        self._separator_written = False
        self.row = 0

    def __enter__(self) -> "CsvWriter":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def flush(self) -> None:
        if hasattr(self._sink, "flush"):
            self._sink.flush()

    def close(self) -> None:
        self.flush()
        if not self._leave_open and hasattr(self._sink, "close"):
            self._sink.close()

    # ----------------------------
    # Field-level API
    # ----------------------------

    def write_field(self, value: Any) -> None:
        """
        Buffer one field of the current record; non-strings go through their
        converter. Mapped (multi-field) objects belong in write_record().
        """
        if value is None:
            text = ""
        elif isinstance(value, str):
            text = value
        else:
            serializer = self._serializer(type(value))
            if serializer.class_map is not None:
                raise ConfigurationError(
                    f"write_field() needs a single value; {type(value).__name__} is written with write_record()",
                    value=repr(value),
                )
            text = serializer.serialize(value)[0]
        self._fields.append(text)

    def next_record(self) -> None:
        """Write the buffered fields as one record and start a new one."""
        self._sink.write(format_record(self._fields, self.config))
        self._fields = []
        self.row += 1

    def write_excel_separator(self) -> None:
        self._sink.write("sep=" + self.config.delimiter + self.config.new_line)
        self._separator_written = True

    # ----------------------------
    # Records
    # ----------------------------

    def _serializer(self, target: type) -> RecordSerializer:
        cache = self.config.record_cache
        serializer = cache.serializers.get(target)
        if serializer is None:
            if self.config.converters.has_converter(target):
                class_map = None
            else:
                class_map = self.config.maps.get(target, self.config)
            serializer = RecordSerializer(target, class_map, self.config)
            cache.serializers[target] = serializer
            logger.debug("Writing %s records with %d field(s)", getattr(target, "__name__", target), serializer.field_count)
        return serializer

    def write_header(self, target: type) -> None:
        """Write the header record for target (nothing for scalar types)."""
        header = self._serializer(target).header
        if not header:
            return
        self._sink.write(format_record(header, self.config))
        self._header_written = True
        self.row += 1

    def write_record(self, record: Any, target: Optional[type] = None) -> None:
        """Write one record; a None record is written as empty fields of target."""
        if record is None:
            target = target or self._last_type
            if target is None:
                raise ConfigurationError("Cannot write a None record without a record type")
        else:
            target = target or type(record)
        self._last_type = target
        self._fields.extend(self._serializer(target).serialize(record))
        self.next_record()

    def write_records(self, records: Iterable[Any], target: Optional[type] = None) -> None:
        """
        Write every record, preceded by the Excel separator line and the
        header when configured and not already written.
        """
        if self.config.has_excel_separator and not self._separator_written:
            self.write_excel_separator()
        for record in records:
            record_type = target or (type(record) if record is not None else self._last_type)
            if (
                self.config.has_header_record
                and not self._header_written
                and record_type is not None
            ):
                self.write_header(record_type)
                self._header_written = True
            self.write_record(record, record_type)
        self.flush()

    # ----------------------------
    # Cache control
    # ----------------------------

    def clear_record_cache(self, target: Optional[type] = None) -> None:
        """Drop compiled serializers so the next write re-resolves the map."""
        self.config.record_cache.clear(target)

    def invalidate_record_cache(self, target: type) -> None:
        """Like clear_record_cache, and also forget the auto-built map for target."""
        self.config.record_cache.clear(target)
        self.config.maps.invalidate(target)
