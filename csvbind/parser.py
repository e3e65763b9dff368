"""
Tokenizer: a buffered character-stream state machine turning delimited text
into RawRecords.

Quoting rules (Excel compatible):
- A quote opens a quoted field only as the first character of the field
  (after leading blanks when TrimOptions.TRIM is set).
- Inside a quoted field "" is a literal quote; a quote followed by the
  delimiter, a line end or EOF closes the field. With a distinct escape
  character, escape+quote and escape+escape are literals instead.
- Anything between a closing quote and the next delimiter/line end is kept
  literally but marks the field as bad data. So does a quote inside an
  unquoted field, and a quoted field left open at EOF.
- Records end on CRLF, CR or LF; the last record may lack a terminator.
"""

from __future__ import annotations

import codecs
import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterator, List, Optional, Tuple

from .errors import BadDataError

if TYPE_CHECKING:
    from .configuration import Configuration

logger = logging.getLogger(__name__)

# field states
_UNQUOTED = 0
_QUOTED = 1
_AFTER_QUOTE = 2

# field terminators
_DELIMITER = 0
_LINE_END = 1
_EOF = 2

_BLANK = " \t"


class TrimOptions(enum.IntFlag):
    """Blank trimming applied while reading fields."""

    NONE = 0
    TRIM = 1           # blanks around a field, outside any quotes
    INSIDE_QUOTES = 2  # blanks at the edges of quoted content


@dataclass(frozen=True)
class RawRecord:
    fields: Tuple[str, ...]
    raw: str                      # exact source text, including the line terminator
    row: int                      # 1-based record number (the header is row 1)
    raw_row: int                  # 1-based physical line the record ended on
    char_position: int            # characters consumed so far
    byte_position: Optional[int]  # bytes consumed so far, when count_bytes is set

    def __len__(self) -> int:
        return len(self.fields)

    def __getitem__(self, index: int) -> str:
        return self.fields[index]

    def __iter__(self) -> Iterator[str]:
        return iter(self.fields)


@dataclass(frozen=True)
class BadDataContext:
    """What the bad_data_found callback receives."""

    field: str       # raw text of the malformed field
    col: int
    row: int
    raw_row: int
    raw_record: str


class CsvParser:
    """Reads RawRecords from any object with a read(size) method returning str."""

    def __init__(self, reader: Any, config: Optional["Configuration"] = None) -> None:
        if config is None:
            from .configuration import Configuration

            config = Configuration()
        config.validate()
        self._reader = reader
        self._config = config

        self._buffer = ""
        self._pos = 0
        self._eof = False
        self._started = False

        self._raw: List[str] = []
        self._row = 0
        self._raw_row = 0
        self._char_position = 0
        self._byte_position = 0
        self._encoder = codecs.getincrementalencoder(config.encoding)() if config.count_bytes else None
        self._column_count: Optional[int] = None
        self.record: Optional[RawRecord] = None

    @property
    def config(self) -> "Configuration":
        return self._config

    @property
    def row(self) -> int:
        return self._row

    @property
    def raw_row(self) -> int:
        return self._raw_row

    @property
    def raw_record(self) -> str:
        return self.record.raw if self.record is not None else ""

    @property
    def char_position(self) -> int:
        return self._char_position

    @property
    def byte_position(self) -> Optional[int]:
        return self._byte_position if self._encoder is not None else None

    def __iter__(self) -> Iterator[RawRecord]:
        while True:
            record = self.read()
            if record is None:
                return
            yield record

    # ----------------------------
    # Buffer
    # ----------------------------

    def _fill(self, n: int) -> bool:
        """Make sure n characters are buffered past the cursor; False at EOF."""
        while len(self._buffer) - self._pos < n:
            if self._eof:
                return False
            chunk = self._reader.read(self._config.buffer_size)
            if not chunk:
                self._eof = True
                return False
            self._buffer = self._buffer[self._pos:] + chunk
            self._pos = 0
        return True

    def _peek(self, offset: int = 0) -> str:
        if not self._fill(offset + 1):
            return ""
        return self._buffer[self._pos + offset]

    def _at(self, text: str) -> bool:
        if not self._fill(len(text)):
            return False
        return self._buffer.startswith(text, self._pos)

    def _consume(self, n: int = 1) -> str:
        text = self._buffer[self._pos:self._pos + n]
        self._pos += len(text)
        self._raw.append(text)
        self._char_position += len(text)
        if self._encoder is not None:
            self._byte_position += len(self._encoder.encode(text))
        return text

    def _consume_line_end(self) -> str:
        c = self._consume()
        if c == "\r" and self._peek() == "\n":
            self._consume()
            return "\r\n"
        return c

    def _skip_line(self) -> None:
        while True:
            c = self._peek()
            if c == "":
                return
            if c in "\r\n":
                self._consume_line_end()
                return
            self._consume()

    # ----------------------------
    # Records
    # ----------------------------

    def read(self) -> Optional[RawRecord]:
        """Return the next record, or None at end of stream."""
        cfg = self._config
        if not self._started:
            self._started = True
            if cfg.has_excel_separator:
                self._read_excel_separator()

        while True:
            self._raw = []
            c = self._peek()
            if c == "":
                return None
            self._raw_row += 1
            if c in "\r\n":
                self._consume_line_end()
                if cfg.ignore_blank_lines:
                    continue
                return self._emit([""], [])
            if cfg.allow_comments and c == cfg.comment:
                self._skip_line()
                continue
            fields, bad = self._read_fields()
            return self._emit(fields, bad)

    def _read_excel_separator(self) -> None:
        if not self._at("sep="):
            return
        self._raw = []
        self._raw_row += 1
        self._consume(4)
        chars = []
        while True:
            c = self._peek()
            if c == "" or c in "\r\n":
                break
            chars.append(self._consume())
        if c:
            self._consume_line_end()
        delimiter = "".join(chars)
        if delimiter:
            logger.debug("Excel separator line sets delimiter to %r", delimiter)
            self._config.delimiter = delimiter
            self._config.validate()

    def _read_fields(self) -> Tuple[List[str], List[Tuple[int, str]]]:
        fields: List[str] = []
        bad: List[Tuple[int, str]] = []
        while True:
            value, raw, is_bad, end = self._read_field()
            if is_bad:
                bad.append((len(fields), raw))
            fields.append(value)
            if end != _DELIMITER:
                return fields, bad

    def _read_field(self) -> Tuple[str, str, bool, int]:
        cfg = self._config
        delimiter = cfg.delimiter
        first = delimiter[0]
        quote = cfg.quote
        escape = cfg.escape_char
        trim = cfg.trim_options & TrimOptions.TRIM
        blank = "".join(c for c in _BLANK if c not in delimiter)
        start = len(self._raw)
        chars: List[str] = []
        bad = False
        quoted_end = 0

        if trim:
            while True:
                c = self._peek()
                if c == "" or c not in blank:
                    break
                self._consume()

        state = _UNQUOTED
        if self._peek() == quote:
            self._consume()
            state = _QUOTED

        while True:
            c = self._peek()
            if c == "":
                if state == _QUOTED:
                    bad = True
                value = self._trimmed(chars, state, quoted_end, blank)
                return value, "".join(self._raw[start:]), bad, _EOF

            if state == _QUOTED:
                if c == escape and escape != quote:
                    if self._peek(1) in (quote, escape):
                        self._consume()
                        chars.append(self._consume())
                        continue
                elif c == quote:
                    self._consume()
                    if escape == quote and self._peek() == quote:
                        chars.append(self._consume())
                    else:
                        state = _AFTER_QUOTE
                        quoted_end = len(chars)
                    continue
                if c in "\r\n":
                    chars.append(self._consume_line_end())
                    self._raw_row += 1
                    continue
                chars.append(self._consume())
                continue

            if c == first and self._at(delimiter):
                raw = "".join(self._raw[start:])
                self._consume(len(delimiter))
                return self._trimmed(chars, state, quoted_end, blank), raw, bad, _DELIMITER
            if c in "\r\n":
                raw = "".join(self._raw[start:])
                self._consume_line_end()
                return self._trimmed(chars, state, quoted_end, blank), raw, bad, _LINE_END
            if state == _AFTER_QUOTE:
                if not (trim and c in blank):
                    bad = True
            elif c == quote:
                bad = True
            chars.append(self._consume())

    def _trimmed(self, chars: List[str], state: int, quoted_end: int, blank: str) -> str:
        text = "".join(chars)
        options = self._config.trim_options
        if state == _UNQUOTED:
            return text.rstrip(blank) if options & TrimOptions.TRIM else text
        if state == _QUOTED:
            content, tail = text, ""
        else:
            content, tail = text[:quoted_end], text[quoted_end:]
        if options & TrimOptions.INSIDE_QUOTES:
            content = content.strip(_BLANK)
        if options & TrimOptions.TRIM:
            tail = tail.rstrip(blank)
        return content + tail

    def _emit(self, fields: List[str], bad: List[Tuple[int, str]]) -> RawRecord:
        self._row += 1
        record = RawRecord(
            fields=tuple(fields),
            raw="".join(self._raw),
            row=self._row,
            raw_row=self._raw_row,
            char_position=self._char_position,
            byte_position=self.byte_position,
        )
        self.record = record

        cfg = self._config
        if cfg.detect_column_count_changes:
            if self._column_count is not None and self._column_count != len(fields):
                raise BadDataError(
                    f"Field count changed from {self._column_count} to {len(fields)}",
                    row=record.row, raw_record=record.raw,
                )
            self._column_count = len(fields)

        for col, raw_field in bad:
            self._report_bad_data(record, col, raw_field)
        return record

    def _report_bad_data(self, record: RawRecord, col: int, raw_field: str) -> None:
        cfg = self._config
        if cfg.throw_on_bad_data:
            raise BadDataError(
                "Malformed quoting in field",
                row=record.row, col=col, value=raw_field, raw_record=record.raw,
            )
        context = BadDataContext(
            field=raw_field,
            col=col,
            row=record.row,
            raw_row=record.raw_row,
            raw_record=record.raw,
        )
        if cfg.bad_data_found is not None:
            cfg.bad_data_found(context)
        else:
            logger.warning("Bad data found on row %d, column %d: %r", record.row, col, raw_field)
