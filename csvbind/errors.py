"""
Error taxonomy.

Every error is a ValueError carrying enough row/column/raw-text context to
locate the offending input. Context that does not apply is left as None.
"""

from __future__ import annotations

from typing import List, Optional, Sequence


class CsvBindError(ValueError):
    """Base class for parse, mapping, conversion and construction failures."""

    def __init__(
        self,
        reason: str,
        *,
        row: Optional[int] = None,
        col: Optional[int] = None,
        column: Optional[str] = None,
        member: Optional[str] = None,
        value: Optional[str] = None,
        raw_record: Optional[str] = None,
    ) -> None:
        parts = []
        if row is not None:
            parts.append(f"row={row}")
        if col is not None:
            parts.append(f"col={col}")
        if column is not None:
            parts.append(f"column={column!r}")
        if member is not None:
            parts.append(f"member={member!r}")
        if value is not None:
            parts.append(f"value={value!r}")
        msg = f"{type(self).__name__}({', '.join(parts)}): {reason}"
        if raw_record is not None:
            msg += f"\nRaw record: {raw_record!r}"
        super().__init__(msg)
        self.reason = reason
        self.row = row                # 1-based record row (header row is 1)
        self.col = col                # 0-based column index
        self.column = column          # header name, when there is one
        self.member = member          # dotted member path on the target type
        self.value = value            # raw field text
        self.raw_record = raw_record  # exact source text of the record


class ConfigurationError(CsvBindError):
    """Invalid configuration or map registration. Raised before any I/O."""


class BadDataError(CsvBindError):
    """Malformed quoting found by the parser while throw_on_bad_data is set."""


class HeaderValidationError(CsvBindError):
    """Required members have no matching header column."""

    def __init__(self, missing: Sequence[str], **context) -> None:
        self.missing: List[str] = list(missing)
        names = ", ".join(repr(m) for m in self.missing)
        super().__init__(f"Header with name(s) {names} was not found", **context)


class MissingFieldError(CsvBindError):
    """A record has fewer fields than a required column index."""


class TypeConversionError(CsvBindError):
    """Field text could not be converted to (or from) the member type."""


class FieldValidationError(CsvBindError):
    """A member's validate predicate rejected the field text."""


class ConstructionError(CsvBindError):
    """The target type could not be instantiated from the bound values."""
