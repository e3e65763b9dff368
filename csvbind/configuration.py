"""Reader/writer/parser configuration."""

from __future__ import annotations

import codecs
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Optional, Type, Union

from .binder import RecordCache
from .converters import TypeConverterRegistry
from .culture import get_culture
from .errors import ConfigurationError
from .mapping import ClassMap, ClassMapRegistry
from .parser import TrimOptions

if TYPE_CHECKING:
    from .parser import BadDataContext


def _identity(header: str) -> str:
    return header


@dataclass
class Configuration:
    """
    Settings shared by reference between a reader or writer and its parser.

    Mutate only before the first read/write call; later changes are not
    picked up consistently.
    """

    # parsing / writing
    delimiter: str = ","
    quote: str = '"'
    escape: Optional[str] = None  # escapes a quote inside quoted fields; None means the quote itself
    trim_options: TrimOptions = TrimOptions.NONE
    comment: str = "#"
    allow_comments: bool = False
    buffer_size: int = 2048
    has_excel_separator: bool = False
    ignore_blank_lines: bool = True
    detect_column_count_changes: bool = False
    count_bytes: bool = False
    encoding: str = "utf-8"
    new_line: str = "\r\n"
    quote_all_fields: bool = False
    quote_no_fields: bool = False

    # bad data: either raise, or report to the callback and keep going
    throw_on_bad_data: bool = False
    bad_data_found: Optional[Callable[["BadDataContext"], Any]] = None

    # mapping
    has_header_record: bool = True
    culture: str = ""
    prepare_header_for_match: Callable[[str], str] = _identity
    prefix_reference_headers: bool = False
    ignore_references: bool = False

    maps: ClassMapRegistry = field(default_factory=ClassMapRegistry)
    converters: TypeConverterRegistry = field(default_factory=TypeConverterRegistry)
    record_cache: RecordCache = field(default_factory=RecordCache)

    def validate(self) -> None:
        """Raise ConfigurationError on settings that cannot work together."""
        if not isinstance(self.delimiter, str) or self.delimiter == "":
            raise ConfigurationError("delimiter must be a non-empty string")
        if not isinstance(self.quote, str) or len(self.quote) != 1:
            raise ConfigurationError(f"quote must be a single character, got {self.quote!r}")
        if self.quote in self.delimiter:
            raise ConfigurationError("delimiter cannot contain the quote character")
        if self.escape is not None:
            if not isinstance(self.escape, str) or len(self.escape) != 1:
                raise ConfigurationError(f"escape must be a single character, got {self.escape!r}")
            if self.escape in self.delimiter or self.escape in "\r\n":
                raise ConfigurationError("escape cannot be part of the delimiter or a line ending")
        if not isinstance(self.trim_options, TrimOptions):
            try:
                self.trim_options = TrimOptions(self.trim_options)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid trim_options: {self.trim_options!r}") from e
        if "\r" in self.delimiter or "\n" in self.delimiter:
            raise ConfigurationError("delimiter cannot contain a line ending")
        if not isinstance(self.comment, str) or len(self.comment) != 1:
            raise ConfigurationError(f"comment must be a single character, got {self.comment!r}")
        if self.allow_comments and self.comment == self.quote:
            raise ConfigurationError("comment and quote characters must differ")
        if not isinstance(self.buffer_size, int) or self.buffer_size < 1:
            raise ConfigurationError(f"buffer_size must be a positive integer, got {self.buffer_size!r}")
        if self.quote_all_fields and self.quote_no_fields:
            raise ConfigurationError("quote_all_fields and quote_no_fields are mutually exclusive")
        if self.bad_data_found is not None and not callable(self.bad_data_found):
            raise ConfigurationError("bad_data_found must be callable")
        if self.count_bytes:
            try:
                codecs.lookup(self.encoding)
            except LookupError as e:
                raise ConfigurationError(f"Unknown encoding: {self.encoding!r}") from e
        get_culture(self.culture)

    @property
    def escape_char(self) -> str:
        return self.escape if self.escape is not None else self.quote

    # Convenience passthroughs to the map registry

    def register_class_map(self, class_map: Union[ClassMap, Type[ClassMap]]) -> ClassMap:
        return self.maps.register(class_map)

    def unregister_class_map(self, target: Optional[type] = None) -> None:
        self.maps.unregister(target)

    def auto_map(self, target: type) -> ClassMap:
        return self.maps.auto_map(target, self)
