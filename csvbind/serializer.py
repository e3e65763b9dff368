"""
Write path: objects -> ordered field strings -> quoted/escaped record text.

Fields are ordered by member index; references expand in place into their
nested fields. A constant always wins over the object's own value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, List, Optional, Sequence, Tuple

from .binder import member_collection, member_converter, member_options
from .converters import TypeConverter, TypeConverterOptions
from .errors import CsvBindError, TypeConversionError
from .headers import walk
from .mapping import ClassMap, MemberMap

if TYPE_CHECKING:
    from .configuration import Configuration

logger = logging.getLogger(__name__)


@dataclass
class _FieldWriter:
    member_map: MemberMap
    path: Tuple[str, ...]  # attribute chain from the record to the member
    header_name: str
    converter: TypeConverter
    options: TypeConverterOptions
    collection: bool = False
    width: Optional[int] = None  # fixed column count of a collection with an index range

    @property
    def field_count(self) -> int:
        return self.width or 1


class RecordSerializer:
    """Turns instances of one target type into field lists."""

    def __init__(self, target: type, class_map: Optional[ClassMap], config: "Configuration") -> None:
        self.target = target
        self.class_map = class_map
        self.config = config
        self._fields: List[_FieldWriter] = []
        self._primitive: Optional[Tuple[TypeConverter, TypeConverterOptions]] = None

        if class_map is None:
            self._primitive = (
                config.converters.resolve(target),
                TypeConverterOptions.merge(
                    TypeConverterOptions(culture=config.culture or None),
                    config.converters.options_for(target),
                ),
            )
        else:
            ordered = []
            for position, (member_map, prefix, dotted) in enumerate(walk(class_map)):
                if member_map.data.ignore:
                    continue
                ordered.append((member_map.data.index, position, member_map, prefix, dotted))
            ordered.sort(key=lambda t: (t[0], t[1]))
            for _, _, member_map, prefix, dotted in ordered:
                data = member_map.data
                collection = member_collection(member_map) is not None
                width = None
                if collection and data.index_set and data.index_end is not None:
                    width = data.index_end - data.index + 1
                self._fields.append(_FieldWriter(
                    member_map=member_map,
                    path=tuple(dotted.split(".")) if data.member is not None else (),
                    header_name=prefix + data.header_name,
                    converter=member_converter(member_map, config),
                    options=member_options(member_map, config),
                    collection=collection,
                    width=width,
                ))
        logger.debug("Compiled serializer for %s", getattr(target, "__name__", target))

    @property
    def header(self) -> List[str]:
        """One name per field; a collection repeats its name over a fixed width, else appears once."""
        names: List[str] = []
        for f in self._fields:
            names.extend([f.header_name] * f.field_count)
        return names

    @property
    def field_count(self) -> int:
        if self._primitive is not None:
            return 1
        return sum(f.field_count for f in self._fields)

    def serialize(self, obj: Any) -> List[str]:
        """Field strings for obj; None yields one empty string per field."""
        if obj is None:
            return [""] * self.field_count
        if self._primitive is not None:
            converter, options = self._primitive
            return [self._to_text(converter, obj, options, member=None)]
        out: List[str] = []
        for f in self._fields:
            if f.collection:
                out.extend(self._write_items(f, obj))
            else:
                out.append(self._write_field(f, obj))
        return out

    @staticmethod
    def _member_value(f: _FieldWriter, obj: Any) -> Any:
        data = f.member_map.data
        if data.is_constant_set:
            return data.constant
        value = obj if f.path else None
        for name in f.path:
            if value is None:
                break
            # optional members left unset on read have no attribute
            value = getattr(value, name, None)
        return value

    def _write_field(self, f: _FieldWriter, obj: Any) -> str:
        value = self._member_value(f, obj)
        if value is None:
            return ""
        return self._to_text(f.converter, value, f.options, member=".".join(f.path) or None)

    def _write_items(self, f: _FieldWriter, obj: Any) -> List[str]:
        value = self._member_value(f, obj)
        member = ".".join(f.path) or None
        items = list(value) if value is not None else []
        if f.width is not None and len(items) > f.width:
            raise TypeConversionError(
                f"{len(items)} items do not fit in {f.width} columns",
                member=member, value=repr(value),
            )
        texts = ["" if v is None else self._to_text(f.converter, v, f.options, member=member) for v in items]
        if f.width is not None:
            texts.extend([""] * (f.width - len(texts)))
        elif not texts:
            texts = [""]
        return texts

    @staticmethod
    def _to_text(converter: TypeConverter, value: Any, options: TypeConverterOptions, *, member: Optional[str]) -> str:
        try:
            return converter.to_text(value, options)
        except CsvBindError:
            raise
        except Exception as e:
            raise TypeConversionError(
                f"Cannot convert {type(value).__name__} to text: {e}",
                member=member, value=repr(value),
            ) from e


# ----------------------------
# Quoting
# ----------------------------

def needs_quotes(text: str, config: "Configuration") -> bool:
    if config.quote_all_fields:
        return True
    if config.quote_no_fields:
        return False
    delimiter = config.delimiter
    return (
        config.quote in text
        or delimiter in text
        # a delimiter prefix at the end would join with the real delimiter
        or (text + delimiter).find(delimiter) < len(text)
        or "\r" in text
        or "\n" in text
        or text[:1] in (" ", "\t")
        or text[-1:] in (" ", "\t")
    )


def escape_field(text: str, config: "Configuration") -> str:
    """Escape quotes (and a distinct escape character) for a quoted field."""
    q = config.quote
    e = config.escape_char
    if e == q:
        return text.replace(q, q + q)
    return text.replace(e, e + e).replace(q, e + q)


def quote_field(text: str, config: "Configuration", *, force: bool = False) -> str:
    """Quote (escaping embedded quotes) when needed, or always when force is set."""
    if config.quote_no_fields and not force:
        return text
    if force or needs_quotes(text, config):
        return config.quote + escape_field(text, config) + config.quote
    return text


def format_record(fields: Sequence[str], config: "Configuration") -> str:
    """Join fields into one line of record text, terminator included."""
    out = []
    for i, text in enumerate(fields):
        force = False
        if i == 0 and not config.quote_no_fields:
            # keep the line from reading back as a comment or a blank line
            if config.allow_comments and text.startswith(config.comment):
                force = True
            elif text == "" and len(fields) == 1:
                force = True
        out.append(quote_field(text, config, force=force))
    return config.delimiter.join(out) + config.new_line
