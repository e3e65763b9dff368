"""
Read path: compiled binders turning records into objects, and the cache
holding them.

A RecordBinder is a ClassMap resolved once against one header (or against
the map's own indexes when there is no header). It keeps those column
bindings until the cache entry for its type is cleared, even if a new map
is registered for the type in the meantime.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple, Union

from .converters import (
    StrConverter,
    TypeConverter,
    TypeConverterOptions,
    collection_element,
    optional_inner,
    strip_annotated,
    type_default,
)
from .errors import (
    ConfigurationError,
    ConstructionError,
    CsvBindError,
    FieldValidationError,
    MissingFieldError,
    TypeConversionError,
)
from .headers import HeaderIndex, child_prefix, resolve_index, validate_header
from .mapping import UNSET, ClassMap, MemberMap, ReferenceMap, init_parameters

if TYPE_CHECKING:
    from .configuration import Configuration
    from .parser import RawRecord

logger = logging.getLogger(__name__)


# ----------------------------
# Row view
# ----------------------------

class Row:
    """The record being bound, as seen by skip predicates and convert_using callables."""

    def __init__(
        self,
        fields: Sequence[str],
        header: Optional[HeaderIndex] = None,
        *,
        row: Optional[int] = None,
        raw_record: Optional[str] = None,
    ) -> None:
        self.fields = tuple(fields)
        self.header = header
        self.row = row
        self.raw_record = raw_record

    @classmethod
    def from_record(cls, record: Union["RawRecord", Sequence[str]], header: Optional[HeaderIndex] = None) -> "Row":
        if isinstance(record, Row):
            return record
        return cls(
            tuple(record),
            header,
            row=getattr(record, "row", None),
            raw_record=getattr(record, "raw", None),
        )

    def __len__(self) -> int:
        return len(self.fields)

    def __getitem__(self, key: Union[int, str]) -> str:
        return self.get_field(key)

    def index_of(self, name: str, name_index: int = 0) -> Optional[int]:
        if self.header is None:
            return None
        return self.header.find((name,), name_index)

    def get_field(self, key: Union[int, str], name_index: int = 0) -> str:
        """Field by 0-based index or by header name (name_index picks among duplicates)."""
        if isinstance(key, str):
            col = self.index_of(key, name_index)
            if col is None:
                raise MissingFieldError(
                    f"Field with name {key!r} does not exist",
                    row=self.row, column=key, raw_record=self.raw_record,
                )
        else:
            col = key
        if not 0 <= col < len(self.fields):
            raise MissingFieldError(
                f"Field at index {col} does not exist",
                row=self.row, col=col, raw_record=self.raw_record,
            )
        return self.fields[col]


# ----------------------------
# Converter resolution shared with the write path
# ----------------------------

def member_collection(member_map: MemberMap) -> Optional[Tuple[type, Any]]:
    """(collection class, element type) when the member spans a run of columns."""
    data = member_map.data
    if data.converter is not None or data.is_constant_set or data.convert_using is not None:
        return None
    return collection_element(data.member_type)


def member_converter(member_map: MemberMap, config: "Configuration") -> TypeConverter:
    """Converter for a member; for collection members, the converter of one element."""
    data = member_map.data
    if data.converter is not None:
        return data.converter
    if data.member_type is Any:
        return StrConverter()
    if data.is_constant_set or data.convert_using is not None or data.ignore:
        return config.converters.find(data.member_type) or TypeConverter()
    found = member_collection(member_map)
    target = found[1] if found is not None else data.member_type
    try:
        return config.converters.resolve(target)
    except ConfigurationError as e:
        raise ConfigurationError(e.reason, member=data.member) from e


def member_options(member_map: MemberMap, config: "Configuration") -> TypeConverterOptions:
    found = member_collection(member_map)
    target = found[1] if found is not None else member_map.data.member_type
    return TypeConverterOptions.merge(
        TypeConverterOptions(culture=config.culture or None),
        config.converters.options_for(target),
        member_map.data.options,
    )


# ----------------------------
# Compiled form
# ----------------------------

@dataclass
class _BoundMember:
    member_map: MemberMap
    path: str
    column: Optional[int]
    column_name: Optional[str]
    converter: TypeConverter
    options: TypeConverterOptions
    # collection members only
    collection: Optional[type] = None
    element_type: Any = None
    columns: Optional[List[int]] = None  # every same-name header column


@dataclass
class _BoundType:
    cls: type
    path: str
    factory: Any = None
    params: Optional[Dict[str, inspect.Parameter]] = None
    members: List[_BoundMember] = field(default_factory=list)
    references: List[Tuple[ReferenceMap, "_BoundType"]] = field(default_factory=list)


class RecordBinder:
    """Binds records to instances of one target type."""

    def __init__(
        self,
        target: type,
        class_map: Optional[ClassMap],
        config: "Configuration",
        header: Optional[HeaderIndex] = None,
        *,
        header_raw: Optional[str] = None,
    ) -> None:
        self.target = target
        self.class_map = class_map
        self.config = config
        self.header = header
        self._primitive: Optional[Tuple[TypeConverter, TypeConverterOptions]] = None

        if class_map is None:
            # a scalar record type: the whole record is its first field
            self._primitive = (
                config.converters.resolve(target),
                TypeConverterOptions.merge(
                    TypeConverterOptions(culture=config.culture or None),
                    config.converters.options_for(target),
                ),
            )
            self._root: Optional[_BoundType] = None
        else:
            if header is not None:
                validate_header(class_map, header, raw_record=header_raw)
            self._root = self._compile(class_map, "", "")
        logger.debug("Compiled binder for %s", getattr(target, "__name__", target))

    def _compile(self, class_map: ClassMap, prefix: str, path: str) -> _BoundType:
        cls = class_map.cls
        bound = _BoundType(
            cls=cls,
            path=path.rstrip("."),
            factory=class_map.factory,
            params=init_parameters(cls),
        )
        for entry in class_map.entries:
            if isinstance(entry, ReferenceMap):
                nested = self._compile(entry.mapping, child_prefix(entry, prefix), f"{path}{entry.member}.")
                bound.references.append((entry, nested))
                continue
            data = entry.data
            if data.member is None or data.ignore:
                continue
            collection = member_collection(entry)
            columns = None
            if collection is not None and not data.index_set and self.header is not None:
                columns = self.header.find_all(data.names, prefix)
                column = columns[0] if columns else None
            else:
                column = resolve_index(entry, prefix, self.header)
            column_name = None
            if column is not None and self.header is not None and 0 <= column < len(self.header):
                column_name = self.header.header[column]
            elif self.header is not None:
                column_name = prefix + data.header_name
            bound.members.append(_BoundMember(
                member_map=entry,
                path=f"{path}{data.member}",
                column=column,
                column_name=column_name,
                converter=member_converter(entry, self.config),
                options=member_options(entry, self.config),
                collection=collection[0] if collection is not None else None,
                element_type=collection[1] if collection is not None else None,
                columns=columns,
            ))
        return bound

    # ----------------------------
    # Binding
    # ----------------------------

    def bind(self, record: Union["RawRecord", Row, Sequence[str]]) -> Any:
        row = Row.from_record(record, self.header)
        if self._primitive is not None:
            converter, options = self._primitive
            text = row.get_field(0)
            try:
                return converter.from_text(text, options)
            except CsvBindError:
                raise
            except Exception as e:
                raise TypeConversionError(
                    f"Cannot convert to {getattr(self.target, '__name__', self.target)}: {e}",
                    row=row.row, col=0, value=text, raw_record=row.raw_record,
                ) from e
        return self._materialize(self._root, row)

    def _materialize(self, bound: _BoundType, row: Row) -> Any:
        values: Dict[str, Any] = {}
        for b in bound.members:
            value = self._read_member(b, row)
            if value is not UNSET:
                values[b.member_map.data.member] = value
        for reference, nested in bound.references:
            if reference.skip_predicate is not None and reference.skip_predicate(row):
                values[reference.member] = None
                continue
            values[reference.member] = self._materialize(nested, row)
        return self._construct(bound, values, row)

    def _read_member(self, b: _BoundMember, row: Row) -> Any:
        data = b.member_map.data
        if data.is_constant_set:
            return data.constant
        if data.convert_using is not None:
            return data.convert_using(row)
        if b.collection is not None:
            return self._read_collection(b, row)

        if b.column is None or not 0 <= b.column < len(row):
            return self._missing(b, row, b.column)
        text = row.fields[b.column]
        self._validate(b, row, b.column, text)
        if text == "" and data.is_default_set:
            return data.default
        return self._convert(b, row, b.column, text, data.member_type)

    def _read_collection(self, b: _BoundMember, row: Row) -> Any:
        """Same-name header columns, else index..index_end (or to the end of the record)."""
        data = b.member_map.data
        if b.columns is not None:
            columns = b.columns
        elif b.column is None:
            columns = []
        elif data.index_end is None:
            columns = list(range(b.column, len(row)))
        else:
            columns = list(range(b.column, data.index_end + 1))
        if not columns:
            return self._missing(b, row, b.column)
        items = []
        for col in columns:
            if col >= len(row):
                raise MissingFieldError(
                    f"Field at index {col} does not exist",
                    row=row.row, col=col, column=b.column_name, member=b.path, raw_record=row.raw_record,
                )
            text = row.fields[col]
            self._validate(b, row, col, text)
            items.append(self._convert(b, row, col, text, b.element_type))
        return b.collection(items)

    def _missing(self, b: _BoundMember, row: Row, col: Optional[int]) -> Any:
        data = b.member_map.data
        if data.is_default_set:
            return data.default
        if data.optional:
            return UNSET
        raise MissingFieldError(
            "Field does not exist" if col is None else f"Field at index {col} does not exist",
            row=row.row, col=col, column=b.column_name, member=b.path, raw_record=row.raw_record,
        )

    def _validate(self, b: _BoundMember, row: Row, col: int, text: str) -> None:
        validate = b.member_map.data.validate
        if validate is not None and not validate(text):
            raise FieldValidationError(
                "Field validation failed",
                row=row.row, col=col, column=b.column_name, member=b.path,
                value=text, raw_record=row.raw_record,
            )

    def _convert(self, b: _BoundMember, row: Row, col: int, text: str, tp: Any) -> Any:
        if text in b.options.null_values:
            return type_default(tp)
        try:
            return b.converter.from_text(text, b.options)
        except CsvBindError:
            raise
        except Exception as e:
            raise TypeConversionError(
                f"Cannot convert to {_type_name(tp)}: {e}",
                row=row.row, col=col, column=b.column_name, member=b.path,
                value=text, raw_record=row.raw_record,
            ) from e

    def _construct(self, bound: _BoundType, values: Dict[str, Any], row: Row) -> Any:
        cls = bound.cls
        context = dict(row=row.row, member=bound.path or None, raw_record=row.raw_record)
        try:
            if bound.factory is not None:
                obj = bound.factory()
                remaining = values
            elif bound.params is None:
                obj = cls()
                remaining = values
            else:
                params = bound.params
                kwargs = {k: v for k, v in values.items() if k in params and params[k].kind != params[k].VAR_KEYWORD}
                missing = [
                    name for name, p in params.items()
                    if p.kind != p.VAR_KEYWORD and p.default is p.empty and name not in kwargs
                ]
                if missing:
                    raise ConstructionError(
                        f"Cannot create {cls.__name__}: no value for constructor argument(s) {missing}",
                        **context,
                    )
                obj = cls(**kwargs)
                remaining = {k: v for k, v in values.items() if k not in kwargs}
            for name, value in remaining.items():
                setattr(obj, name, value)
        except CsvBindError:
            raise
        except Exception as e:
            raise ConstructionError(f"Cannot create {getattr(cls, '__name__', cls)}: {e}", **context) from e
        return obj


def _type_name(tp: Any) -> str:
    tp, _ = strip_annotated(tp)
    inner = optional_inner(tp)
    if inner is not None:
        return f"Optional[{_type_name(inner)}]"
    return getattr(tp, "__name__", repr(tp))


# ----------------------------
# Cache
# ----------------------------

class RecordCache:
    """
    Compiled binders and serializers keyed by target type.

    Entries are never refreshed on their own: after registering a new map
    (or reading a different header) for a type that was already used, clear
    its entry.
    """

    def __init__(self) -> None:
        self.binders: Dict[type, RecordBinder] = {}
        self.serializers: Dict[type, Any] = {}

    def clear(self, target: Optional[type] = None) -> None:
        if target is None:
            self.binders.clear()
            self.serializers.clear()
            return
        self.binders.pop(target, None)
        self.serializers.pop(target, None)
        logger.debug("Cleared record cache for %s", getattr(target, "__name__", target))
