"""
Class maps: which member of a target type goes to which column, and how.

Three ways to get a map for a type, in priority order:
- a ClassMap registered explicitly (fluent builder),
- Column(...) / Reference(...) declarations in Annotated member hints,
- plain auto-mapping of public annotated members.

The last two share one code path: auto-mapping honours declarations when
it finds them.
"""

from __future__ import annotations

import copy
import dataclasses
import inspect
import logging
import typing
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
    Type,
    Union,
)

from .converters import (
    ConverterSpec,
    DateTimeStyle,
    NumberStyle,
    TypeConverter,
    TypeConverterOptions,
    as_converter,
    optional_inner,
    strip_annotated,
)
from .errors import ConfigurationError

if TYPE_CHECKING:
    from .binder import Row
    from .configuration import Configuration

logger = logging.getLogger(__name__)


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()

_COLLECTION_TYPES = (list, tuple, dict, set, frozenset)


def _as_tuple(value: Union[str, Sequence[str], None]) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(value)


# ----------------------------
# Declarations (used inside typing.Annotated)
# ----------------------------

@dataclass(frozen=True)
class Column:
    """Per-member mapping declaration: ``id: Annotated[int, Column(name="Id")]``."""

    name: Union[str, Sequence[str], None] = None
    name_index: Optional[int] = None
    index: Optional[int] = None
    index_end: Optional[int] = None
    ignore: bool = False
    optional: bool = False
    default: Any = UNSET
    constant: Any = UNSET
    converter: Optional[ConverterSpec] = None
    format: Union[str, Sequence[str], None] = None
    culture: Optional[str] = None
    number_style: Optional[NumberStyle] = None
    date_time_style: Optional[DateTimeStyle] = None
    true_values: Sequence[str] = ()
    false_values: Sequence[str] = ()
    null_values: Sequence[str] = ()

    def options(self) -> TypeConverterOptions:
        return TypeConverterOptions(
            culture=self.culture,
            formats=_as_tuple(self.format),
            number_style=self.number_style,
            date_time_style=self.date_time_style,
            true_values=tuple(self.true_values),
            false_values=tuple(self.false_values),
            null_values=tuple(self.null_values),
        )


@dataclass(frozen=True)
class Reference:
    """
    Declaration for a nested-object member.

    prefix: None for no prefix, True for "<member>.", or a literal string.
    """

    prefix: Union[str, bool, None] = None
    inherit_prefix: bool = False
    skip: Optional[Callable[["Row"], bool]] = None


def csv_record(**options: Any) -> Callable[[type], type]:
    """
    Class decorator setting type-level defaults (culture, format, null_values, ...)
    that every member Column of the class starts from.
    """
    defaults = Column(**options)

    def decorate(cls: type) -> type:
        cls.__csv_defaults__ = defaults
        return cls

    return decorate


# ----------------------------
# Reflection helpers
# ----------------------------

def public_members(cls: type) -> Dict[str, Any]:
    """Public read/write members in declaration order, with their (Annotated) type hints."""
    try:
        hints = typing.get_type_hints(cls, include_extras=True)
    except (NameError, TypeError) as e:
        logger.debug("Could not resolve type hints of %r (%s); using raw annotations", cls, e)
        hints = {}
        for klass in reversed(cls.__mro__):
            hints.update(vars(klass).get("__annotations__", {}))

    out: Dict[str, Any] = {}
    if dataclasses.is_dataclass(cls):
        for f in dataclasses.fields(cls):
            if not f.name.startswith("_"):
                out[f.name] = hints.get(f.name, f.type)
    for name, tp in hints.items():
        if name.startswith("_") or name in out:
            continue
        base, _ = strip_annotated(tp)
        if base is typing.ClassVar or typing.get_origin(base) is typing.ClassVar:
            continue
        if isinstance(base, dataclasses.InitVar):
            continue
        out[name] = tp
    for klass in reversed(cls.__mro__):
        for name, attr in vars(klass).items():
            if name.startswith("_") or name in out or not isinstance(attr, property):
                continue
            if attr.fset is None or attr.fget is None:
                continue
            try:
                ret = typing.get_type_hints(attr.fget, include_extras=True).get("return")
            except (NameError, TypeError):
                ret = None
            if ret is not None:
                out[name] = ret
    return out


def init_parameters(cls: Any) -> Optional[Dict[str, inspect.Parameter]]:
    """Keyword-bindable __init__ parameters, or None when cls cannot be introspected."""
    if not isinstance(cls, type):
        return None
    try:
        sig = inspect.signature(cls)
    except (TypeError, ValueError):
        return None
    return {
        name: p for name, p in sig.parameters.items()
        if p.kind in (p.POSITIONAL_OR_KEYWORD, p.KEYWORD_ONLY, p.VAR_KEYWORD)
    }


def is_default_constructible(cls: Any) -> bool:
    """True when every required __init__ parameter of cls is one of its own members."""
    if typing.get_origin(cls) is not None or not isinstance(cls, type):
        return False
    if issubclass(cls, _COLLECTION_TYPES):
        return False
    try:
        sig = inspect.signature(cls)
    except (TypeError, ValueError):
        return False
    members = public_members(cls)
    for name, p in sig.parameters.items():
        if p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD):
            continue
        if p.default is p.empty and (p.kind == p.POSITIONAL_ONLY or name not in members):
            return False
    return True


def _return_type(fn: Callable[..., Any]) -> Any:
    try:
        return typing.get_type_hints(fn).get("return")
    except (NameError, TypeError):
        return None


def _is_assignable(src: Any, dst: Any) -> bool:
    src, _ = strip_annotated(src)
    dst, _ = strip_annotated(dst)
    if src is Any or dst is Any or src == dst:
        return True
    inner = optional_inner(dst)
    if inner is not None:
        return src is type(None) or _is_assignable(src, inner)
    if optional_inner(src) is not None:
        return False
    if isinstance(src, type) and isinstance(dst, type) and typing.get_origin(src) is typing.get_origin(dst) is None:
        if dst is float and src is int:
            return True
        return issubclass(src, dst)
    return True


# ----------------------------
# Member / reference maps
# ----------------------------

@dataclass
class MemberMapData:
    member: Optional[str]
    member_type: Any = Any
    names: List[str] = field(default_factory=list)
    name_index: int = 0
    index: int = -1
    index_end: Optional[int] = None  # last column of a collection member
    index_set: bool = False
    ignore: bool = False
    optional: bool = False
    default: Any = UNSET
    constant: Any = UNSET
    converter: Optional[TypeConverter] = None
    options: TypeConverterOptions = field(default_factory=TypeConverterOptions)
    convert_using: Optional[Callable[["Row"], Any]] = None
    validate: Optional[Callable[[str], bool]] = None

    @property
    def is_default_set(self) -> bool:
        return self.default is not UNSET

    @property
    def is_constant_set(self) -> bool:
        return self.constant is not UNSET

    @property
    def header_name(self) -> str:
        if self.names:
            return self.names[0]
        return self.member or ""


class MemberMap:
    """Fluent configuration of one scalar member. Every setter returns self."""

    def __init__(self, member: Optional[str], member_type: Any = Any) -> None:
        self.data = MemberMapData(
            member=member,
            member_type=member_type,
            names=[member] if member else [],
        )

    def __repr__(self) -> str:
        return f"MemberMap({self.data.member!r}, index={self.data.index})"

    def _options(self, **changes: Any) -> "MemberMap":
        self.data.options = dataclasses.replace(self.data.options, **changes)
        return self

    def name(self, *names: str) -> "MemberMap":
        if not names:
            raise ConfigurationError("name() needs at least one name", member=self.data.member)
        self.data.names = list(names)
        return self

    def name_index(self, index: int) -> "MemberMap":
        self.data.name_index = index
        return self

    def index(self, index: int, end: Optional[int] = None) -> "MemberMap":
        """Bind to column index; collection members may span index..end (end inclusive)."""
        if end is not None and end < index:
            raise ConfigurationError(f"index end {end} is before index {index}", member=self.data.member)
        self.data.index = index
        self.data.index_end = end
        self.data.index_set = True
        return self

    def ignore(self, ignore: bool = True) -> "MemberMap":
        self.data.ignore = ignore
        return self

    def optional(self, optional: bool = True) -> "MemberMap":
        self.data.optional = optional
        return self

    def default(self, value: Any) -> "MemberMap":
        self.data.default = value
        return self

    def constant(self, value: Any) -> "MemberMap":
        self.data.constant = value
        return self

    def type_converter(self, converter: ConverterSpec) -> "MemberMap":
        self.data.converter = as_converter(converter)
        return self

    def format(self, *formats: str) -> "MemberMap":
        return self._options(formats=tuple(formats))

    def culture(self, culture: str) -> "MemberMap":
        return self._options(culture=culture)

    def number_style(self, style: NumberStyle) -> "MemberMap":
        return self._options(number_style=style)

    def date_time_style(self, style: DateTimeStyle) -> "MemberMap":
        return self._options(date_time_style=style)

    def true_values(self, *values: str) -> "MemberMap":
        return self._options(true_values=tuple(values))

    def false_values(self, *values: str) -> "MemberMap":
        return self._options(false_values=tuple(values))

    def null_values(self, *values: str) -> "MemberMap":
        return self._options(null_values=tuple(values))

    def convert_using(self, fn: Callable[["Row"], Any]) -> "MemberMap":
        """Read the member with fn(row) instead of a column + converter."""
        ret = _return_type(fn)
        if ret is not None and self.data.member_type is not Any:
            if not _is_assignable(ret, self.data.member_type):
                raise ConfigurationError(
                    f"convert_using returns {ret!r}, which is not assignable to {self.data.member_type!r}",
                    member=self.data.member,
                )
        self.data.convert_using = fn
        return self

    def validate(self, predicate: Callable[[str], bool]) -> "MemberMap":
        """Reject field text for which predicate returns False."""
        self.data.validate = predicate
        return self

    def apply(self, column: Column) -> "MemberMap":
        """Apply a Column declaration on top of the current settings."""
        names = _as_tuple(column.name)
        if names:
            self.name(*names)
        if column.name_index is not None:
            self.name_index(column.name_index)
        if column.index is not None:
            self.index(column.index, column.index_end)
        if column.ignore:
            self.ignore()
        if column.optional:
            self.optional()
        if column.default is not UNSET:
            self.default(column.default)
        if column.constant is not UNSET:
            self.constant(column.constant)
        if column.converter is not None:
            self.type_converter(column.converter)
        self.data.options = TypeConverterOptions.merge(self.data.options, column.options())
        return self


class ReferenceMap:
    """A nested-object member mapped through its own ClassMap."""

    def __init__(self, member: str, member_type: Any, mapping: "ClassMap") -> None:
        self.member = member
        self.member_type = member_type
        self.mapping = mapping
        self.prefix_text = ""
        self.inherit_prefix = False
        self.skip_predicate: Optional[Callable[["Row"], bool]] = None

    def __repr__(self) -> str:
        return f"ReferenceMap({self.member!r}, {self.mapping!r})"

    def prefix(self, prefix: Optional[str] = None, inherit: bool = False) -> "ReferenceMap":
        """Prefix nested header names; the default prefix is "<member>."."""
        self.prefix_text = prefix if prefix is not None else f"{self.member}."
        self.inherit_prefix = inherit
        return self

    def skip(self, predicate: Callable[["Row"], bool]) -> "ReferenceMap":
        """Leave the member None on rows where predicate(row) is true."""
        self.skip_predicate = predicate
        return self

    def apply(self, reference: Reference) -> "ReferenceMap":
        if reference.prefix is True:
            self.prefix(inherit=reference.inherit_prefix)
        elif isinstance(reference.prefix, str):
            self.prefix(reference.prefix, inherit=reference.inherit_prefix)
        if reference.skip is not None:
            self.skip(reference.skip)
        return self

    def max_index(self) -> int:
        return self.mapping.max_index()


Entry = Union[MemberMap, ReferenceMap]


# ----------------------------
# Class map
# ----------------------------

class ClassMap:
    """
    Ordered member and reference maps for one target type.

    Subclass and configure in __init__::

        class PersonMap(ClassMap):
            def __init__(self):
                super().__init__(Person)
                self.map("id").name("Id")
                self.references(AddressMap, "address").prefix()
    """

    def __init__(self, cls: Optional[type] = None) -> None:
        self.cls = cls
        self.entries: List[Entry] = []
        self.factory: Optional[Callable[[], Any]] = None
        self._members = public_members(cls) if isinstance(cls, type) else {}

    def __repr__(self) -> str:
        name = getattr(self.cls, "__name__", repr(self.cls))
        return f"{type(self).__name__}({name}, entries={len(self.entries)})"

    @property
    def member_maps(self) -> List[MemberMap]:
        return [e for e in self.entries if isinstance(e, MemberMap)]

    @property
    def reference_maps(self) -> List[ReferenceMap]:
        return [e for e in self.entries if isinstance(e, ReferenceMap)]

    def _member_type(self, member: str) -> Any:
        if member in self._members:
            return self._members[member]
        if self._members and not hasattr(self.cls, member):
            raise ConfigurationError(
                f"{self.cls.__name__} has no member {member!r}", member=member,
            )
        return Any

    def _find(self, member: str) -> Optional[Entry]:
        for entry in self.entries:
            name = entry.data.member if isinstance(entry, MemberMap) else entry.member
            if name == member:
                return entry
        return None

    def map(self, member: Optional[str] = None) -> MemberMap:
        """Map a member (or, with no member, a write-only constant column)."""
        if member is not None:
            existing = self._find(member)
            if isinstance(existing, MemberMap):
                return existing
            member_map = MemberMap(member, self._member_type(member))
        else:
            member_map = MemberMap(None)
        member_map.data.index = self.max_index() + 1
        self.entries.append(member_map)
        return member_map

    def references(self, mapping: Union["ClassMap", Type["ClassMap"]], member: str, *args: Any) -> ReferenceMap:
        """Map a nested-object member with another ClassMap (class or instance)."""
        existing = self._find(member)
        if isinstance(existing, ReferenceMap):
            return existing
        if isinstance(mapping, type) and issubclass(mapping, ClassMap):
            mapping = mapping(*args)
        elif isinstance(mapping, ClassMap):
            # an instance may be shared between members; each gets its own indexes
            mapping = copy.deepcopy(mapping)
        else:
            raise ConfigurationError(f"{mapping!r} is not a ClassMap", member=member)
        mapping.reindex(self.max_index() + 1)
        reference = ReferenceMap(member, self._member_type(member), mapping)
        self.entries.append(reference)
        return reference

    def construct_using(self, factory: Callable[[], Any]) -> "ClassMap":
        """Create instances with factory() and set every member afterwards."""
        self.factory = factory
        return self

    def max_index(self) -> int:
        indexes = [-1]
        for entry in self.entries:
            if isinstance(entry, MemberMap):
                indexes.append(max(entry.data.index, entry.data.index_end or -1))
            else:
                indexes.append(entry.max_index())
        return max(indexes)

    def reindex(self, start: int = 0) -> int:
        """Renumber auto-assigned indexes contiguously from start; returns the next free index."""
        i = start
        for entry in self.entries:
            if isinstance(entry, ReferenceMap):
                i = entry.mapping.reindex(i)
            elif not entry.data.index_set:
                entry.data.index = i
                i += 1
        return i

    def iter_member_maps(self) -> Iterator[MemberMap]:
        for entry in self.entries:
            if isinstance(entry, MemberMap):
                yield entry
            else:
                yield from entry.mapping.iter_member_maps()

    # ----------------------------
    # Auto-mapping
    # ----------------------------

    def auto_map(self, config: Optional["Configuration"] = None, _path: Optional[List[type]] = None) -> "ClassMap":
        """
        Add maps for every public member not mapped yet.

        Convertible members, and list/tuple/set members of a convertible
        type, become MemberMaps; default-constructible members become
        recursively auto-mapped ReferenceMaps. A type that
        is already on the current reference path is skipped.
        """
        if config is None:
            from .configuration import Configuration

            config = Configuration()
        cls = self.cls
        if not isinstance(cls, type):
            raise ConfigurationError(f"Cannot auto map {cls!r}: not a class")
        if issubclass(cls, _COLLECTION_TYPES):
            raise ConfigurationError(
                f"Cannot auto map collection type {cls.__name__}; "
                "map the element type and read/write records one by one"
            )
        path = (_path or []) + [cls]
        defaults: Optional[Column] = getattr(cls, "__csv_defaults__", None)

        for name, hint in self._members.items():
            if self._find(name) is not None:
                continue
            base, extras = strip_annotated(hint)
            column = next((x for x in extras if isinstance(x, Column)), None)
            reference = next((x for x in extras if isinstance(x, Reference)), None)

            is_scalar = (
                (column is not None and (column.converter is not None or column.constant is not UNSET or column.ignore))
                or config.converters.has_converter(base)
                or config.converters.find_collection(base) is not None
            )
            if is_scalar and reference is None:
                member_map = MemberMap(name, hint)
                member_map.data.index = self.max_index() + 1
                if defaults is not None:
                    member_map.apply(defaults)
                if column is not None:
                    member_map.apply(column)
                self.entries.append(member_map)
                continue

            nested = optional_inner(base) or base
            if config.ignore_references or not is_default_constructible(nested):
                continue
            if nested in path:
                logger.debug("Skipping %s.%s: %s is already on the reference path", cls.__name__, name, nested.__name__)
                continue

            registered = config.maps.find(nested)
            if registered is not None:
                nested_map = copy.deepcopy(registered)
            else:
                nested_map = ClassMap(nested).auto_map(config, path)
            if not nested_map.entries:
                continue
            nested_map.reindex(self.max_index() + 1)
            reference_map = ReferenceMap(name, hint, nested_map)
            if config.prefix_reference_headers:
                reference_map.prefix()
            if reference is not None:
                reference_map.apply(reference)
            self.entries.append(reference_map)
        return self


# ----------------------------
# Registry
# ----------------------------

class ClassMapRegistry:
    """Explicitly registered maps plus a cache of auto-built ones, keyed by target type."""

    def __init__(self) -> None:
        self._maps: Dict[type, ClassMap] = {}
        self._auto: Dict[type, ClassMap] = {}

    def __contains__(self, cls: type) -> bool:
        return cls in self._maps

    def __len__(self) -> int:
        return len(self._maps)

    def register(self, class_map: Union[ClassMap, Type[ClassMap]]) -> ClassMap:
        if isinstance(class_map, type) and issubclass(class_map, ClassMap):
            try:
                class_map = class_map()
            except TypeError as e:
                raise ConfigurationError(f"Cannot instantiate class map {class_map.__name__}: {e}") from e
        if not isinstance(class_map, ClassMap):
            raise ConfigurationError(f"{class_map!r} is not a ClassMap")
        if not isinstance(class_map.cls, type):
            raise ConfigurationError(f"{type(class_map).__name__} does not name a target class")
        self._maps[class_map.cls] = class_map
        self._auto.pop(class_map.cls, None)
        logger.debug("Registered %r for %s", class_map, class_map.cls.__name__)
        return class_map

    def unregister(self, target: Optional[type] = None) -> None:
        """Remove the map for a target type, every map of a ClassMap subclass, or (None) all maps."""
        if target is None:
            self._maps.clear()
            self._auto.clear()
            return
        if isinstance(target, type) and issubclass(target, ClassMap):
            for cls in [c for c, m in self._maps.items() if isinstance(m, target)]:
                del self._maps[cls]
            return
        self._maps.pop(target, None)
        self._auto.pop(target, None)

    def find(self, cls: type) -> Optional[ClassMap]:
        return self._maps.get(cls)

    def get(self, cls: type, config: "Configuration") -> ClassMap:
        """Registered map for cls, else the (cached) auto map."""
        found = self._maps.get(cls)
        if found is not None:
            return found
        found = self._auto.get(cls)
        if found is None:
            found = self.auto_map(cls, config)
        return found

    def auto_map(self, cls: type, config: "Configuration") -> ClassMap:
        class_map = ClassMap(cls).auto_map(config)
        self._auto[cls] = class_map
        logger.debug("Auto mapped %s: %r", getattr(cls, "__name__", cls), class_map)
        return class_map

    def invalidate(self, cls: type) -> None:
        self._auto.pop(cls, None)
