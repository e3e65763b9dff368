"""Header matching: member names -> column indexes, and header validation."""

from __future__ import annotations

from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from .errors import HeaderValidationError
from .mapping import ClassMap, MemberMap, ReferenceMap


def _identity(name: str) -> str:
    return name


class HeaderIndex:
    """Positions of every (prepared) header name, duplicates kept in header order."""

    def __init__(self, header: Sequence[str], prepare: Callable[[str], str] = _identity) -> None:
        self.header: Tuple[str, ...] = tuple(header)
        self._prepare = prepare
        self._positions: Dict[str, List[int]] = {}
        for i, name in enumerate(self.header):
            self._positions.setdefault(prepare(name), []).append(i)

    def __len__(self) -> int:
        return len(self.header)

    def find_all(self, names: Sequence[str], prefix: str = "") -> List[int]:
        """Every column called prefix+name, for the first of names present at all."""
        for name in names:
            positions = self._positions.get(self._prepare(prefix + name))
            if positions:
                return list(positions)
        return []

    def find(self, names: Sequence[str], name_index: int = 0, prefix: str = "") -> Optional[int]:
        """
        Index of the name_index-th column called prefix+name, trying names in
        list order; None when no name has that many occurrences.
        """
        for name in names:
            positions = self._positions.get(self._prepare(prefix + name))
            if positions and 0 <= name_index < len(positions):
                return positions[name_index]
        return None


def child_prefix(reference: ReferenceMap, prefix: str) -> str:
    if reference.inherit_prefix:
        return prefix + reference.prefix_text
    return reference.prefix_text


def walk(class_map: ClassMap, prefix: str = "", path: str = "") -> Iterator[Tuple[MemberMap, str, str]]:
    """Yield (member map, header prefix, dotted member path) depth first, in entry order."""
    for entry in class_map.entries:
        if isinstance(entry, MemberMap):
            member = entry.data.member or ""
            yield entry, prefix, f"{path}{member}"
        else:
            yield from walk(entry.mapping, child_prefix(entry, prefix), f"{path}{entry.member}.")


def resolve_index(member_map: MemberMap, prefix: str, header: Optional[HeaderIndex]) -> Optional[int]:
    """An explicit index always wins; without a header the map's own index is used."""
    data = member_map.data
    if data.index_set or header is None:
        return data.index
    return header.find(data.names, data.name_index, prefix)


def is_required(member_map: MemberMap) -> bool:
    data = member_map.data
    return not (
        data.member is None
        or data.ignore
        or data.optional
        or data.is_constant_set
        or data.convert_using is not None
    )


def missing_members(class_map: ClassMap, header: HeaderIndex, prefix: str = "") -> List[str]:
    """Header names of required members with no column. References with a skip predicate are not checked."""
    missing: List[str] = []
    for entry in class_map.entries:
        if isinstance(entry, ReferenceMap):
            if entry.skip_predicate is not None:
                continue
            missing.extend(missing_members(entry.mapping, header, child_prefix(entry, prefix)))
        elif is_required(entry) and resolve_index(entry, prefix, header) is None:
            missing.append(prefix + entry.data.header_name)
    return missing


def validate_header(class_map: ClassMap, header: HeaderIndex, *, raw_record: Optional[str] = None) -> None:
    missing = missing_members(class_map, header)
    if missing:
        raise HeaderValidationError(missing, row=1, raw_record=raw_record)
