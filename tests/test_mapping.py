from dataclasses import dataclass, field
from typing import Annotated, Optional

import pytest

from csvbind import (
    ClassMap,
    Column,
    ConfigurationError,
    Configuration,
    Reference,
    ReferenceMap,
    csv_record,
)


@dataclass
class Address:
    street: str = ""
    city: str = ""


@dataclass
class Person:
    id: int
    name: str
    address: Address = field(default_factory=Address)
    age: Optional[int] = None


@dataclass
class A:
    id: int = 0
    b: Optional["B"] = None


@dataclass
class B:
    name: str = ""
    a: Optional[A] = None


class PersonMap(ClassMap):
    def __init__(self):
        super().__init__(Person)
        self.map("id").name("Id")
        self.map("name").name("Name", "FullName")


def members(class_map):
    return [(m.data.member, m.data.index) for m in class_map.iter_member_maps()]


def test_auto_map_assigns_indexes_in_member_order():
    class_map = ClassMap(Person).auto_map(Configuration())
    assert members(class_map) == [("id", 0), ("name", 1), ("street", 2), ("city", 3), ("age", 4)]
    assert [r.member for r in class_map.reference_maps] == ["address"]


def test_auto_map_breaks_reference_cycles():
    class_map = ClassMap(A).auto_map(Configuration())
    assert members(class_map) == [("id", 0), ("name", 1)]
    nested = class_map.reference_maps[0].mapping
    assert nested.cls is B
    assert nested.reference_maps == []


def test_auto_map_ignore_references():
    class_map = ClassMap(Person).auto_map(Configuration(ignore_references=True))
    assert [m for m, _ in members(class_map)] == ["id", "name", "age"]


def test_auto_map_uses_registered_map_for_nested_type():
    config = Configuration()

    class AddressMap(ClassMap):
        def __init__(self):
            super().__init__(Address)
            self.map("city").name("Town")

    config.register_class_map(AddressMap)
    class_map = config.auto_map(Person)
    nested = class_map.reference_maps[0].mapping
    assert [m.data.header_name for m in nested.member_maps] == ["Town"]
    assert nested is not config.maps.find(Address)


def test_auto_map_rejects_collections_and_non_classes():
    with pytest.raises(ConfigurationError):
        ClassMap(list).auto_map()
    with pytest.raises(ConfigurationError):
        ClassMap(None).auto_map()


def test_prefix_reference_headers_setting():
    class_map = ClassMap(Person).auto_map(Configuration(prefix_reference_headers=True))
    assert class_map.reference_maps[0].prefix_text == "address."


def test_fluent_map_names_and_existing_member_reuse():
    m = PersonMap()
    assert [x.data.names for x in m.member_maps] == [["Id"], ["Name", "FullName"]]
    assert m.map("id") is m.member_maps[0]


def test_map_unknown_member_is_error():
    with pytest.raises(ConfigurationError) as exc:
        ClassMap(Person).map("nope")
    assert exc.value.member == "nope"


def test_explicit_indexes_survive_reindex():
    m = ClassMap(Person)
    m.map("id").index(5)
    m.map("name")
    m.map("age")
    assert m.reindex(0) == 2
    assert [x.data.index for x in m.member_maps] == [5, 0, 1]


def test_references_reindex_after_parent_members():
    class AddressMap(ClassMap):
        def __init__(self):
            super().__init__(Address)
            self.map("street")
            self.map("city")

    m = ClassMap(Person)
    m.map("id")
    ref = m.references(AddressMap, "address").prefix("Addr_")
    assert isinstance(ref, ReferenceMap)
    assert [x.data.index for x in ref.mapping.member_maps] == [1, 2]
    assert m.max_index() == 2
    assert ref.prefix_text == "Addr_"


def test_references_requires_a_class_map():
    with pytest.raises(ConfigurationError):
        ClassMap(Person).references(object(), "address")


def test_references_copies_a_shared_map_instance():
    shared = ClassMap(Address)
    shared.map("street")
    m = ClassMap(Person)
    m.map("id")
    ref = m.references(shared, "address")
    assert ref.mapping is not shared
    assert [x.data.index for x in ref.mapping.member_maps] == [1]
    assert [x.data.index for x in shared.member_maps] == [0]


def test_index_range_reserves_columns():
    m = ClassMap(Person)
    m.map("name").index(0, 3)
    assert m.map("id").data.index == 4
    with pytest.raises(ConfigurationError):
        m.map("age").index(2, 1)


def test_auto_map_maps_collections_of_convertible_types():
    @dataclass
    class Bag:
        items: list[int] = field(default_factory=list)
        addresses: list[Address] = field(default_factory=list)
        labels: Optional[tuple[str, ...]] = None

    class_map = ClassMap(Bag).auto_map(Configuration())
    assert members(class_map) == [("items", 0), ("labels", 1)]
    assert class_map.reference_maps == []


def test_convert_using_return_type_must_be_assignable():
    m = ClassMap(Person)

    def as_object(row) -> object:
        return 1

    def as_bool(row) -> bool:
        return True

    with pytest.raises(ConfigurationError):
        m.map("id").convert_using(as_object)
    m.map("id").convert_using(as_bool)
    m.map("age").convert_using(lambda row: None)


def test_register_rejects_non_class_maps():
    config = Configuration()
    with pytest.raises(ConfigurationError):
        config.register_class_map(object())
    with pytest.raises(ConfigurationError):
        config.register_class_map(int)


def test_register_unregister():
    config = Configuration()
    config.register_class_map(PersonMap)
    assert Person in config.maps
    assert isinstance(config.maps.get(Person, config), PersonMap)
    config.unregister_class_map(PersonMap)
    assert Person not in config.maps
    config.register_class_map(PersonMap())
    config.unregister_class_map()
    assert len(config.maps) == 0


@csv_record(culture="de-DE", null_values=("NULL",))
@dataclass
class Measurement:
    sensor: Annotated[str, Column(name="Sensor", culture="")] = ""
    value: Annotated[float, Column(name=("Value", "Wert"), format=".3f")] = 0.0
    note: Annotated[str, Column(ignore=True)] = ""
    origin: Annotated[Address, Reference(prefix="From ")] = field(default_factory=Address)


def test_annotated_declarations():
    class_map = ClassMap(Measurement).auto_map(Configuration())
    sensor, value, note = class_map.member_maps
    assert sensor.data.names == ["Sensor"]
    assert value.data.names == ["Value", "Wert"]
    assert value.data.options.formats == (".3f",)
    assert value.data.options.culture == "de-DE"
    assert value.data.options.null_values == ("NULL",)
    assert note.data.ignore
    assert class_map.reference_maps[0].prefix_text == "From "
