import enum
import io
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import pytest

from csvbind import (
    ClassMap,
    Configuration,
    ConfigurationError,
    CsvReader,
    CsvWriter,
    TypeConversionError,
    TypeConverterOptions,
)


@dataclass
class Person:
    id: int
    name: str
    age: Optional[int] = None


@dataclass
class Pet:
    id: int
    name: str


@dataclass
class Address:
    street: str = ""
    city: str = ""


@dataclass
class Customer:
    name: str = ""
    home: Address = field(default_factory=Address)
    work: Address = field(default_factory=Address)


@dataclass
class Tagged:
    id: int
    tags: list[str] = field(default_factory=list)


class Segment:
    start: int
    end: int

    def __init__(self, start, end, unit):
        self.start = start
        self.end = end
        self.unit = unit


@dataclass
class Shape:
    name: str = ""
    span: Optional[Segment] = None


class Kind(enum.Enum):
    START = "s"
    STOP = "e"


@dataclass
class Event:
    kind: Kind
    at: datetime
    ok: bool
    ratio: float
    note: Optional[str] = None


def write_all(records, target=None, **kwargs):
    sink = io.StringIO()
    writer = CsvWriter(sink, Configuration(**kwargs))
    writer.write_records(records, target)
    return sink.getvalue()


def write_fields(*fields, **kwargs):
    sink = io.StringIO()
    writer = CsvWriter(sink, Configuration(**kwargs))
    for f in fields:
        writer.write_field(f)
    writer.next_record()
    return sink.getvalue()


def test_write_records_with_header():
    text = write_all([Person(1, "Ann", 30), Person(2, "Bob, Jr.", None)])
    assert text == 'id,name,age\r\n1,Ann,30\r\n2,"Bob, Jr.",\r\n'


def test_no_header_when_disabled():
    assert write_all([Pet(1, "Rex")], has_header_record=False, new_line="\n") == "1,Rex\n"


def test_quoting_rules():
    assert write_fields(" lead", 'a"b', "x\ny", "trail\t", "plain") == '" lead","a""b","x\ny","trail\t",plain\r\n'
    assert write_fields("a;b", "c,d", delimiter=";") == '"a;b";c,d\r\n'


def test_quote_all_and_quote_none():
    assert write_fields("a", "", quote_all_fields=True) == '"a",""\r\n'
    assert write_fields('a"b', "c,d", quote_no_fields=True) == 'a"b,c,d\r\n'


def test_first_field_that_would_read_as_comment_or_blank_is_quoted():
    assert write_fields("#x", "y", allow_comments=True) == '"#x",y\r\n'
    assert write_fields("#x", "y") == "#x,y\r\n"
    assert write_fields("") == '""\r\n'
    assert write_fields("", "") == ",\r\n"


def test_write_field_converts_values():
    assert write_fields(None, 1, 1.5, True, Kind.STOP) == ",1,1.5,true,STOP\r\n"


def test_value_formatting():
    event = Event(Kind.START, datetime(2024, 1, 2, 3, 4, 5), False, 0.25)
    text = write_all([event], has_header_record=False)
    assert text == "START,2024-01-02T03:04:05,false,0.25,\r\n"


def test_registry_options_apply_when_writing():
    config = Configuration(has_header_record=False)
    config.converters.set_options(float, TypeConverterOptions(formats=(".2f",)))
    sink = io.StringIO()
    CsvWriter(sink, config).write_records([Event(Kind.STOP, datetime(2024, 1, 2), True, 0.5, "n")])
    assert sink.getvalue() == "STOP,2024-01-02T00:00:00,true,0.50,n\r\n"


def test_excel_separator_is_written_first():
    text = write_all([Pet(1, "Rex")], has_excel_separator=True, delimiter=";")
    assert text == "sep=;\r\nid;name\r\n1;Rex\r\n"


def test_fields_are_ordered_by_index_and_ignored_members_skipped():
    config = Configuration()

    class PersonMap(ClassMap):
        def __init__(self):
            super().__init__(Person)
            self.map("id").index(2)
            self.map("name").name("Name").index(0)
            self.map("age").ignore()

    config.register_class_map(PersonMap)
    sink = io.StringIO()
    CsvWriter(sink, config).write_records([Person(1, "Ann", 5)])
    assert sink.getvalue() == "Name,id\r\nAnn,1\r\n"


def test_constant_wins_over_object_value():
    config = Configuration()

    class PetMap(ClassMap):
        def __init__(self):
            super().__init__(Pet)
            self.map("id")
            self.map("name").constant("X")
            self.map().name("Source").constant("import")

    config.register_class_map(PetMap)
    sink = io.StringIO()
    CsvWriter(sink, config).write_records([Pet(1, "Rex")])
    assert sink.getvalue() == "id,name,Source\r\n1,X,import\r\n"


def test_none_record_writes_empty_fields():
    assert write_all([Pet(1, "Rex"), None]) == "id,name\r\n1,Rex\r\n,\r\n"
    sink = io.StringIO()
    writer = CsvWriter(sink)
    writer.write_record(None, Person)
    assert sink.getvalue() == ",,\r\n"


def test_none_record_without_type_is_error():
    writer = CsvWriter(io.StringIO())
    with pytest.raises(ConfigurationError):
        writer.write_record(None)


def test_nested_references_with_prefix():
    customer = Customer("Ann", Address("Main St", "Oslo"), Address("Dock Rd", "Bergen"))
    text = write_all([customer], prefix_reference_headers=True)
    assert text == (
        "name,home.street,home.city,work.street,work.city\r\n"
        "Ann,Main St,Oslo,Dock Rd,Bergen\r\n"
    )


def test_scalar_records_have_no_header():
    assert write_all([1, 2, 3], int) == "1\r\n2\r\n3\r\n"


def test_write_header_only():
    sink = io.StringIO()
    writer = CsvWriter(sink)
    writer.write_header(Person)
    assert sink.getvalue() == "id,name,age\r\n"
    assert writer.row == 1


def test_serializer_cache_is_kept_until_cleared():
    config = Configuration(has_header_record=False)
    sink = io.StringIO()
    writer = CsvWriter(sink, config)
    writer.write_record(Pet(1, "Rex"))

    class PetMap(ClassMap):
        def __init__(self):
            super().__init__(Pet)
            self.map("name")

    config.register_class_map(PetMap)
    writer.write_record(Pet(2, "Tom"))
    writer.clear_record_cache(Pet)
    writer.write_record(Pet(3, "Max"))
    assert sink.getvalue() == "1,Rex\r\n2,Tom\r\nMax\r\n"


def test_context_manager_closes_when_not_leaving_open():
    sink = io.StringIO()
    with CsvWriter(sink, leave_open=False) as writer:
        writer.write_field("a")
        writer.next_record()
    assert sink.closed


NASTY = ["plain", 'has "double"', "has 'single'", "multi\r\nline", "lf\nonly", " padded ", "", "#hash"]


@pytest.mark.parametrize("delimiter", [",", ";", "||"])
@pytest.mark.parametrize("quote", ['"', "'"])
@pytest.mark.parametrize("new_line", ["\r\n", "\n"])
def test_round_trip(delimiter, quote, new_line):
    people = [Person(i, name + delimiter + "x", i if i % 2 else None) for i, name in enumerate(NASTY)]
    kwargs = dict(delimiter=delimiter, quote=quote, new_line=new_line, allow_comments=True)
    text = write_all(people, **kwargs)
    reader = CsvReader(io.StringIO(text), Configuration(**kwargs))
    assert list(reader.get_records(Person)) == people


@pytest.mark.parametrize("name", ["a|", "|", "a|b|"])
def test_round_trip_field_ending_in_part_of_the_delimiter(name):
    kwargs = dict(delimiter="||", has_header_record=False)
    text = write_all([Person(1, name, 2), Person(2, "x", None)], **kwargs)
    reader = CsvReader(io.StringIO(text), Configuration(**kwargs))
    assert list(reader.get_records(Person)) == [Person(1, name, 2), Person(2, "x", None)]


def test_field_ending_in_part_of_the_delimiter_is_quoted():
    assert write_fields("a|", "b", delimiter="||") == '"a|"||b\r\n'
    assert write_fields("ab", "c|", delimiter="||") == 'ab||"c|"\r\n'


def test_escape_character_when_writing():
    assert write_fields('"a"', escape="|") == '"|"a|""\r\n'
    assert write_fields('x|"', "y|", escape="|") == '"x|||"",y|\r\n'


@pytest.mark.parametrize("escape", ["\\", "|"])
def test_round_trip_with_escape_character(escape):
    names = ['say "hi"', "back\\slash", "pipe|", 'both\\"|"', "\\", '"']
    people = [Person(i, name, None) for i, name in enumerate(names)]
    text = write_all(people, escape=escape)
    reader = CsvReader(io.StringIO(text), Configuration(escape=escape))
    assert list(reader.get_records(Person)) == people


def test_unset_optional_member_writes_empty_field():
    class Plain:
        id: int
        note: str

    config = Configuration()
    m = ClassMap(Plain)
    m.map("id")
    m.map("note").optional()
    config.register_class_map(m)
    record = next(CsvReader(io.StringIO("id\n1\n"), config).get_records(Plain))
    assert not hasattr(record, "note")

    sink = io.StringIO()
    CsvWriter(sink, config).write_records([record])
    assert sink.getvalue() == "id,note\r\n1,\r\n"


def test_each_record_uses_the_map_of_its_runtime_type():
    @dataclass
    class Animal:
        name: str = ""

    @dataclass
    class Dog(Animal):
        breed: str = ""

    class AnimalMap(ClassMap):
        def __init__(self):
            super().__init__(Animal)
            self.map("name").name("Name")

    class DogMap(ClassMap):
        def __init__(self):
            super().__init__(Dog)
            self.map("breed").name("Breed")
            self.map("name").name("Name")

    config = Configuration(has_header_record=False)
    config.register_class_map(AnimalMap)
    config.register_class_map(DogMap)
    sink = io.StringIO()
    CsvWriter(sink, config).write_records([Animal("Tom"), Dog("Rex", "pug"), Animal("Kit")])
    assert sink.getvalue() == "Tom\r\npug,Rex\r\nKit\r\n"


def test_member_that_cannot_be_constructed_is_left_out():
    config = Configuration()
    assert config.auto_map(Shape).reference_maps == []

    assert write_all([Shape("bar", Segment(1, 2, "cm"))]) == "name\r\nbar\r\n"
    reader = CsvReader(io.StringIO("name\r\nbar\r\n"), config)
    assert list(reader.get_records(Shape)) == [Shape("bar", None)]


def test_invalidate_record_cache_picks_up_a_new_map():
    config = Configuration(has_header_record=False)
    sink = io.StringIO()
    writer = CsvWriter(sink, config)
    writer.write_record(Pet(1, "Rex"))

    class PetMap(ClassMap):
        def __init__(self):
            super().__init__(Pet)
            self.map("name")

    config.register_class_map(PetMap)
    writer.write_record(Pet(2, "Tom"))
    writer.invalidate_record_cache(Pet)
    writer.write_record(Pet(3, "Max"))

    config.unregister_class_map(Pet)
    writer.invalidate_record_cache(Pet)
    writer.write_record(Pet(4, "Bo"))
    assert sink.getvalue() == "1,Rex\r\n2,Tom\r\nMax\r\n4,Bo\r\n"


def test_write_field_rejects_mapped_objects():
    writer = CsvWriter(io.StringIO())
    with pytest.raises(ConfigurationError):
        writer.write_field(Pet(1, "Rex"))


def test_collection_member_writes_one_field_per_item():
    text = write_all([Tagged(1, ["a", "b"]), Tagged(2, [])])
    assert text == "id,tags\r\n1,a,b\r\n2,\r\n"


def test_collection_with_index_range_has_fixed_width():
    config = Configuration()

    class TaggedMap(ClassMap):
        def __init__(self):
            super().__init__(Tagged)
            self.map("id").index(0)
            self.map("tags").name("tag").index(1, 3)

    config.register_class_map(TaggedMap)
    sink = io.StringIO()
    writer = CsvWriter(sink, config)
    writer.write_records([Tagged(1, ["a"]), Tagged(2, ["x", "y", "z"])])
    assert sink.getvalue() == "id,tag,tag,tag\r\n1,a,,\r\n2,x,y,z\r\n"
    with pytest.raises(TypeConversionError) as exc:
        writer.write_record(Tagged(3, list("abcd")))
    assert exc.value.member == "tags"
