from dataclasses import dataclass, field
from typing import Annotated, Any, ClassVar, NamedTuple, Optional

import pytest
from pydantic import BaseModel

from lib_bulk.errors import MappingConflict
from lib_bulk.mapping import mapped, resolve
from lib_bulk.metadata import Column, Key, NotMapped


@dataclass
class Person:
    Id: Annotated[int, Key()]
    Name: str


@dataclass
class OrdinalAndColumnNameExample:
    Dummy: Annotated[str | None, NotMapped()] = None
    Id: Annotated[int, Column(order=0)] = 0
    Name: Annotated[str | None, NotMapped()] = None
    Name2: Annotated[str | None, Column('Name')] = None


@dataclass
class Reordered:
    a: int
    b: Annotated[int, Column(order=0)]
    c: int
    d: Annotated[int, Column(order=3)]


@dataclass
class NegativeOrdinal:
    a: Annotated[int, Column(order=-1)]


@dataclass
class DuplicateOrdinal:
    a: Annotated[int, Column(order=0)]
    b: Annotated[int, Column(order=0)]


@dataclass
class SparseOrdinal:
    a: int
    b: Annotated[int, Column(order=5)]


@dataclass
class OneBased:
    a: Annotated[int, Column(order=1)]
    b: Annotated[int, Column(order=2)]


@dataclass
class DuplicateDestination:
    first: Annotated[str, Column('name')]
    name: str


@dataclass
class TwoColumnMarkers:
    a: Annotated[int, Column('x'), Column(order=0)]


@dataclass
class NothingMapped:
    a: Annotated[int, NotMapped()]
    b: Annotated[str, NotMapped()]


@dataclass
class Empty:
    pass


@dataclass
class Payload:
    Id: Annotated[int, Key()] | None
    Data: Optional[bytes]
    Blob: Annotated[bytes | None, Column('Content')] = None
    Tags: list[str] = field(default_factory=list)
    _private: int = 0
    Registry: ClassVar[dict[str, Any]] = {}


class Point(NamedTuple):
    x: float
    y: Annotated[float, Column(order=0)]


class Reading(BaseModel):
    sensor: Annotated[str, Column('sensor_name')]
    value: float
    computed: Annotated[str, NotMapped()] = ''


class Plain:
    Id: Annotated[int, Key()]
    Label: str
    Hidden: ClassVar[int] = 3


# ----------------------
# -- Default Mapping --
# ----------------------

def test_properties_map_by_name_in_declaration_order():
    descriptors = resolve(Person)

    assert [d.destination_column for d in descriptors] == ['Id', 'Name']
    assert [d.ordinal for d in descriptors] == [0, 1]
    assert [d.should_map for d in descriptors] == [True, True]
    assert descriptors[0].is_key
    assert not descriptors[1].is_key
    assert descriptors[0].source.value_type is int
    assert descriptors[1].source.value_type is str


def test_resolution_is_idempotent():
    first = resolve(Person)
    second = resolve(Person)

    assert first == second
    assert first is second


def test_excluded_properties_are_kept_but_not_mapped():
    descriptors = resolve(OrdinalAndColumnNameExample)

    assert [d.source.name for d in mapped(descriptors)] == ['Id', 'Name2']
    excluded = [d for d in descriptors if not d.should_map]
    assert [d.source.name for d in excluded] == ['Dummy', 'Name']
    assert all(d.ordinal is None for d in excluded)


def test_ordinal_and_column_name_reconcile():
    """
    An explicit ordinal on one property and an explicit column name on
    another resolve without collision, even though an excluded property
    shares the explicit name.
    """
    by_name = {d.source.name: d for d in resolve(OrdinalAndColumnNameExample)}

    assert by_name['Id'].ordinal == 0
    assert by_name['Id'].declared_ordinal == 0
    assert by_name['Name2'].ordinal == 1
    assert by_name['Name2'].destination_column == 'Name'
    assert by_name['Name'].destination_column == 'Name'
    assert not by_name['Name'].should_map


def test_explicit_ordinals_claim_slots_before_inferred_ones():
    descriptors = resolve(Reordered)

    assert [(d.source.name, d.ordinal) for d in descriptors] == [
        ('b', 0),
        ('a', 1),
        ('c', 2),
        ('d', 3),
    ]


def test_one_based_ordinals_are_compacted():
    descriptors = resolve(OneBased)

    assert [(d.source.name, d.ordinal) for d in descriptors] == [('a', 0), ('b', 1)]
    assert [d.declared_ordinal for d in descriptors] == [1, 2]


def test_sparse_ordinals_keep_relative_position():
    descriptors = resolve(SparseOrdinal)

    assert [(d.source.name, d.ordinal) for d in descriptors] == [('a', 0), ('b', 1)]
    assert descriptors[1].declared_ordinal == 5


def test_no_mapped_properties_is_not_an_error():
    assert mapped(resolve(NothingMapped)) == ()
    assert len(resolve(NothingMapped)) == 2
    assert resolve(Empty) == ()


# -----------------
# -- Type Shapes --
# -----------------

def test_optional_and_annotated_are_unwrapped():
    by_name = {d.source.name: d for d in resolve(Payload)}

    assert by_name['Id'].source.value_type is int
    assert by_name['Id'].source.nullable
    assert by_name['Id'].is_key

    assert by_name['Data'].source.value_type is bytes
    assert by_name['Data'].source.nullable

    assert by_name['Blob'].destination_column == 'Content'
    assert by_name['Blob'].source.nullable

    assert by_name['Tags'].source.value_type == list[str]
    assert not by_name['Tags'].source.nullable


def test_private_and_classvar_attributes_are_skipped():
    names = [d.source.name for d in resolve(Payload)]
    assert '_private' not in names
    assert 'Registry' not in names

    names = [d.source.name for d in resolve(Plain)]
    assert names == ['Id', 'Label']


def test_namedtuple_fields():
    descriptors = resolve(Point)
    assert [(d.source.name, d.ordinal) for d in descriptors] == [('y', 0), ('x', 1)]


def test_pydantic_model_fields():
    descriptors = resolve(Reading)

    assert [d.destination_column for d in mapped(descriptors)] == ['sensor_name', 'value']
    assert [d.source.name for d in descriptors if not d.should_map] == ['computed']


def test_source_property_reads_attribute():
    descriptor = resolve(Person)[1]
    assert descriptor.source.get(Person(Id=1, Name='Bob')) == 'Bob'


# ---------------
# -- Conflicts --
# ---------------

@pytest.mark.parametrize("record_type,match", [
    (NegativeOrdinal, "negative ordinal -1"),
    (DuplicateOrdinal, "ordinal 0 is already claimed by a"),
    (DuplicateDestination, 'destination column "name" is already mapped from first'),
    (TwoColumnMarkers, "more than one Column declaration"),
])
def test_conflicting_metadata_is_rejected(record_type: type, match: str):
    with pytest.raises(MappingConflict, match=match):
        resolve(record_type)


def test_conflict_names_type_and_property():
    with pytest.raises(MappingConflict) as exc_info:
        resolve(DuplicateOrdinal)

    assert exc_info.value.record_type is DuplicateOrdinal
    assert exc_info.value.property_name == 'b'
    assert str(exc_info.value).startswith('DuplicateOrdinal.b: ')


def test_non_class_is_rejected():
    with pytest.raises(MappingConflict, match="expected a record class"):
        resolve(42)  # type: ignore[arg-type]
