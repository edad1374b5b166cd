"""Event model for a streaming .NET binary-serialization (NRBF) reader.

A reader walks the record stream and reports what it sees to a
:class:`Visitor`. :class:`MultiVisitor` fans one stream out to several
visitors so a single parse can feed many consumers.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class NrbfParseError(ValueError):
    """Raised by a reader when the record stream is malformed."""


class ValueKind(enum.Enum):
    """What a member value carries."""

    NULL = enum.auto()
    BOOL = enum.auto()
    INT = enum.auto()
    UINT = enum.auto()
    DOUBLE = enum.auto()
    CHAR = enum.auto()
    STRING = enum.auto()
    DATETIME = enum.auto()
    TIMESPAN = enum.auto()
    DECIMAL = enum.auto()
    OBJECT_REF = enum.auto()


class PrimitiveType(enum.IntEnum):
    """Primitive type codes as they appear on the wire."""

    BOOLEAN = 1
    BYTE = 2
    CHAR = 3
    DECIMAL = 5
    DOUBLE = 6
    INT16 = 7
    INT32 = 8
    INT64 = 9
    SBYTE = 10
    SINGLE = 11
    TIMESPAN = 12
    DATETIME = 13
    UINT16 = 14
    UINT32 = 15
    UINT64 = 16
    NULL = 17
    STRING = 18


@dataclass(frozen=True)
class Value:
    """A decoded member or array-element value.

    ``i`` holds signed integers and booleans, ``u`` unsigned integers and
    raw DateTime bits, ``s`` inline strings and ``object_id`` the target of
    an object reference (0 when there is none).
    """

    kind: ValueKind = ValueKind.NULL
    i: int = 0
    u: int = 0
    f: float = 0.0
    s: str = ""
    object_id: int = 0


@dataclass(frozen=True)
class ClassMember:
    """One named member of a serialized class."""

    name: str
    primitive_type: PrimitiveType | None = None


@dataclass(frozen=True)
class ClassDef:
    """A serialized class: its full name and member layout."""

    name: str
    members: tuple[ClassMember, ...] = field(default_factory=tuple)


class Visitor:
    """Receives events from a reader. Every callback has a harmless default.

    The ``enter_*`` callbacks return whether the visitor wants the
    contents: instances and object/string arrays are descended into by
    default, primitive arrays are skipped by default.
    """

    def enter_instance(self, object_id: int, class_def: ClassDef) -> bool:
        return True

    def exit_instance(self, object_id: int, class_def: ClassDef) -> None:
        pass

    def member(self, member: ClassMember, value: Value) -> None:
        pass

    def string_object(self, object_id: int, text: str) -> None:
        pass

    def enter_object_array(self, object_id: int, length: int) -> bool:
        return True

    def enter_string_array(self, object_id: int, length: int) -> bool:
        return True

    def enter_primitive_array(
        self, object_id: int, primitive_type: PrimitiveType, length: int
    ) -> bool:
        return False

    def primitive_array_value(self, object_id: int, value: Value) -> None:
        pass

    def exit_primitive_array(self, object_id: int) -> None:
        pass


class MultiVisitor(Visitor):
    """Forwards every event to each added visitor, in the order added.

    ``enter_*`` callbacks reach every visitor and return True when any of
    them wants the contents. Primitive array elements and the closing
    event go only to the visitors that accepted that array.
    """

    def __init__(self) -> None:
        self._visitors: list[Visitor] = []
        self._array_takers: dict[int, list[Visitor]] = {}

    def add(self, visitor: Visitor) -> None:
        self._visitors.append(visitor)

    def enter_instance(self, object_id: int, class_def: ClassDef) -> bool:
        answers = [v.enter_instance(object_id, class_def) for v in self._visitors]
        return any(answers)

    def exit_instance(self, object_id: int, class_def: ClassDef) -> None:
        for v in self._visitors:
            v.exit_instance(object_id, class_def)

    def member(self, member: ClassMember, value: Value) -> None:
        for v in self._visitors:
            v.member(member, value)

    def string_object(self, object_id: int, text: str) -> None:
        for v in self._visitors:
            v.string_object(object_id, text)

    def enter_object_array(self, object_id: int, length: int) -> bool:
        answers = [v.enter_object_array(object_id, length) for v in self._visitors]
        return any(answers)

    def enter_string_array(self, object_id: int, length: int) -> bool:
        answers = [v.enter_string_array(object_id, length) for v in self._visitors]
        return any(answers)

    def enter_primitive_array(
        self, object_id: int, primitive_type: PrimitiveType, length: int
    ) -> bool:
        takers = [
            v
            for v in self._visitors
            if v.enter_primitive_array(object_id, primitive_type, length)
        ]
        if takers:
            self._array_takers[object_id] = takers
        return bool(takers)

    def primitive_array_value(self, object_id: int, value: Value) -> None:
        for v in self._array_takers.get(object_id, ()):
            v.primitive_array_value(object_id, value)

    def exit_primitive_array(self, object_id: int) -> None:
        for v in self._array_takers.pop(object_id, ()):
            v.exit_primitive_array(object_id)