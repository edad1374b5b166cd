import dataclasses

import pytest

from pesession.nrbf_events import (
    ClassDef,
    ClassMember,
    MultiVisitor,
    NrbfParseError,
    PrimitiveType,
    Value,
    ValueKind,
    Visitor,
)


class Recorder(Visitor):
    def __init__(self, tag, want_instances=True, want_bytes=False):
        self.tag = tag
        self.want_instances = want_instances
        self.want_bytes = want_bytes
        self.events = []

    def enter_instance(self, object_id, class_def):
        self.events.append(("enter", object_id, class_def.name))
        return self.want_instances

    def exit_instance(self, object_id, class_def):
        self.events.append(("exit", object_id, class_def.name))

    def member(self, member, value):
        self.events.append(("member", member.name, value.i))

    def string_object(self, object_id, text):
        self.events.append(("string", object_id, text))

    def enter_primitive_array(self, object_id, primitive_type, length):
        self.events.append(("parray", object_id, length))
        return self.want_bytes

    def primitive_array_value(self, object_id, value):
        self.events.append(("pvalue", object_id, value.u))

    def exit_primitive_array(self, object_id):
        self.events.append(("pexit", object_id))


def test_primitive_type_wire_codes():
    assert PrimitiveType.BYTE == 2
    assert PrimitiveType.STRING == 18
    assert PrimitiveType(9) is PrimitiveType.INT64


def test_value_defaults():
    v = Value()
    assert v.kind is ValueKind.NULL
    assert (v.i, v.u, v.s, v.object_id) == (0, 0, "", 0)


def test_value_is_immutable():
    v = Value(kind=ValueKind.STRING, s="abc")
    with pytest.raises(dataclasses.FrozenInstanceError):
        v.s = "other"
    assert v.s == "abc"


def test_class_def_holds_members():
    d = ClassDef("Intercerve.SqlServer.Plans.QueryStats", (ClassMember("a"), ClassMember("b")))
    assert [m.name for m in d.members] == ["a", "b"]
    assert ClassDef("X") == ClassDef("X")


def test_base_visitor_defaults():
    v = Visitor()
    d = ClassDef("X")
    assert v.enter_instance(1, d) is True
    assert v.enter_object_array(1, 3) is True
    assert v.enter_string_array(1, 3) is True
    assert v.enter_primitive_array(1, PrimitiveType.BYTE, 3) is False
    assert v.exit_instance(1, d) is None


def test_parse_error_is_value_error():
    err = NrbfParseError("truncated record")
    assert isinstance(err, ValueError)
    assert str(err) == "truncated record"


def test_multi_fans_out_in_order():
    a, b = Recorder("a"), Recorder("b")
    multi = MultiVisitor()
    multi.add(a)
    multi.add(b)
    d = ClassDef("Foo")
    multi.enter_instance(5, d)
    multi.member(ClassMember("<Cpu>k__BackingField"), Value(kind=ValueKind.INT, i=42))
    multi.string_object(7, "hello")
    multi.exit_instance(5, d)
    expected = [
        ("enter", 5, "Foo"),
        ("member", "<Cpu>k__BackingField", 42),
        ("string", 7, "hello"),
        ("exit", 5, "Foo"),
    ]
    assert a.events == expected
    assert b.events == expected


def test_multi_enter_is_any_and_calls_everyone():
    a = Recorder("a", want_instances=False)
    b = Recorder("b", want_instances=True)
    multi = MultiVisitor()
    multi.add(a)
    multi.add(b)
    assert multi.enter_instance(1, ClassDef("Foo")) is True
    assert len(a.events) == 1 and len(b.events) == 1


def test_multi_enter_false_when_nobody_wants():
    multi = MultiVisitor()
    multi.add(Recorder("a", want_instances=False))
    assert multi.enter_instance(1, ClassDef("Foo")) is False


def test_empty_multi_declines_everything():
    multi = MultiVisitor()
    assert multi.enter_object_array(1, 2) is False
    assert multi.enter_primitive_array(1, PrimitiveType.BYTE, 2) is False


def test_primitive_values_only_reach_takers():
    taker = Recorder("t", want_bytes=True)
    skipper = Recorder("s", want_bytes=False)
    multi = MultiVisitor()
    multi.add(taker)
    multi.add(skipper)
    assert multi.enter_primitive_array(9, PrimitiveType.BYTE, 2) is True
    multi.primitive_array_value(9, Value(kind=ValueKind.UINT, u=0xAB))
    multi.primitive_array_value(9, Value(kind=ValueKind.UINT, u=0x01))
    multi.exit_primitive_array(9)
    assert taker.events == [
        ("parray", 9, 2),
        ("pvalue", 9, 0xAB),
        ("pvalue", 9, 0x01),
        ("pexit", 9),
    ]
    assert skipper.events == [("parray", 9, 2)]


def test_primitive_takers_forgotten_after_exit():
    taker = Recorder("t", want_bytes=True)
    multi = MultiVisitor()
    multi.add(taker)
    multi.enter_primitive_array(3, PrimitiveType.BYTE, 1)
    multi.exit_primitive_array(3)
    multi.primitive_array_value(3, Value(kind=ValueKind.UINT, u=1))
    assert ("pvalue", 3, 1) not in taker.events
    assert taker.events[-1] == ("pexit", 3)


def test_multi_can_nest():
    inner_rec = Recorder("i")
    inner = MultiVisitor()
    inner.add(inner_rec)
    outer = MultiVisitor()
    outer.add(inner)
    outer.string_object(2, "x")
    assert inner_rec.events == [("string", 2, "x")]