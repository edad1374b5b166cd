"""Visitors for the query-analysis context: batch text, connection, index blob."""

from __future__ import annotations

from pesession.models import PeSessionConnection
from pesession.nrbf_events import (
    ClassDef,
    ClassMember,
    PrimitiveType,
    Value,
    ValueKind,
    Visitor,
)


class BatchTextVisitor(Visitor):
    """Captures QueryAnalyzerContext.traceRowText, the submitted batch SQL."""

    def __init__(self) -> None:
        self.result = ""
        self._stack: list[bool] = []
        self._pending_id = 0
        self._strings: dict[int, str] = {}

    def enter_instance(self, object_id: int, class_def: ClassDef) -> bool:
        self._stack.append("QueryAnalyzerContext" in class_def.name)
        return True

    def exit_instance(self, object_id: int, class_def: ClassDef) -> None:
        if self._stack:
            self._stack.pop()

    def member(self, member: ClassMember, value: Value) -> None:
        if not self._stack or not self._stack[-1]:
            return
        if member.name != "traceRowText":
            return
        if value.kind is ValueKind.STRING:
            if value.s:
                self.result = value.s
        elif value.kind is ValueKind.OBJECT_REF and value.object_id:
            known = self._strings.get(value.object_id)
            if known is not None:
                self.result = known
            else:
                self._pending_id = value.object_id

    def string_object(self, object_id: int, text: str) -> None:
        if self._pending_id and object_id == self._pending_id:
            self.result = text
            self._pending_id = 0
        self._strings.setdefault(object_id, text)

    def enter_object_array(self, object_id: int, length: int) -> bool:
        return True

    def enter_primitive_array(
        self, object_id: int, primitive_type: PrimitiveType, length: int
    ) -> bool:
        return False


_CONNECTION_STRING_MEMBERS = {
    "_ServerName": "server_name",
    "_DatabaseName": "database_name",
    "_AuthenticationType": "auth_type",
    "_Login": "login",
    "_Version": "server_version",
}


class ConnectionParamsVisitor(Visitor):
    """Captures the fields of a ConnectionParameters block."""

    def __init__(self) -> None:
        self.result = PeSessionConnection()
        self._stack: list[bool] = []
        self._strings: dict[int, str] = {}
        self._pending: list[tuple[int, str]] = []

    def enter_instance(self, object_id: int, class_def: ClassDef) -> bool:
        self._stack.append("ConnectionParameters" in class_def.name)
        return True

    def exit_instance(self, object_id: int, class_def: ClassDef) -> None:
        if self._stack:
            self._stack.pop()

    def member(self, member: ClassMember, value: Value) -> None:
        if not self._stack or not self._stack[-1]:
            return
        attr = _CONNECTION_STRING_MEMBERS.get(member.name)
        if attr is not None:
            if value.kind is ValueKind.STRING:
                setattr(self.result, attr, value.s)
            elif value.kind is ValueKind.OBJECT_REF and value.object_id:
                known = self._strings.get(value.object_id)
                if known is not None:
                    setattr(self.result, attr, known)
                else:
                    self._pending.append((value.object_id, attr))
        elif member.name == "_UseIntegratedSecurity":
            if value.kind is ValueKind.BOOL:
                self.result.use_integrated_security = value.i != 0

    def string_object(self, object_id: int, text: str) -> None:
        self._strings.setdefault(object_id, text)
        remaining = []
        for target_id, attr in self._pending:
            if target_id == object_id:
                setattr(self.result, attr, text)
            else:
                remaining.append((target_id, attr))
        self._pending = remaining

    def enter_object_array(self, object_id: int, length: int) -> bool:
        return True

    def enter_primitive_array(
        self, object_id: int, primitive_type: PrimitiveType, length: int
    ) -> bool:
        return False


class IndexAnalyzerBlobVisitor(Visitor):
    """Captures the QueryAnalyzerInput.IndexAnalyzerResultsGz byte array."""

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._stack: list[bool] = []
        self._target_id = 0
        self._collecting = False

    @property
    def blob(self) -> bytes:
        """The captured (still gzipped) bytes; empty when none were found."""
        return bytes(self._buffer)

    def enter_instance(self, object_id: int, class_def: ClassDef) -> bool:
        self._stack.append("QueryAnalyzerInput" in class_def.name)
        return True

    def exit_instance(self, object_id: int, class_def: ClassDef) -> None:
        if self._stack:
            self._stack.pop()

    def member(self, member: ClassMember, value: Value) -> None:
        if (
            self._stack
            and self._stack[-1]
            and "IndexAnalyzerResultsGz" in member.name
            and value.kind is ValueKind.OBJECT_REF
            and value.object_id
        ):
            self._target_id = value.object_id

    def enter_primitive_array(
        self, object_id: int, primitive_type: PrimitiveType, length: int
    ) -> bool:
        if (
            self._target_id
            and object_id == self._target_id
            and primitive_type is PrimitiveType.BYTE
        ):
            self._collecting = True
        return self._collecting

    def primitive_array_value(self, object_id: int, value: Value) -> None:
        if self._collecting:
            self._buffer.append(value.u & 0xFF)

    def exit_primitive_array(self, object_id: int) -> None:
        self._collecting = False

    def enter_object_array(self, object_id: int, length: int) -> bool:
        return True