"""Visitors that pull runtime and trace metrics out of NRBF streams."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from pesession.models import (
    SessionTraceData,
    StatementRuntimeAgg,
    TraceMetrics,
    WaitEntry,
)
from pesession.nrbf_events import (
    ClassDef,
    ClassMember,
    PrimitiveType,
    Value,
    ValueKind,
    Visitor,
)

_AGGREGATE_CLASS = "PlanQueryProfileAggregate"
_OFFSET_MEMBER = "<StatementStartOffset>k__BackingField"
_NODE_MEMBER = "<NodeID>k__BackingField"
_RUNTIME_MEMBERS = {
    "<RowCount>k__BackingField": "row_count",
    "<ElapsedTimeMs>k__BackingField": "elapsed_ms",
    "<CpuTimeMs>k__BackingField": "cpu_ms",
    "<LogicalReadCount>k__BackingField": "logical_reads",
    "<PhysicalReadCount>k__BackingField": "physical_reads",
    "<ReadAheadCount>k__BackingField": "read_aheads",
    "<WritePageCount>k__BackingField": "write_pages",
    "<EndOfScanCount>k__BackingField": "end_of_scan_count",
    "<RebindCount>k__BackingField": "rebind_count",
}
_RUNTIME_METRICS = tuple(_RUNTIME_MEMBERS.values())
_MAXED_ACROSS_NODES = ("row_count", "elapsed_ms")
_SUMMED_ACROSS_NODES = tuple(
    name for name in _RUNTIME_METRICS if name not in _MAXED_ACROSS_NODES
)


def _to_int32(number: int) -> int:
    """Wrap an integer to a signed 32-bit value."""
    number &= 0xFFFFFFFF
    return number - 0x100000000 if number & 0x80000000 else number


class RuntimeVisitor(Visitor):
    """Aggregates PlanQueryProfileAggregate records per statement offset.

    A live-execution stream holds many snapshots with cumulative counters.
    Each (offset, node) pair keeps the per-field maximum across snapshots;
    :meth:`finalize` then combines nodes per offset: row count and elapsed
    time by maximum, the other counters by sum.
    """

    def __init__(self) -> None:
        self.by_offset: dict[int, StatementRuntimeAgg] = {}
        self._current = StatementRuntimeAgg()
        self._node_id = -1
        self._offset_set = False
        self._collecting = False
        self._per_node: dict[tuple[int, int], StatementRuntimeAgg] = {}

    def enter_instance(self, object_id: int, class_def: ClassDef) -> bool:
        if _AGGREGATE_CLASS in class_def.name:
            self._current = StatementRuntimeAgg()
            self._node_id = -1
            self._offset_set = False
            self._collecting = True
        return True

    def member(self, member: ClassMember, value: Value) -> None:
        if not self._collecting:
            return
        name = member.name
        if name == _OFFSET_MEMBER:
            self._current.statement_start_offset = value.i
            self._offset_set = True
        elif name == _NODE_MEMBER:
            self._node_id = _to_int32(value.i)
        else:
            attr = _RUNTIME_MEMBERS.get(name)
            if attr is not None:
                setattr(self._current, attr, value.i)

    def exit_instance(self, object_id: int, class_def: ClassDef) -> None:
        if not self._collecting or _AGGREGATE_CLASS not in class_def.name:
            return
        self._collecting = False
        if not self._offset_set:
            return
        current = self._current
        key = (current.statement_start_offset, self._node_id & 0xFFFF)
        slot = self._per_node.setdefault(key, StatementRuntimeAgg())
        slot.statement_start_offset = current.statement_start_offset
        for attr in _RUNTIME_METRICS:
            if getattr(current, attr) > getattr(slot, attr):
                setattr(slot, attr, getattr(current, attr))

    def enter_object_array(self, object_id: int, length: int) -> bool:
        return True

    def enter_string_array(self, object_id: int, length: int) -> bool:
        return False

    def enter_primitive_array(
        self, object_id: int, primitive_type: PrimitiveType, length: int
    ) -> bool:
        return False

    def finalize(self) -> None:
        """Combine the per-node maxima into per-offset aggregates."""
        self.by_offset = {}
        for node in self._per_node.values():
            offset = node.statement_start_offset
            slot = self.by_offset.setdefault(
                offset, StatementRuntimeAgg(statement_start_offset=offset)
            )
            for attr in _MAXED_ACROSS_NODES:
                if getattr(node, attr) > getattr(slot, attr):
                    setattr(slot, attr, getattr(node, attr))
            for attr in _SUMMED_ACROSS_NODES:
                setattr(slot, attr, getattr(slot, attr) + getattr(node, attr))

    def aggregates(self) -> list[StatementRuntimeAgg]:
        """Finalized aggregates, sorted by statement start offset."""
        return sorted(
            self.by_offset.values(), key=lambda agg: agg.statement_start_offset
        )


class _Kind(enum.Enum):
    OTHER = enum.auto()
    TRACE_ROW = enum.auto()
    QUERY_STATS = enum.auto()
    WAIT_AGGREGATE = enum.auto()
    PLAN_DATA = enum.auto()


@dataclass
class _Frame:
    kind: _Kind = _Kind.OTHER
    metrics: TraceMetrics = field(default_factory=TraceMetrics)
    wait: WaitEntry = field(default_factory=WaitEntry)
    plan_handle_hex: str = ""
    pending_wait_type_id: int = 0
    pending_object_name_id: int = 0
    pending_text_id: int = 0


_TRACE_INT_FIELDS = {
    "Duration": "duration_us",
    "Cpu": "cpu_us",
    "Reads": "reads",
    "Writes": "writes",
    "RowCounts": "row_count",
    "Offset": "offset_bytes",
}
_TRACE_INT32_FIELDS = {
    "ObjectID": "object_id",
    "NestLevel": "nest_level",
    "LineNumber": "line_number",
}
_TRACE_DATETIME_FIELDS = {
    "StartTimeUtc": "start_dt_raw",
    "EndTimeUtc": "end_dt_raw",
}
_TRACE_STRING_FIELDS = {
    "ObjectName": ("object_name", "pending_object_name_id"),
    "TextData": ("text", "pending_text_id"),
}
_QUERY_STATS_FIELDS = {
    "CpuTime": "cpu_us",
    "Duration": "duration_us",
    "LogicalReads": "reads",
    "UdfCpuTime": "udf_cpu_us",
    "UdfDuration": "udf_duration_us",
}
_BACKING_SUFFIX = ">k__BackingField"


def _classify(name: str) -> _Kind:
    if ".Trace.TraceRow" in name:
        return _Kind.TRACE_ROW
    if name == "Intercerve.SqlServer.Plans.QueryStats":
        return _Kind.QUERY_STATS
    if name == "Intercerve.SqlServer.XEvents.WaitAggregate":
        return _Kind.WAIT_AGGREGATE
    if ".Plans.PlanData" in name and "+" not in name:
        return _Kind.PLAN_DATA
    return _Kind.OTHER


class TraceVisitor(Visitor):
    """Collects trace rows, query stats, wait aggregates and plan handles.

    Records land in :attr:`out` in document order. String members that
    refer forward to a string object are patched in when it arrives.
    """

    def __init__(self) -> None:
        self.out = SessionTraceData()
        self._stack: list[_Frame] = []
        self._current_member = ""
        self._collecting_bytes = False
        self._byte_buf = bytearray()
        self._strings: dict[int, str] = {}
        self._pending_wait_types: dict[int, list[int]] = {}
        self._pending_object_names: dict[int, list[int]] = {}
        self._pending_texts: dict[int, list[int]] = {}

    def enter_instance(self, object_id: int, class_def: ClassDef) -> bool:
        self._stack.append(_Frame(kind=_classify(class_def.name)))
        return True

    def member(self, member: ClassMember, value: Value) -> None:
        self._current_member = member.name
        if not self._stack:
            return
        top = self._stack[-1]
        if top.kind in (_Kind.OTHER, _Kind.PLAN_DATA):
            return
        name = member.name
        open_at = name.find("<")
        close_at = name.find(_BACKING_SUFFIX)
        if open_at < 0 or close_at < 0:
            return
        field_name = name[open_at + 1 : close_at]

        if top.kind is _Kind.TRACE_ROW:
            self._trace_row_member(top, field_name, value)
        elif top.kind is _Kind.QUERY_STATS:
            attr = _QUERY_STATS_FIELDS.get(field_name)
            if attr is not None:
                setattr(top.metrics, attr, value.i)
        elif top.kind is _Kind.WAIT_AGGREGATE:
            if field_name == "WaitType":
                top.wait.wait_type = self._resolve_string(value)
                if self._is_unresolved_ref(top.wait.wait_type, value):
                    top.pending_wait_type_id = value.object_id
            elif field_name == "TotalDuration":
                top.wait.total_duration_ms = value.i
            elif field_name == "TotalSignalDuration":
                top.wait.total_signal_ms = value.i

    def _trace_row_member(self, top: _Frame, field_name: str, value: Value) -> None:
        metrics = top.metrics
        if field_name in _TRACE_INT_FIELDS:
            setattr(metrics, _TRACE_INT_FIELDS[field_name], value.i)
        elif field_name in _TRACE_DATETIME_FIELDS:
            if value.kind is ValueKind.DATETIME:
                setattr(metrics, _TRACE_DATETIME_FIELDS[field_name], value.u)
        elif field_name in _TRACE_STRING_FIELDS:
            attr, pending_attr = _TRACE_STRING_FIELDS[field_name]
            text = self._resolve_string(value)
            setattr(metrics, attr, text)
            if self._is_unresolved_ref(text, value):
                setattr(top, pending_attr, value.object_id)
        elif field_name in _TRACE_INT32_FIELDS:
            setattr(metrics, _TRACE_INT32_FIELDS[field_name], _to_int32(value.i))

    def enter_primitive_array(
        self, object_id: int, primitive_type: PrimitiveType, length: int
    ) -> bool:
        if primitive_type is PrimitiveType.BYTE and (
            "PlanHandle" in self._current_member or "SqlHandle" in self._current_member
        ):
            self._byte_buf = bytearray()
            self._collecting_bytes = True
            return True
        return False

    def primitive_array_value(self, object_id: int, value: Value) -> None:
        if self._collecting_bytes:
            self._byte_buf.append(value.u & 0xFF)

    def exit_primitive_array(self, object_id: int) -> None:
        if not self._collecting_bytes:
            return
        self._collecting_bytes = False
        collected = bytes(self._byte_buf)
        self._byte_buf = bytearray()
        if not self._stack or "PlanHandle" not in self._current_member:
            return
        hex_text = collected.hex()
        top = self._stack[-1]
        top.metrics.plan_handle_hex = hex_text
        if top.kind is _Kind.PLAN_DATA:
            top.plan_handle_hex = hex_text

    def exit_instance(self, object_id: int, class_def: ClassDef) -> None:
        if not self._stack:
            return
        frame = self._stack.pop()
        if frame.kind is _Kind.TRACE_ROW:
            index = len(self.out.traces)
            self.out.traces.append(frame.metrics)
            if frame.pending_object_name_id:
                self._pending_object_names.setdefault(
                    frame.pending_object_name_id, []
                ).append(index)
            if frame.pending_text_id:
                self._pending_texts.setdefault(frame.pending_text_id, []).append(index)
        elif frame.kind is _Kind.QUERY_STATS:
            self.out.stats.append(frame.metrics)
        elif frame.kind is _Kind.WAIT_AGGREGATE:
            frame.wait.parent_plan_handle_hex = self._enclosing_plan_handle()
            index = len(self.out.waits)
            self.out.waits.append(frame.wait)
            if frame.pending_wait_type_id:
                self._pending_wait_types.setdefault(
                    frame.pending_wait_type_id, []
                ).append(index)
        elif frame.kind is _Kind.PLAN_DATA:
            self.out.plan_handles.append(frame.plan_handle_hex)

    def _enclosing_plan_handle(self) -> str:
        for frame in reversed(self._stack):
            if frame.kind is _Kind.QUERY_STATS and frame.metrics.plan_handle_hex:
                return frame.metrics.plan_handle_hex
            if frame.kind is _Kind.PLAN_DATA and frame.plan_handle_hex:
                return frame.plan_handle_hex
        return ""

    def string_object(self, object_id: int, text: str) -> None:
        self._strings.setdefault(object_id, text)
        for pending, records, attr in (
            (self._pending_wait_types, self.out.waits, "wait_type"),
            (self._pending_object_names, self.out.traces, "object_name"),
            (self._pending_texts, self.out.traces, "text"),
        ):
            for index in pending.pop(object_id, ()):
                if index < len(records):
                    setattr(records[index], attr, text)

    def enter_object_array(self, object_id: int, length: int) -> bool:
        return True

    def _resolve_string(self, value: Value) -> str:
        if value.s:
            return value.s
        if value.kind is ValueKind.OBJECT_REF and value.object_id:
            return self._strings.get(value.object_id, "")
        return ""

    @staticmethod
    def _is_unresolved_ref(text: str, value: Value) -> bool:
        return (
            not text
            and value.kind is ValueKind.OBJECT_REF
            and bool(value.object_id)
        )