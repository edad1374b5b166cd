"""Data records describing a Plan Explorer session archive and its items."""

from __future__ import annotations

from dataclasses import dataclass, field


class PeSessionError(RuntimeError):
    """Raised when a session archive or one of its entries cannot be read."""


@dataclass
class PeSessionMeta:
    """Manifest entry for one captured session item (from meta.json)."""

    file_number: int = 0
    instance: str = ""
    database: str = ""
    login: str = ""
    created_utc: str = ""
    total_time: str = ""
    actual_rows: int = 0
    # 'E' = estimated, 'A' = actual, '?' = unknown.
    plan_type: str = "?"
    xml_block_count: int = 0


@dataclass
class PeSessionConnection:
    """Connection identity taken from the ConnectionParameters block."""

    server_name: str = ""
    database_name: str = ""
    auth_type: str = ""
    login: str = ""
    server_version: str = ""
    use_integrated_security: bool = False


@dataclass
class StatementRuntimeAgg:
    """Runtime metrics aggregated per statement start offset."""

    statement_start_offset: int = -1
    row_count: int = 0
    elapsed_ms: int = 0
    cpu_ms: int = 0
    logical_reads: int = 0
    physical_reads: int = 0
    read_aheads: int = 0
    write_pages: int = 0
    end_of_scan_count: int = 0
    rebind_count: int = 0


@dataclass
class TraceMetrics:
    """Per-statement metrics from a trace row or query-stats record.

    Durations are in microseconds. The ``*_dt_raw`` fields hold the raw
    64-bit .NET DateTime value (ticks plus kind bits); 0 means unknown.
    """

    plan_handle_hex: str = ""
    duration_us: int = 0
    cpu_us: int = 0
    udf_duration_us: int = 0
    udf_cpu_us: int = 0
    reads: int = 0
    writes: int = 0
    row_count: int = 0
    start_dt_raw: int = 0
    end_dt_raw: int = 0
    object_name: str = ""
    object_id: int = 0
    nest_level: int = 0
    line_number: int = 0
    offset_bytes: int = 0
    text: str = ""


@dataclass
class WaitEntry:
    """One wait aggregate, tagged with its enclosing plan handle if any."""

    wait_type: str = ""
    total_duration_ms: int = 0
    total_signal_ms: int = 0
    parent_plan_handle_hex: str = ""


@dataclass
class SessionTraceData:
    """Everything captured from one item's trace stream, in document order."""

    traces: list[TraceMetrics] = field(default_factory=list)
    stats: list[TraceMetrics] = field(default_factory=list)
    waits: list[WaitEntry] = field(default_factory=list)
    plan_handles: list[str] = field(default_factory=list)


@dataclass
class PeSessionItemPayload:
    """All artefacts read from one item's query-analysis blob in one pass."""

    showplan_xml_blocks: list[str] = field(default_factory=list)
    traces: SessionTraceData = field(default_factory=SessionTraceData)
    connection_params: PeSessionConnection = field(default_factory=PeSessionConnection)
    batch_text: str = ""
    index_analyzer_gz: bytes = b""