from pesession.models import (
    PeSessionConnection,
    PeSessionError,
    PeSessionItemPayload,
    PeSessionMeta,
    SessionTraceData,
    StatementRuntimeAgg,
    TraceMetrics,
    WaitEntry,
)


def test_meta_defaults():
    m = PeSessionMeta()
    assert m.file_number == 0
    assert m.plan_type == "?"
    assert m.actual_rows == 0
    assert m.instance == ""


def test_connection_defaults():
    c = PeSessionConnection()
    assert c.use_integrated_security is False
    assert c.server_name == ""
    assert c.server_version == ""


def test_runtime_agg_offset_defaults_to_minus_one():
    s = StatementRuntimeAgg()
    assert s.statement_start_offset == -1
    assert s.row_count == 0
    assert s.rebind_count == 0


def test_trace_metrics_defaults():
    t = TraceMetrics()
    assert t.plan_handle_hex == ""
    assert t.start_dt_raw == 0
    assert t.offset_bytes == 0
    assert t.text == ""


def test_wait_entry_defaults():
    w = WaitEntry()
    assert w.wait_type == ""
    assert w.parent_plan_handle_hex == ""
    assert w.total_signal_ms == 0


def test_session_trace_data_lists_are_not_shared():
    a = SessionTraceData()
    b = SessionTraceData()
    a.traces.append(TraceMetrics(cpu_us=5))
    a.plan_handles.append("ab")
    assert b.traces == []
    assert b.plan_handles == []
    assert a.traces[0].cpu_us == 5


def test_payload_nested_defaults_are_independent():
    a = PeSessionItemPayload()
    b = PeSessionItemPayload()
    a.connection_params.login = "someone"
    a.traces.waits.append(WaitEntry(wait_type="LCK_M_S"))
    assert b.connection_params.login == ""
    assert b.traces.waits == []
    assert a.index_analyzer_gz == b""


def test_records_compare_by_value():
    assert TraceMetrics(reads=3, text="x") == TraceMetrics(reads=3, text="x")
    assert WaitEntry(wait_type="A") != WaitEntry(wait_type="B")


def test_error_carries_message():
    err = PeSessionError("meta.json not found. Not a Plan Explorer session")
    assert str(err) == "meta.json not found. Not a Plan Explorer session"
    assert err.args == ("meta.json not found. Not a Plan Explorer session",)


def test_error_is_runtime_error():
    err = PeSessionError("Missing entry: 1.queryanalysis")
    assert isinstance(err, RuntimeError)
    assert str(err) == "Missing entry: 1.queryanalysis"