# pesession

Reads Plan Explorer `.pesession` archives. An archive is a ZIP file. It holds
a `meta.json` index and, for each captured item, a `<n>.queryanalysis` stream
and sometimes a `<n>.liveexecution` stream.

## Modules

- `pesession.archive`: opening archives and reading their entries.
  - `is_pesession_file(path)` checks for a ZIP signature.
  - `read_pesession_index(path)` returns one `PeSessionMeta` per manifest item.
  - `read_queryanalysis_blob(path, file_number)` returns the raw bytes of an
    item's query-analysis stream.
  - `scan_showplan_blocks(blob)` and `extract_xml_blocks(path, file_number)`
    return every `<ShowPlanXML>…</ShowPlanXML>` block in document order. They
    stop after 8192 blocks.
  - `parse_queryanalysis(blob, parser)`, `read_item_payload(path,
    file_number, parser)` and `read_runtime(path, file_number, parser)` run an
    NRBF parser over the streams.
- `pesession.models`: the dataclasses that the readers return.
  - `PeSessionMeta`
  - `PeSessionConnection`
  - `StatementRuntimeAgg`
  - `TraceMetrics`
  - `WaitEntry`
  - `SessionTraceData`
  - `PeSessionItemPayload`
  - the `PeSessionError` exception
- `pesession.nrbf_events`: the event model for a streaming NRBF reader.
  - `Visitor`
  - `MultiVisitor`
  - `Value`, `ValueKind`
  - `ClassDef`, `ClassMember`
  - `PrimitiveType`
  - `NrbfParseError`
- `pesession.trace_visitors`: `TraceVisitor` and `RuntimeVisitor`.
  - `TraceVisitor` collects trace rows, query stats, wait aggregates and plan
    handles. It patches string members that refer forward in the stream once
    the matching string object arrives.
  - `RuntimeVisitor` aggregates `PlanQueryProfileAggregate` records. For each
    (offset, node) pair it keeps the largest value of each counter across
    snapshots. `finalize()` then combines the nodes of each statement offset:
    row count and elapsed time by maximum, the other counters by sum.
    `aggregates()` returns the result sorted by offset.
- `pesession.context_visitors`: `BatchTextVisitor`, `ConnectionParamsVisitor`
  and `IndexAnalyzerBlobVisitor`.
  - `BatchTextVisitor` collects the submitted batch SQL.
  - `ConnectionParamsVisitor` collects the connection parameters.
  - `IndexAnalyzerBlobVisitor` collects the index-analyzer payload. The bytes
    are still gzipped.
- `pesession.normalize`: reduces plan XML to its shape, for deduplication.
  - `normalize_plan_xml(xml)` strips the `RunTimeInformation`,
    `QueryTimeStats`, `WaitStats` and `MemoryGrantInfo` elements.
  - It blanks the values of the `StatementId`, `StatementCompId`,
    `RetrievedFromCache`, `ParameterRuntimeValue`, `CompileTime` and
    `CompileCPU` attributes.
  - It is built from `strip_element`, `blank_attr` and `rtrim`.

## Usage

```python
from pesession.archive import (
    is_pesession_file,
    read_pesession_index,
    read_queryanalysis_blob,
    scan_showplan_blocks,
)
from pesession.normalize import normalize_plan_xml

path = "capture.pesession"
if is_pesession_file(path):
    for meta in read_pesession_index(path):
        blob = read_queryanalysis_blob(path, meta.file_number)
        for xml in scan_showplan_blocks(blob):
            shape = normalize_plan_xml(xml)
```

`PeSessionMeta.plan_type` is `'E'` for an estimated plan, `'A'` for an actual
plan and `'?'` otherwise.

## Supplying an NRBF parser

A parser is any callable `parser(blob, visitor)`. It walks the stream and
calls the `Visitor` callbacks:

- `enter_instance` and `exit_instance`
- `member`
- `string_object`
- `enter_object_array` and `enter_string_array`
- `enter_primitive_array`, `primitive_array_value` and `exit_primitive_array`

When the stream is malformed, the parser raises `NrbfParseError`. The readers
catch it and keep whatever had been collected up to that point. An exception
of any other type passes through.

`parse_queryanalysis` sends one parse to the trace, connection, batch-text and
index visitors through a `MultiVisitor`. `read_item_payload` also fills
`showplan_xml_blocks`.

## Errors

`read_pesession_index` raises `PeSessionError` in these cases:

- the file is not a ZIP archive;
- `meta.json` is missing;
- `meta.json` cannot be decoded or parsed;
- `meta.json` has no `PlanExplorerSessionItemMetadataItems` array.

An entry larger than 2 GiB is not extracted.

The per-item readers do not raise for a missing, oversized or unreadable
entry. They return empty results instead.

## What this package does not do

- It has no NRBF decoder of its own. The binary streams are read only through
  a parser that you supply.
- It does not parse showplan XML into plans or statements. It returns the XML
  blocks as text.
- It does not convert sessions to any other storage format.
- It does not decompress the index-analyzer payload.
- It provides no command-line tool.