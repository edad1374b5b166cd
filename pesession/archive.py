"""Reading Plan Explorer session archives (.pesession ZIP files).

An archive holds a ``meta.json`` manifest plus, per item, a
``<n>.queryanalysis`` NRBF blob and optionally a ``<n>.liveexecution``
blob. The NRBF reader is supplied by the caller as a ``parser`` callable
taking ``(blob, visitor)`` and raising :class:`NrbfParseError` on a
malformed stream.
"""

from __future__ import annotations

import json
import os
import zipfile
import zlib
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, Union

from pesession.context_visitors import (
    BatchTextVisitor,
    ConnectionParamsVisitor,
    IndexAnalyzerBlobVisitor,
)
from pesession.models import (
    PeSessionError,
    PeSessionItemPayload,
    PeSessionMeta,
    StatementRuntimeAgg,
)
from pesession.nrbf_events import MultiVisitor, NrbfParseError, Visitor
from pesession.trace_visitors import RuntimeVisitor, TraceVisitor

PathLike = Union[str, "os.PathLike[str]"]
Parser = Callable[[bytes, Visitor], None]

MAX_EXTRACT_BYTES = 2 * 1024 * 1024 * 1024
MAX_PLANS_PER_ITEM = 8192

_SHOWPLAN_OPEN = b"<ShowPlanXML"
_SHOWPLAN_CLOSE = b"</ShowPlanXML>"
_ITEMS_KEY = "PlanExplorerSessionItemMetadataItems"


def is_pesession_file(path: PathLike) -> bool:
    """Return True when the file starts with a ZIP signature."""
    try:
        with open(path, "rb") as handle:
            header = handle.read(4)
    except OSError:
        return False
    if len(header) < 4:
        return False
    return (
        header[:2] == b"PK"
        and header[2] in (3, 5, 7)
        and header[3] in (4, 6, 8)
    )


@contextmanager
def _open_archive(path: PathLike) -> Iterator[zipfile.ZipFile]:
    try:
        archive = zipfile.ZipFile(path)
    except (OSError, zipfile.BadZipFile, ValueError) as exc:
        raise PeSessionError(
            f"Not a valid ZIP / .pesession file: {os.fspath(path)}"
        ) from exc
    with archive:
        yield archive


def _extract_entry(archive: zipfile.ZipFile, name: str) -> bytes:
    try:
        info = archive.getinfo(name)
    except KeyError:
        raise PeSessionError(f"Missing entry: {name}") from None
    if info.file_size > MAX_EXTRACT_BYTES:
        raise PeSessionError(
            f"{name} exceeds {MAX_EXTRACT_BYTES // (1024 * 1024)} MiB extraction cap"
        )
    try:
        return archive.read(info)
    except (zipfile.BadZipFile, zlib.error, OSError, NotImplementedError) as exc:
        raise PeSessionError(f"Inflate failed for {name}") from exc


def _read_entry_or_empty(path: PathLike, name: str) -> bytes:
    try:
        with _open_archive(path) as archive:
            return _extract_entry(archive, name)
    except PeSessionError:
        return b""


def _opt_string(item: dict[str, Any], key: str) -> str:
    value = item.get(key)
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


def _opt_int(item: dict[str, Any], key: str) -> int:
    value = item.get(key)
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return 0


def _plan_type_char(text: str) -> str:
    if not text:
        return "?"
    first = text[0].upper()
    return first if first in ("E", "A") else "?"


def _meta_from_json(item: Any) -> PeSessionMeta:
    fields = item if isinstance(item, dict) else {}
    return PeSessionMeta(
        file_number=_opt_int(fields, "FileNumber"),
        instance=_opt_string(fields, "Instance"),
        database=_opt_string(fields, "Database"),
        login=_opt_string(fields, "Login"),
        created_utc=_opt_string(fields, "CreationDateUtc"),
        total_time=_opt_string(fields, "TotalTime"),
        actual_rows=_opt_int(fields, "ActualRows"),
        plan_type=_plan_type_char(_opt_string(fields, "PlanType")),
    )


def read_pesession_index(path: PathLike) -> list[PeSessionMeta]:
    """Decode the archive's meta.json manifest into item metadata."""
    with _open_archive(path) as archive:
        try:
            meta_bytes = _extract_entry(archive, "meta.json")
        except PeSessionError:
            raise PeSessionError(
                "meta.json not found. Not a Plan Explorer session"
            ) from None
    try:
        document = json.loads(meta_bytes.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise PeSessionError(f"meta.json parse error: {exc}") from exc
    items = document.get(_ITEMS_KEY) if isinstance(document, dict) else None
    if not isinstance(items, list):
        raise PeSessionError(f"meta.json missing {_ITEMS_KEY}")
    return [_meta_from_json(item) for item in items]


def read_queryanalysis_blob(path: PathLike, file_number: int) -> bytes:
    """Raw bytes of ``<file_number>.queryanalysis``; empty when unavailable."""
    return _read_entry_or_empty(path, f"{file_number}.queryanalysis")


def scan_showplan_blocks(blob: bytes) -> list[str]:
    """Every ``<ShowPlanXML ...>...</ShowPlanXML>`` substring, in order."""
    data = blob.encode("utf-8") if isinstance(blob, str) else bytes(blob)
    blocks: list[str] = []
    pos = 0
    while len(blocks) < MAX_PLANS_PER_ITEM:
        start = data.find(_SHOWPLAN_OPEN, pos)
        if start < 0:
            break
        close = data.find(_SHOWPLAN_CLOSE, start + len(_SHOWPLAN_OPEN))
        if close < 0:
            break
        end = close + len(_SHOWPLAN_CLOSE)
        blocks.append(data[start:end].decode("utf-8", errors="replace"))
        pos = end
    return blocks


def extract_xml_blocks(path: PathLike, file_number: int) -> list[str]:
    """ShowPlanXML blocks of one item; empty when the item is absent."""
    blob = read_queryanalysis_blob(path, file_number)
    return scan_showplan_blocks(blob) if blob else []


def parse_queryanalysis(blob: bytes, parser: Parser) -> PeSessionItemPayload:
    """Run one NRBF parse feeding the trace, connection, batch and index visitors.

    Parse errors are absorbed; whatever was captured before them is kept.
    """
    trace = TraceVisitor()
    connection = ConnectionParamsVisitor()
    batch = BatchTextVisitor()
    index = IndexAnalyzerBlobVisitor()
    multi = MultiVisitor()
    for visitor in (trace, connection, batch, index):
        multi.add(visitor)
    try:
        parser(blob, multi)
    except NrbfParseError:
        pass
    return PeSessionItemPayload(
        traces=trace.out,
        connection_params=connection.result,
        batch_text=batch.result,
        index_analyzer_gz=index.blob,
    )


def read_item_payload(
    path: PathLike, file_number: int, parser: Parser
) -> PeSessionItemPayload:
    """Extract one item's blob once and return everything it carries."""
    blob = read_queryanalysis_blob(path, file_number)
    if not blob:
        return PeSessionItemPayload()
    payload = parse_queryanalysis(blob, parser)
    payload.showplan_xml_blocks = scan_showplan_blocks(blob)
    return payload


def read_runtime(
    path: PathLike, file_number: int, parser: Parser
) -> list[StatementRuntimeAgg]:
    """Per-statement runtime aggregates from ``<file_number>.liveexecution``.

    Sorted by statement start offset; empty when the entry is absent or
    the stream cannot be parsed.
    """
    blob = _read_entry_or_empty(path, f"{file_number}.liveexecution")
    if not blob:
        return []
    visitor = RuntimeVisitor()
    try:
        parser(blob, visitor)
    except NrbfParseError:
        return []
    visitor.finalize()
    return visitor.aggregates()