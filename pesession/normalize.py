"""Shape-only normalisation of showplan XML for plan de-duplication.

Runtime data (RunTimeInformation, QueryTimeStats, WaitStats,
MemoryGrantInfo) and per-call attribute values (statement ids, runtime
parameter values, compile timings) are removed or blanked so that two
snapshots of the same plan shape normalise to the same text.
"""

from __future__ import annotations

_TAG_TERMINATORS = frozenset(" />\t\r\n")
_ATTR_PRECEDERS = frozenset(" \t\r\n<")
_TRAILING_WS = " \t\r\n"

_RUNTIME_ELEMENTS = (
    "RunTimeInformation",
    "QueryTimeStats",
    "WaitStats",
    "MemoryGrantInfo",
)
_VOLATILE_ATTRIBUTES = (
    "StatementId",
    "StatementCompId",
    "RetrievedFromCache",
    "ParameterRuntimeValue",
    "CompileTime",
    "CompileCPU",
)


def strip_element(xml: str, tag: str) -> str:
    """Remove every ``<tag ...>...</tag>`` or ``<tag .../>`` element.

    Only exact tag names are matched: ``<tagX`` is left alone. Malformed
    tails (no closing ``>`` or no closing tag) are kept verbatim. Nested
    elements of the same name are not tracked.
    """
    open_prefix = f"<{tag}"
    close = f"</{tag}>"
    parts: list[str] = []
    pos = 0
    size = len(xml)
    while pos < size:
        start = xml.find(open_prefix, pos)
        if start < 0:
            parts.append(xml[pos:])
            break
        after = start + len(open_prefix)
        following = xml[after] if after < size else ""
        if following not in _TAG_TERMINATORS or following == "":
            parts.append(xml[pos:after])
            pos = after
            continue
        parts.append(xml[pos:start])
        end = xml.find(">", after)
        if end < 0:
            parts.append(xml[start:])
            break
        if xml[end - 1] == "/":
            pos = end + 1
            continue
        close_pos = xml.find(close, end + 1)
        if close_pos < 0:
            parts.append(xml[start:])
            break
        pos = close_pos + len(close)
    return "".join(parts)


def blank_attr(xml: str, name: str) -> str:
    """Replace the value of every ``name="..."`` attribute with ``""``.

    The attribute must be preceded by whitespace or ``<`` so that longer
    names ending in ``name`` are not touched. An unterminated value is
    kept verbatim.
    """
    needle = f'{name}="'
    parts: list[str] = []
    pos = 0
    size = len(xml)
    while pos < size:
        found = xml.find(needle, pos)
        if found < 0:
            parts.append(xml[pos:])
            break
        value_start = found + len(needle)
        preceding = xml[found - 1] if found > 0 else ""
        if preceding not in _ATTR_PRECEDERS or preceding == "":
            parts.append(xml[pos:value_start])
            pos = value_start
            continue
        parts.append(xml[pos:found])
        parts.append(needle)
        quote = xml.find('"', value_start)
        if quote < 0:
            parts.append(xml[value_start:])
            break
        parts.append('"')
        pos = quote + 1
    return "".join(parts)


def rtrim(text: str) -> str:
    """Drop trailing spaces, tabs, carriage returns and line feeds."""
    return text.rstrip(_TRAILING_WS)


def normalize_plan_xml(xml: str) -> str:
    """Return the shape-only form of a showplan XML document."""
    result = xml
    for tag in _RUNTIME_ELEMENTS:
        result = strip_element(result, tag)
    for name in _VOLATILE_ATTRIBUTES:
        result = blank_attr(result, name)
    return result