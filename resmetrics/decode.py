"""Decoding of kubelet resource metrics in the Prometheus text format."""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterator
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone

from resmetrics.model import MetricsBatch, MetricsPoint, NamespacedName, PodMetricsPoint

log = logging.getLogger(__name__)

NODE_CPU_USAGE = "node_cpu_usage_seconds_total"
NODE_MEMORY_USAGE = "node_memory_working_set_bytes"
CONTAINER_CPU_USAGE = "container_cpu_usage_seconds_total"
CONTAINER_MEMORY_USAGE = "container_memory_working_set_bytes"
CONTAINER_START_TIME = "container_start_time_seconds"

_CONTAINER_METRICS = frozenset({CONTAINER_CPU_USAGE, CONTAINER_MEMORY_USAGE, CONTAINER_START_TIME})
_METRIC_TYPES = frozenset({"counter", "gauge", "histogram", "summary", "untyped"})

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_INT64_MIN = -(2**63)
_TWO_63 = 2**63
_UINT64_MASK = 2**64 - 1

_METRIC_NAME = re.compile(r"[a-zA-Z_:][a-zA-Z0-9_:]*")
_WS = re.compile(r"[ \t]+")
_LABEL = re.compile(r'[ \t]*([a-zA-Z_][a-zA-Z0-9_]*)[ \t]*=[ \t]*"((?:[^"\\\n]|\\.)*)"[ \t]*')
_LABEL_END = re.compile(r"[ \t]*\}")
_META = re.compile(r"[ \t]*(HELP|TYPE)[ \t]+(.*)")
_TIMESTAMP = re.compile(r"[0-9]+")
_ESCAPE = re.compile(r"\\(.)")
_INVALID_UTF8 = re.compile("[\udc80-\udcff]")
_UNESCAPES = {"\\": "\\", '"': '"', "n": "\n"}


class DecodeError(ValueError):
    """Raised when a resource metrics payload cannot be parsed."""


@dataclass(frozen=True)
class _Sample:
    name: str
    labels: dict[str, str]
    value: float
    timestamp_ms: int | None


def _unescape(value: str) -> str:
    return _ESCAPE.sub(lambda m: _UNESCAPES.get(m.group(1), m.group(0)), value)


def _parse_labels(line: str, pos: int, labels: dict[str, str]) -> int:
    while True:
        end = _LABEL_END.match(line, pos)
        if end:
            return end.end()
        match = _LABEL.match(line, pos)
        if match is None:
            raise DecodeError("malformed label set")
        value = match.group(2)
        if _INVALID_UTF8.search(value):
            raise DecodeError("invalid UTF-8 label value")
        labels[match.group(1)] = _unescape(value)
        pos = match.end()
        if line.startswith(",", pos):
            pos += 1
            continue
        end = _LABEL_END.match(line, pos)
        if end is None:
            raise DecodeError("expected ',' or '}' in label set")
        return end.end()


def _parse_value(token: str) -> float:
    if "_" in token or not token.isascii() or any(c.isspace() for c in token):
        raise DecodeError(f"invalid sample value {token!r}")
    try:
        return float(token)
    except ValueError:
        pass
    if "x" in token.lower() and "p" in token.lower():
        try:
            return float.fromhex(token)
        except ValueError:
            pass
    raise DecodeError(f"invalid sample value {token!r}")


def _parse_timestamp(token: str) -> int:
    if not _TIMESTAMP.fullmatch(token):
        raise DecodeError(f"invalid timestamp {token!r}")
    value = int(token)
    if value >= _TWO_63:
        raise DecodeError(f"timestamp {token!r} out of range")
    return value


def _check_comment(body: str) -> None:
    match = _META.match(body)
    if match is None:
        return
    keyword, rest = match.groups()
    parts = _WS.split(rest, maxsplit=1)
    if not _METRIC_NAME.fullmatch(parts[0]):
        raise DecodeError(f"invalid metric name in {keyword} line")
    if keyword == "TYPE" and (len(parts) < 2 or parts[1] not in _METRIC_TYPES):
        raise DecodeError("invalid metric type in TYPE line")


def _parse_series(line: str) -> _Sample:
    match = _METRIC_NAME.match(line)
    if match is None:
        raise DecodeError(f"invalid metric name at {line[:40]!r}")
    name = match.group()
    pos = match.end()
    labels: dict[str, str] = {}
    gap = _WS.match(line, pos)
    brace = gap.end() if gap else pos
    if line.startswith("{", brace):
        pos = _parse_labels(line, brace + 1, labels)
    rest = line[pos:]
    if not rest or rest[0] not in " \t":
        raise DecodeError(f"expected value after metric {name!r}")
    tokens = _WS.split(rest.strip(" \t"))
    if len(tokens) > 2:
        raise DecodeError("unexpected text after timestamp")
    value = _parse_value(tokens[0])
    timestamp = _parse_timestamp(tokens[1]) if len(tokens) == 2 else None
    return _Sample(name, labels, value, timestamp)


def _parse_samples(text: str) -> Iterator[_Sample]:
    for lineno, raw in enumerate(text.split("\n"), start=1):
        line = raw.strip(" \t")
        if not line:
            continue
        try:
            if line.startswith("#"):
                _check_comment(line[1:])
                continue
            sample = _parse_series(line)
        except DecodeError as err:
            raise DecodeError(f"line {lineno}: {err}") from None
        yield sample


def _as_text(data: str | bytes | bytearray | memoryview) -> str:
    if isinstance(data, str):
        return data
    return bytes(data).decode("utf-8", errors="surrogateescape")


def _wrap_int64(value: int) -> int:
    return ((value + _TWO_63) & _UINT64_MASK) - _TWO_63


def _to_int64(value: float) -> int:
    if not math.isfinite(value) or not -_TWO_63 <= value < _TWO_63:
        return _INT64_MIN
    return int(value)


def _to_uint64(value: float) -> int:
    """Convert like a 64-bit machine: out-of-range values wrap instead of failing."""
    if value < _TWO_63:
        return _to_int64(value) & _UINT64_MASK
    return (_to_int64(value - _TWO_63) & _UINT64_MASK) ^ _TWO_63


def _from_unix_nanos(nanos: int) -> datetime:
    return _EPOCH + timedelta(microseconds=nanos // 1000)


def _unix_millis(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - _EPOCH) // timedelta(milliseconds=1)


def _container_ref(labels: dict[str, str]) -> tuple[NamespacedName, str]:
    ref = NamespacedName(namespace=labels.get("namespace", ""), name=labels.get("pod", ""))
    return ref, labels.get("container", "")


def _check_container_metrics(containers: dict[str, MetricsPoint]) -> dict[str, MetricsPoint] | None:
    empty = MetricsPoint()
    checked: dict[str, MetricsPoint] = {}
    for name, point in containers.items():
        if point == empty:
            continue
        if point.cumulative_cpu_used == 0 or point.memory_usage == 0:
            log.debug("Failed getting complete container metric %s: %s", name, point)
            return None
        checked[name] = point
    return checked


def decode_batch(
    data: str | bytes | bytearray | memoryview, default_time: datetime, node_name: str
) -> MetricsBatch:
    """Decode a kubelet ``/metrics/resource`` payload into a metrics batch.

    Samples without a timestamp are stamped with ``default_time``. Node and
    container points lacking CPU or memory usage are dropped.
    """
    text = _as_text(data)
    default_ms = _unix_millis(default_time)
    node = MetricsPoint()
    pods: dict[NamespacedName, dict[str, MetricsPoint]] = {}

    try:
        for sample in _parse_samples(text):
            millis = default_ms if sample.timestamp_ms is None else sample.timestamp_ms
            stamp = _from_unix_nanos(_wrap_int64(millis * 1_000_000))
            if sample.name == NODE_CPU_USAGE:
                node = replace(
                    node, cumulative_cpu_used=_to_uint64(sample.value * 1e9), timestamp=stamp
                )
            elif sample.name == NODE_MEMORY_USAGE:
                node = replace(node, memory_usage=_to_uint64(sample.value), timestamp=stamp)
            elif sample.name in _CONTAINER_METRICS:
                ref, container = _container_ref(sample.labels)
                containers = pods.setdefault(ref, {})
                point = containers.get(container, MetricsPoint())
                if sample.name == CONTAINER_CPU_USAGE:
                    point = replace(
                        point, cumulative_cpu_used=_to_uint64(sample.value * 1e9), timestamp=stamp
                    )
                elif sample.name == CONTAINER_MEMORY_USAGE:
                    point = replace(point, memory_usage=_to_uint64(sample.value), timestamp=stamp)
                else:
                    point = replace(
                        point, start_time=_from_unix_nanos(_to_int64(sample.value * 1e9))
                    )
                containers[container] = point
    except DecodeError as err:
        raise DecodeError(f"failed parsing metrics: {err}") from err

    batch = MetricsBatch()
    if node.timestamp is None or node.cumulative_cpu_used == 0 or node.memory_usage == 0:
        log.debug("Failed getting complete node metric for %s: %s", node_name, node)
    else:
        batch.nodes[node_name] = node

    for ref, containers in pods.items():
        if not containers:
            continue
        checked = _check_container_metrics(containers)
        if checked is None:
            log.debug("Failed getting complete pod metric for %s", ref)
        else:
            batch.pods[ref] = PodMetricsPoint(containers=checked)
    return batch