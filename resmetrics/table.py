"""Tabular rendering of node and pod metrics."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from resmetrics.model import NodeMetrics, PodMetrics
from resmetrics.quantity import Quantity, format_duration


@dataclass(frozen=True)
class TableColumnDefinition:
    name: str
    type: str
    format: str = ""
    description: str = ""


@dataclass
class TableRow:
    cells: list[Any]
    object: Any = None


@dataclass
class Table:
    column_definitions: list[TableColumnDefinition] = field(default_factory=list)
    rows: list[TableRow] = field(default_factory=list)
    resource_version: str = ""
    self_link: str = ""
    continue_token: str = ""


def _window_nanoseconds(window: timedelta) -> int:
    return (window // timedelta(microseconds=1)) * 1000


def _columns(names: list[str]) -> list[TableColumnDefinition]:
    return [
        TableColumnDefinition("Name", "string", "name", "Name of the resource"),
        *(TableColumnDefinition(name, "string", "quantity") for name in names),
        TableColumnDefinition("Window", "string", "duration"),
    ]


def _add_row(
    table: Table,
    names: list[str],
    name: str,
    usage: dict[str, Quantity],
    window: timedelta,
    obj: Any,
) -> list[str]:
    # Columns follow the first object that reports any usage.
    if not names:
        names = sorted(usage)
        table.column_definitions = _columns(names)
    cells: list[Any] = [name]
    cells.extend(str(usage.get(resource, Quantity())) for resource in names)
    cells.append(format_duration(_window_nanoseconds(window)))
    table.rows.append(TableRow(cells=cells, object=obj))
    return names


def add_pod_metrics_to_table(table: Table, pods: Iterable[PodMetrics]) -> None:
    """Append a row per pod, summing the usage of its containers."""
    names: list[str] = []
    for pod in pods:
        usage: dict[str, Quantity] = {}
        for container in pod.containers:
            for resource, amount in container.usage.items():
                usage[resource] = usage.get(resource, Quantity()) + amount
        names = _add_row(table, names, pod.name, usage, pod.window, pod)


def add_node_metrics_to_table(table: Table, nodes: Iterable[NodeMetrics]) -> None:
    """Append a row per node."""
    names: list[str] = []
    for node in nodes:
        names = _add_row(table, names, node.name, node.usage, node.window, node)