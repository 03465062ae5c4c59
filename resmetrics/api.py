"""Read-only storage backing the node and pod resource metrics API."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from resmetrics.clock import ZERO_TIME, Clock, RealClock
from resmetrics.model import (
    Node,
    NodeLister,
    NodeMetrics,
    NodeMetricsGetter,
    NodeMetricsList,
    ObjectMeta,
    PodMetrics,
    PodMetricsGetter,
    PodMetricsList,
)
from resmetrics.monitoring import METRIC_FRESHNESS
from resmetrics.selectors import (
    FieldSelector,
    LabelSelector,
    filter_nodes,
    filter_object_metadata,
)
from resmetrics.table import Table, add_node_metrics_to_table, add_pod_metrics_to_table

log = logging.getLogger(__name__)

GROUP_NAME = "metrics.k8s.io"
VERSION = "v1beta1"
NODE_METRICS_RESOURCE = f"nodemetrics.{GROUP_NAME}"
POD_METRICS_RESOURCE = f"podmetrics.{GROUP_NAME}"
PODS_RESOURCE = "pods"


class NotFoundError(LookupError):
    """Raised when the requested object or its metrics do not exist."""

    def __init__(self, resource: str, name: str) -> None:
        super().__init__(f'{resource} "{name}" not found')
        self.resource = resource
        self.name = name


@dataclass(frozen=True)
class ListOptions:
    """Selectors restricting which objects a list returns."""

    label_selector: LabelSelector | None = None
    field_selector: FieldSelector | None = None


class _NamespacePodLister(Protocol):
    def list(self, selector: LabelSelector) -> list[ObjectMeta]: ...

    def get(self, name: str) -> ObjectMeta | None: ...


class _PodLister(Protocol):
    def by_namespace(self, namespace: str) -> _NamespacePodLister: ...


def _label_selector(options: ListOptions | None) -> LabelSelector:
    if options is not None and options.label_selector is not None:
        return options.label_selector
    return LabelSelector.everything()


def _observe_freshness(clock: Clock, items: Iterable[NodeMetrics | PodMetrics]) -> None:
    histogram = METRIC_FRESHNESS.labels()
    for item in items:
        stamp = item.timestamp if item.timestamp is not None else ZERO_TIME
        histogram.observe(clock.since(stamp).total_seconds())


class NodeMetricsStorage:
    """Serves node metrics, listing nodes through a node lister."""

    def __init__(
        self,
        group_resource: str = NODE_METRICS_RESOURCE,
        metrics: NodeMetricsGetter | None = None,
        node_lister: NodeLister | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.group_resource = group_resource
        self.metrics = metrics
        self.node_lister = node_lister
        self.clock = clock if clock is not None else RealClock()

    def new(self) -> NodeMetrics:
        return NodeMetrics()

    def kind(self) -> str:
        return "NodeMetrics"

    def new_list(self) -> NodeMetricsList:
        return NodeMetricsList()

    def namespace_scoped(self) -> bool:
        return False

    def list(self, options: ListOptions | None = None) -> NodeMetricsList:
        """Return the metrics of every node matching ``options``, ordered by name."""
        nodes = self._nodes(options)
        try:
            items = self._get_metrics(nodes)
        except Exception as err:
            log.error("Failed reading nodes metrics: %s", err)
            raise RuntimeError(f"failed reading nodes metrics: {err}") from err
        return NodeMetricsList(items=items)

    def _nodes(self, options: ListOptions | None) -> list[Node]:
        selector = _label_selector(options)
        try:
            nodes = list(self.node_lister.list(selector))
        except Exception as err:
            log.error("Failed listing nodes with selector %r: %s", str(selector), err)
            raise RuntimeError(f"failed listing nodes: {err}") from err
        if options is not None and options.field_selector is not None:
            nodes = filter_nodes(nodes, options.field_selector)
        return nodes

    def get(self, name: str) -> NodeMetrics:
        """Return the metrics of the node called ``name``."""
        try:
            node = self.node_lister.get(name)
        except NotFoundError:
            raise
        except Exception as err:
            log.error("Failed getting node %s: %s", name, err)
            raise RuntimeError(f"failed getting node: {err}") from err
        if node is None:
            raise NotFoundError(self.group_resource, name)
        try:
            items = self._get_metrics([node])
        except Exception as err:
            log.error("Failed reading node metrics for %s: %s", name, err)
            raise RuntimeError(f"failed reading node metrics: {err}") from err
        if not items:
            raise NotFoundError(self.group_resource, name)
        return items[0]

    def convert_to_table(self, obj: Any) -> Table:
        """Render node metrics, or a list of them, as a table."""
        table = Table()
        if isinstance(obj, NodeMetrics):
            table.resource_version = obj.metadata.resource_version
            table.self_link = obj.metadata.self_link
            add_node_metrics_to_table(table, [obj])
        elif isinstance(obj, NodeMetricsList):
            table.resource_version = obj.resource_version
            table.self_link = obj.self_link
            table.continue_token = obj.continue_token
            add_node_metrics_to_table(table, obj.items)
        return table

    def _get_metrics(self, nodes: Sequence[Node]) -> list[NodeMetrics]:
        items = list(self.metrics.get_node_metrics(*nodes))
        _observe_freshness(self.clock, items)
        # Keep the ordering the API server itself uses for nodes.
        items.sort(key=lambda m: m.name)
        return items


class PodMetricsStorage:
    """Serves pod metrics, listing pods through a namespaced metadata lister."""

    def __init__(
        self,
        group_resource: str = POD_METRICS_RESOURCE,
        metrics: PodMetricsGetter | None = None,
        pod_lister: _PodLister | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.group_resource = group_resource
        self.metrics = metrics
        self.pod_lister = pod_lister
        self.clock = clock if clock is not None else RealClock()

    def new(self) -> PodMetrics:
        return PodMetrics()

    def kind(self) -> str:
        return "PodMetrics"

    def new_list(self) -> PodMetricsList:
        return PodMetricsList()

    def namespace_scoped(self) -> bool:
        return True

    def list(self, namespace: str = "", options: ListOptions | None = None) -> PodMetricsList:
        """Return metrics of pods in ``namespace`` (all when empty), by namespace and name."""
        pods = self._pods(namespace, options)
        try:
            items = self._get_metrics(pods)
        except Exception as err:
            log.error("Failed reading pods metrics in namespace %r: %s", namespace, err)
            raise RuntimeError(f"failed reading pods metrics: {err}") from err
        return PodMetricsList(items=items)

    def _pods(self, namespace: str, options: ListOptions | None) -> list[ObjectMeta]:
        selector = _label_selector(options)
        try:
            pods = list(self.pod_lister.by_namespace(namespace).list(selector))
        except Exception as err:
            log.error(
                "Failed listing pods in namespace %r with selector %r: %s",
                namespace,
                str(selector),
                err,
            )
            raise RuntimeError(f"failed listing pods: {err}") from err
        if options is not None and options.field_selector is not None:
            pods = filter_object_metadata(pods, options.field_selector)
        return pods

    def get(self, namespace: str, name: str) -> PodMetrics:
        """Return the metrics of pod ``name`` in ``namespace``."""
        try:
            pod = self.pod_lister.by_namespace(namespace).get(name)
        except NotFoundError:
            raise
        except Exception as err:
            log.error("Failed getting pod %s/%s: %s", namespace, name, err)
            raise RuntimeError(f"failed getting pod: {err}") from err
        if pod is None:
            raise NotFoundError(PODS_RESOURCE, f"{namespace}/{name}")
        try:
            items = self._get_metrics([pod])
        except Exception as err:
            log.error("Failed reading pod metrics for %s/%s: %s", namespace, name, err)
            raise RuntimeError(f"failed pod metrics: {err}") from err
        if not items:
            raise NotFoundError(self.group_resource, f"{namespace}/{name}")
        return items[0]

    def convert_to_table(self, obj: Any) -> Table:
        """Render pod metrics, or a list of them, as a table."""
        table = Table()
        if isinstance(obj, PodMetrics):
            table.resource_version = obj.metadata.resource_version
            table.self_link = obj.metadata.self_link
            add_pod_metrics_to_table(table, [obj])
        elif isinstance(obj, PodMetricsList):
            table.resource_version = obj.resource_version
            table.self_link = obj.self_link
            table.continue_token = obj.continue_token
            add_pod_metrics_to_table(table, obj.items)
        return table

    def _get_metrics(self, pods: Sequence[ObjectMeta]) -> list[PodMetrics]:
        items = list(self.metrics.get_pod_metrics(*pods))
        _observe_freshness(self.clock, items)
        items.sort(key=lambda m: (m.namespace, m.name))
        return items


def build_api_group(
    pod: PodMetricsStorage, node: NodeMetricsStorage
) -> dict[str, dict[str, Any]]:
    """Map each served version of the metrics API group to its resources."""
    return {VERSION: {"nodes": node, "pods": pod}}