"""Data types shared by the scraper, the storage and the metrics API."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Protocol

from resmetrics.quantity import Quantity


class NodeAddressType(str, Enum):
    """Kinds of address a node reports in its status."""

    HOSTNAME = "Hostname"
    INTERNAL_IP = "InternalIP"
    EXTERNAL_IP = "ExternalIP"
    INTERNAL_DNS = "InternalDNS"
    EXTERNAL_DNS = "ExternalDNS"


@dataclass(frozen=True, order=True)
class NamespacedName:
    """Identifies an object by namespace and name."""

    namespace: str = ""
    name: str = ""

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class MetricsPoint:
    """One sample of CPU (cumulative nanoseconds) and memory (bytes) usage."""

    timestamp: datetime | None = None
    cumulative_cpu_used: int = 0
    memory_usage: int = 0
    start_time: datetime | None = None


@dataclass
class PodMetricsPoint:
    """Samples for each container of a pod."""

    containers: dict[str, MetricsPoint] = field(default_factory=dict)


@dataclass
class MetricsBatch:
    """Node and pod samples gathered in one scrape."""

    nodes: dict[str, MetricsPoint] = field(default_factory=dict)
    pods: dict[NamespacedName, PodMetricsPoint] = field(default_factory=dict)


@dataclass(frozen=True)
class TimeInfo:
    """When a metric was collected and the window its rate covers."""

    timestamp: datetime
    window: timedelta


@dataclass
class ObjectMeta:
    """Identity and labels of an API object."""

    name: str = ""
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    resource_version: str = ""
    self_link: str = ""


@dataclass(frozen=True)
class NodeAddress:
    type: str
    address: str


@dataclass
class Node:
    """A cluster node as seen by the scraper and the API."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    addresses: list[NodeAddress] = field(default_factory=list)
    kubelet_port: int = 0

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def labels(self) -> dict[str, str]:
        return self.metadata.labels


@dataclass
class ContainerMetrics:
    name: str
    usage: dict[str, Quantity] = field(default_factory=dict)


@dataclass
class NodeMetrics:
    """Resource usage of one node."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    timestamp: datetime | None = None
    window: timedelta = timedelta(0)
    usage: dict[str, Quantity] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def labels(self) -> dict[str, str]:
        return self.metadata.labels


@dataclass
class PodMetrics:
    """Resource usage of the containers of one pod."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    timestamp: datetime | None = None
    window: timedelta = timedelta(0)
    containers: list[ContainerMetrics] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def labels(self) -> dict[str, str]:
        return self.metadata.labels


@dataclass
class NodeMetricsList:
    items: list[NodeMetrics] = field(default_factory=list)
    resource_version: str = ""
    self_link: str = ""
    continue_token: str = ""


@dataclass
class PodMetricsList:
    items: list[PodMetrics] = field(default_factory=list)
    resource_version: str = ""
    self_link: str = ""
    continue_token: str = ""


@dataclass
class TLSClientConfig:
    """TLS settings for a client connection."""

    insecure: bool = False
    ca_file: str = ""
    ca_data: bytes | None = None
    cert_file: str = ""
    cert_data: bytes | None = None
    key_file: str = ""
    key_data: bytes | None = None


@dataclass
class RestClientConfig:
    """Connection settings for an API client."""

    host: str = ""
    bearer_token: str = ""
    bearer_token_file: str = ""
    username: str = ""
    password: str = ""
    tls_client_config: TLSClientConfig = field(default_factory=TLSClientConfig)
    timeout: float = 0.0
    content_type: str = ""

    def copy(self) -> RestClientConfig:
        return replace(self, tls_client_config=replace(self.tls_client_config))

    def anonymous(self) -> RestClientConfig:
        """Return a copy carrying no credentials."""
        tls = self.tls_client_config
        return replace(
            self,
            bearer_token="",
            bearer_token_file="",
            username="",
            password="",
            tls_client_config=TLSClientConfig(
                insecure=tls.insecure, ca_file=tls.ca_file, ca_data=tls.ca_data
            ),
        )


@dataclass
class KubeletClientConfig:
    """How to connect to the kubelets of the cluster."""

    client: RestClientConfig = field(default_factory=RestClientConfig)
    address_type_priority: list[str] = field(default_factory=list)
    scheme: str = "https"
    default_port: int = 10250
    use_node_status_port: bool = False


class NodeLister(Protocol):
    def list(self, selector: Any) -> list[Node]: ...

    def get(self, name: str) -> Node | None: ...


class PodMetricsGetter(Protocol):
    def get_pod_metrics(self, *pods: ObjectMeta) -> list[PodMetrics]: ...


class NodeMetricsGetter(Protocol):
    def get_node_metrics(self, *nodes: Node) -> list[NodeMetrics]: ...


class MetricsGetter(PodMetricsGetter, NodeMetricsGetter, Protocol):
    """Provides both pod and node metrics."""


class KubeletMetricsGetter(Protocol):
    def get_metrics(self, node: Node, timeout: float | None) -> MetricsBatch: ...