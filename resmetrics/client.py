"""HTTP client that fetches resource metrics from kubelets."""

from __future__ import annotations

import urllib.request
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Protocol
from urllib.error import HTTPError

from resmetrics.decode import decode_batch
from resmetrics.model import MetricsBatch, Node

RESOURCE_METRICS_PATH = "/metrics/resource"


class NodeAddressResolver(Protocol):
    def node_address(self, node: Node) -> str: ...


class KubeletRequestError(Exception):
    """Raised when a kubelet answers with a failure or its response cannot be read."""


def _join_host_port(host: str, port: int) -> str:
    return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"


class KubeletClient:
    """Fetches and decodes the resource metrics endpoint of kubelets."""

    def __init__(
        self,
        resolver: NodeAddressResolver,
        default_port: int,
        scheme: str,
        use_node_status_port: bool,
    ) -> None:
        self.resolver = resolver
        self.default_port = default_port
        self.scheme = scheme
        self.use_node_status_port = use_node_status_port

    def get_metrics(self, node: Node, timeout: float | None = None) -> MetricsBatch:
        """Fetch the metrics of ``node`` from its kubelet."""
        port = self.default_port
        if self.use_node_status_port and node.kubelet_port != 0:
            port = node.kubelet_port
        address = self.resolver.node_address(node)
        url = f"{self.scheme}://{_join_host_port(address, port)}{RESOURCE_METRICS_PATH}"
        return self.fetch(url, node.name, timeout)

    def fetch(self, url: str, node_name: str, timeout: float | None = None) -> MetricsBatch:
        """Fetch ``url`` and decode it as the metrics of ``node_name``."""
        request_time = datetime.now(timezone.utc)
        request = urllib.request.Request(url, method="GET")
        try:
            with urllib.request.urlopen(request, timeout=timeout) as response:
                if response.status != HTTPStatus.OK:
                    raise KubeletRequestError(
                        f'request failed, status: "{response.status} {response.reason}"'
                    )
                try:
                    body = response.read()
                except OSError as err:
                    raise KubeletRequestError(f"failed to read response body - {err}") from err
        except HTTPError as err:
            err.close()
            raise KubeletRequestError(
                f'request failed, status: "{err.code} {err.reason}"'
            ) from err
        return decode_batch(body, request_time, node_name)