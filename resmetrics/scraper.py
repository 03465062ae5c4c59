"""Concurrent collection of resource metrics from every node's kubelet."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta, timezone
from typing import Any

from resmetrics.clock import Clock, RealClock
from resmetrics.model import KubeletMetricsGetter, MetricsBatch, Node, NodeLister
from resmetrics.monitoring import CounterVec, GaugeVec, HistogramVec

log = logging.getLogger(__name__)

MAX_DELAY_MS = 4 * 1000
DELAY_PER_SOURCE_MS = 8

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

REQUEST_DURATION = HistogramVec(
    namespace="metrics_server",
    subsystem="kubelet",
    name="request_duration_seconds",
    help_text="Duration of requests to Kubelet API in seconds",
    label_names=("node",),
)
REQUEST_TOTAL = CounterVec(
    namespace="metrics_server",
    subsystem="kubelet",
    name="request_total",
    help_text="Number of requests sent to Kubelet API",
    label_names=("success",),
)
LAST_REQUEST_TIME = GaugeVec(
    namespace="metrics_server",
    subsystem="kubelet",
    name="last_request_time_seconds",
    help_text="Time of last request performed to Kubelet API since unix epoch in seconds",
    label_names=("node",),
)


def register_scraper_metrics(register: Callable[[Any], Any]) -> None:
    """Register the request duration, count and last-request-time metrics."""
    for metric in (REQUEST_DURATION, REQUEST_TOTAL, LAST_REQUEST_TIME):
        register(metric)


def _unix_seconds(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - _EPOCH) // timedelta(seconds=1)


def _is_timeout(err: BaseException) -> bool:
    return isinstance(err, TimeoutError) or isinstance(getattr(err, "reason", None), TimeoutError)


class Scraper:
    """Scrapes all listed nodes in parallel and merges their metrics."""

    def __init__(
        self,
        node_lister: NodeLister,
        client: KubeletMetricsGetter,
        scrape_timeout: float,
        clock: Clock | None = None,
    ) -> None:
        self.node_lister = node_lister
        self.client = client
        self.scrape_timeout = scrape_timeout
        self.clock = clock if clock is not None else RealClock()

    def scrape(self, timeout: float | None = None) -> MetricsBatch:
        """Collect one batch from every node, within ``timeout`` seconds overall if given.

        Nodes that fail or time out are left out; the rest are still returned.
        """
        try:
            nodes = list(self.node_lister.list(None))
        except Exception:
            log.exception("Failed to list nodes")
            nodes = []
        log.debug("Scraping metrics from %d nodes", len(nodes))

        start = self.clock.now()
        deadline = None if timeout is None else time.monotonic() + timeout
        delay_ms = min(DELAY_PER_SOURCE_MS * len(nodes), MAX_DELAY_MS)

        result = MetricsBatch()
        if nodes:
            with ThreadPoolExecutor(max_workers=len(nodes), thread_name_prefix="scrape") as pool:
                futures = [
                    pool.submit(self._scrape_node, node, delay_ms, deadline) for node in nodes
                ]
                for future in as_completed(futures):
                    batch = future.result()
                    if batch is not None:
                        self._merge(result, batch)

        log.debug(
            "Scrape finished in %s: %d nodes, %d pods",
            self.clock.since(start),
            len(result.nodes),
            len(result.pods),
        )
        return result

    @staticmethod
    def _merge(result: MetricsBatch, batch: MetricsBatch) -> None:
        for node_name, point in batch.nodes.items():
            if node_name in result.nodes:
                log.error("Got duplicate node point for %s", node_name)
                continue
            result.nodes[node_name] = point
        for ref, point in batch.pods.items():
            if ref in result.pods:
                log.error("Got duplicate pod point for %s", ref)
                continue
            result.pods[ref] = point

    def _scrape_node(
        self, node: Node, delay_ms: int, deadline: float | None
    ) -> MetricsBatch | None:
        # Stagger requests to avoid network congestion.
        if delay_ms > 0:
            time.sleep(random.randrange(delay_ms) / 1000)
        timeout = self.scrape_timeout
        if deadline is not None:
            timeout = min(timeout, deadline - time.monotonic())
        log.debug("Scraping node %s", node.name)
        try:
            return self._collect_node(node, timeout)
        except Exception as err:
            if _is_timeout(err):
                log.error(
                    "Failed to scrape node %s, timeout to access kubelet (timeout %ss): %s",
                    node.name,
                    self.scrape_timeout,
                    err,
                )
            else:
                log.error("Failed to scrape node %s: %s", node.name, err)
            return None

    def _collect_node(self, node: Node, timeout: float) -> MetricsBatch:
        start = self.clock.now()
        try:
            if timeout <= 0:
                raise TimeoutError("deadline exceeded before the request was sent")
            batch = self.client.get_metrics(node, timeout)
        except Exception:
            REQUEST_TOTAL.labels("false").inc()
            raise
        else:
            REQUEST_TOTAL.labels("true").inc()
            return batch
        finally:
            REQUEST_DURATION.labels(node.name).observe(
                self.clock.since(start).total_seconds()
            )
            LAST_REQUEST_TIME.labels(node.name).set(_unix_seconds(self.clock.now()))