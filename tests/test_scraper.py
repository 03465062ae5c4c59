import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import pytest

from resmetrics.clock import ZERO_TIME, Clock
from resmetrics.model import (
    MetricsBatch,
    MetricsPoint,
    NamespacedName,
    Node,
    NodeAddress,
    ObjectMeta,
    PodMetricsPoint,
)
from resmetrics.scraper import (
    LAST_REQUEST_TIME,
    REQUEST_DURATION,
    REQUEST_TOTAL,
    Scraper,
    register_scraper_metrics,
)

SCRAPE_TIME = datetime(2021, 10, 3, 9, 36, 49, tzinfo=timezone.utc)


def metric_point(cpu, memory, stamp):
    return MetricsPoint(timestamp=stamp, cumulative_cpu_used=cpu, memory_usage=memory)


def make_node(name, host_name, addr):
    addresses = []
    if host_name:
        addresses.append(NodeAddress("Hostname", host_name))
    if addr:
        addresses.append(NodeAddress("InternalIP", addr))
    return Node(metadata=ObjectMeta(name=name), addresses=addresses)


@dataclass
class FakeKubeletClient:
    metrics: dict
    delay: dict = field(default_factory=dict)
    default_delay: float = 0.0

    def get_metrics(self, node, timeout=None):
        delay = self.delay.get(node.name, self.default_delay)
        batch = self.metrics.get(node.name)
        if batch is None:
            raise LookupError(f"Unknown node {node.name!r}")
        if timeout is not None and delay > timeout:
            time.sleep(timeout)
            raise TimeoutError("timed out")
        time.sleep(delay)
        return batch


@dataclass
class FakeNodeLister:
    nodes: list
    list_error: Exception | None = None

    def list(self, selector):
        if self.list_error is not None:
            raise self.list_error
        return self.nodes

    def get(self, name):
        for node in self.nodes:
            if node.name == name:
                return node
        raise LookupError(name)


class MockClock(Clock):
    def __init__(self, now, later):
        self._now = now
        self._later = later

    def now(self):
        return self._now

    def since(self, moment):
        return self._later - moment


@pytest.fixture
def nodes():
    return [
        make_node("node1", "node1.somedomain", "10.0.1.2"),
        make_node("node-no-host", "", "10.0.1.3"),
        make_node("node3", "node3.somedomain", "10.0.1.4"),
        make_node("node4", "node4.somedomain", "10.0.1.5"),
    ]


@pytest.fixture
def client():
    ms = timedelta(milliseconds=1)
    mb = MetricsBatch(
        nodes={"node1": metric_point(100, 200, SCRAPE_TIME)},
        pods={
            NamespacedName("ns1", "pod1"): PodMetricsPoint(
                containers={
                    "container1": metric_point(300, 400, SCRAPE_TIME + 10 * ms),
                    "container2": metric_point(500, 600, SCRAPE_TIME + 20 * ms),
                }
            ),
            NamespacedName("ns1", "pod2"): PodMetricsPoint(
                containers={"container1": metric_point(700, 800, SCRAPE_TIME + 30 * ms)}
            ),
            NamespacedName("ns2", "pod1"): PodMetricsPoint(
                containers={"container1": metric_point(900, 1000, SCRAPE_TIME + 40 * ms)}
            ),
            NamespacedName("ns3", "pod1"): PodMetricsPoint(
                containers={"container1": metric_point(1100, 1200, SCRAPE_TIME + 50 * ms)}
            ),
        },
    )
    return FakeKubeletClient(
        metrics={
            "node1": mb,
            "node-no-host": MetricsBatch(
                nodes={"node-no-host": metric_point(100, 200, SCRAPE_TIME)}
            ),
            "node3": MetricsBatch(nodes={"node3": metric_point(100, 200, SCRAPE_TIME)}),
            "node4": MetricsBatch(nodes={"node4": metric_point(100, 200, SCRAPE_TIME)}),
        }
    )


def pod_names(batch):
    return sorted(f"{ref.namespace}/{ref.name}" for ref in batch.pods)


def test_all_nodes_return_in_time(nodes, client):
    client.default_delay = 0.1
    scraper = Scraper(FakeNodeLister(nodes), client, 0.3)
    start = time.monotonic()
    batch = scraper.scrape(timeout=0.4)
    assert time.monotonic() - start <= 0.3
    assert sorted(batch.nodes) == sorted(["node1", "node-no-host", "node3", "node4"])
    assert pod_names(batch) == ["ns1/pod1", "ns1/pod2", "ns2/pod1", "ns3/pod1"]


def test_scrape_timeout_is_passed_to_sources(nodes, client):
    client.delay["node1"] = 0.4
    client.default_delay = 0.2
    scraper = Scraper(FakeNodeLister(nodes), client, 0.3)
    start = time.monotonic()
    batch = scraper.scrape()
    elapsed = time.monotonic() - start
    assert 0.3 <= elapsed < 0.4
    assert sorted(batch.nodes) == sorted(["node-no-host", "node3", "node4"])
    assert batch.pods == {}


def test_parent_timeout_is_respected(nodes, client):
    client.default_delay = 0.4
    scraper = Scraper(FakeNodeLister(nodes), client, 0.5)
    start = time.monotonic()
    batch = scraper.scrape(timeout=0.1)
    elapsed = time.monotonic() - start
    assert elapsed < 0.2
    assert batch.nodes == {}


def test_metrics_are_recorded(nodes, client):
    REQUEST_DURATION.reset()
    REQUEST_TOTAL.reset()
    LAST_REQUEST_TIME.reset()
    clock = MockClock(ZERO_TIME, ZERO_TIME + timedelta(seconds=1))
    scraper = Scraper(FakeNodeLister([nodes[0]]), client, 3.0, clock)
    scraper.scrape()

    histogram = REQUEST_DURATION.labels("node1")
    counts = dict(histogram.cumulative_counts())
    assert counts[0.5] == 0
    assert counts[1.0] == 1
    assert counts[10.0] == 1
    assert histogram.sum == 1
    assert histogram.count == 1

    assert list(REQUEST_TOTAL.children) == [("true",)]
    assert REQUEST_TOTAL.labels("true").value == 1

    assert LAST_REQUEST_TIME.labels("node1").value == -6.21355968e10


def test_failed_request_is_counted(nodes, client):
    REQUEST_TOTAL.reset()
    del client.metrics["node1"]
    Scraper(FakeNodeLister([nodes[0]]), client, 1.0).scrape()
    assert list(REQUEST_TOTAL.children) == [("false",)]
    assert REQUEST_TOTAL.labels("false").value == 1


def test_continues_on_error_for_one_node(nodes, client):
    nodes[0].addresses = []
    del client.metrics["node1"]
    batch = Scraper(FakeNodeLister(nodes), client, 5.0).scrape()
    assert sorted(batch.nodes) == sorted(["node4", "node-no-host", "node3"])


def test_list_errors_give_empty_batch(nodes, client):
    lister = FakeNodeLister(nodes, list_error=RuntimeError("something went wrong, expectedly"))
    batch = Scraper(lister, client, 5.0).scrape()
    assert batch.nodes == {}
    assert batch.pods == {}


def test_duplicate_points_are_kept_once(nodes):
    shared = MetricsBatch(
        nodes={"dup": metric_point(1, 2, SCRAPE_TIME)},
        pods={
            NamespacedName("ns", "p"): PodMetricsPoint(
                containers={"c": metric_point(1, 2, SCRAPE_TIME)}
            )
        },
    )
    client = FakeKubeletClient(metrics={"node1": shared, "node3": shared})
    batch = Scraper(FakeNodeLister([nodes[0], nodes[2]]), client, 1.0).scrape()
    assert list(batch.nodes) == ["dup"]
    assert list(batch.pods) == [NamespacedName("ns", "p")]


def test_register_scraper_metrics_registers_all():
    registered = []
    register_scraper_metrics(registered.append)
    assert registered == [REQUEST_DURATION, REQUEST_TOTAL, LAST_REQUEST_TIME]


def test_register_scraper_metrics_propagates_errors():
    def register(metric):
        raise RuntimeError("duplicate")

    with pytest.raises(RuntimeError):
        register_scraper_metrics(register)