from datetime import datetime, timezone

from resmetrics.model import (
    KubeletClientConfig,
    MetricsBatch,
    MetricsPoint,
    NamespacedName,
    Node,
    NodeMetrics,
    ObjectMeta,
    PodMetrics,
    PodMetricsPoint,
    RestClientConfig,
    TLSClientConfig,
)


def test_namespaced_name_string_and_hashing():
    ref = NamespacedName(namespace="ns1", name="pod1")
    assert str(ref) == "ns1/pod1"
    assert {ref: 1}[NamespacedName("ns1", "pod1")] == 1


def test_empty_metrics_point_equals_default():
    assert MetricsPoint() == MetricsPoint()
    stamped = MetricsPoint(timestamp=datetime(2021, 10, 3, tzinfo=timezone.utc))
    assert stamped != MetricsPoint()


def test_batches_do_not_share_state():
    first, second = MetricsBatch(), MetricsBatch()
    first.nodes["node1"] = MetricsPoint(cumulative_cpu_used=100, memory_usage=200)
    first.pods[NamespacedName("ns1", "pod1")] = PodMetricsPoint()
    assert second.nodes == {}
    assert second.pods == {}


def test_node_exposes_metadata():
    node = Node(metadata=ObjectMeta(name="node1", labels={"labelKey": "labelValue"}))
    assert node.name == "node1"
    assert node.labels == {"labelKey": "labelValue"}


def test_metrics_expose_metadata():
    node = NodeMetrics(metadata=ObjectMeta(name="node2"))
    pod = PodMetrics(metadata=ObjectMeta(name="pod3", namespace="testValue"))
    assert node.name == "node2"
    assert (pod.namespace, pod.name) == ("testValue", "pod3")


def test_anonymous_config_drops_credentials():
    config = RestClientConfig(
        host="https://localhost",
        bearer_token="token",
        tls_client_config=TLSClientConfig(ca_file="ca.crt", cert_file="c.crt", key_file="c.key"),
    )
    anonymous = config.anonymous()
    assert anonymous.bearer_token == ""
    assert anonymous.host == config.host
    assert anonymous.tls_client_config.ca_file == "ca.crt"
    assert anonymous.tls_client_config.cert_file == ""
    assert config.bearer_token == "token"


def test_copy_is_independent():
    config = RestClientConfig(host="https://localhost")
    clone = config.copy()
    clone.tls_client_config.insecure = True
    assert config.tls_client_config.insecure is False


def test_kubelet_client_config_defaults():
    config = KubeletClientConfig()
    assert config.scheme == "https"
    assert config.default_port == 10250
    assert config.use_node_status_port is False