import pytest

from resmetrics.model import Node, ObjectMeta
from resmetrics.selectors import (
    FieldSelector,
    LabelSelector,
    filter_nodes,
    filter_object_metadata,
    object_meta_fields,
)


def make_nodes():
    return [Node(metadata=ObjectMeta(name=f"node{i}")) for i in range(1, 5)]


def make_pods():
    return [
        ObjectMeta(name="pod1", namespace="other"),
        ObjectMeta(name="pod2", namespace="other"),
        ObjectMeta(name="pod3", namespace="testValue"),
        ObjectMeta(name="pod4", namespace="other"),
    ]


def test_object_meta_fields_cluster_scoped():
    meta = ObjectMeta(name="node1", namespace="ignored")
    assert object_meta_fields(meta, False) == {"metadata.name": "node1"}


def test_object_meta_fields_namespace_scoped():
    meta = ObjectMeta(name="pod1", namespace="other")
    assert object_meta_fields(meta, True) == {
        "metadata.name": "pod1",
        "metadata.namespace": "other",
    }


def test_filter_nodes_by_name():
    selector = FieldSelector.from_set({"metadata.name": "node2"})
    assert [n.name for n in filter_nodes(make_nodes(), selector)] == ["node2"]


def test_filter_nodes_no_match():
    selector = FieldSelector.from_set({"metadata.name": "node5"})
    assert filter_nodes(make_nodes(), selector) == []


def test_filter_nodes_everything_keeps_order():
    nodes = make_nodes()
    assert filter_nodes(nodes, FieldSelector.everything()) == nodes


def test_filter_pods_by_namespace():
    selector = FieldSelector.from_set({"metadata.namespace": "testValue"})
    assert [p.name for p in filter_object_metadata(make_pods(), selector)] == ["pod3"]


def test_filter_pods_unknown_namespace():
    selector = FieldSelector.from_set({"metadata.namespace": "unknown"})
    assert filter_object_metadata(make_pods(), selector) == []


def test_field_selector_not_equals():
    selector = FieldSelector.parse("metadata.namespace!=other")
    assert [p.name for p in filter_object_metadata(make_pods(), selector)] == ["pod3"]


def test_label_selector_from_set():
    selector = LabelSelector.from_set({"labelKey": "labelValue"})
    assert selector.matches({"labelKey": "labelValue", "extra": "x"})
    assert not selector.matches({"labelKey": "otherValue"})
    assert not selector.matches({})


def test_label_selector_not_equals_matches_missing_key():
    selector = LabelSelector.parse("labelKey!=labelValue")
    assert selector.matches({})
    assert selector.matches({"labelKey": "otherValue"})
    assert not selector.matches({"labelKey": "labelValue"})


def test_everything_matches_anything():
    assert LabelSelector.everything().matches({"a": "b"})
    assert LabelSelector.parse("").is_empty()


def test_parse_round_trip():
    text = "a=b,c!=d"
    assert str(LabelSelector.parse(text)) == text
    assert LabelSelector.parse("a==b") == LabelSelector.parse("a=b")


@pytest.mark.parametrize("text", ["novalue", "=value", "a,b=c"])
def test_parse_rejects_invalid_terms(text):
    with pytest.raises(ValueError):
        LabelSelector.parse(text)