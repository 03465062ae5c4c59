"""Label and field selectors used to filter listed objects."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from resmetrics.model import Node, ObjectMeta

_OPERATORS = ("!=", "==", "=")


@dataclass(frozen=True)
class Requirement:
    """One ``key=value`` or ``key!=value`` term of a selector."""

    key: str
    equals: bool
    value: str

    def __str__(self) -> str:
        return f"{self.key}{'=' if self.equals else '!='}{self.value}"


def _parse_requirements(text: str) -> tuple[Requirement, ...]:
    requirements = []
    for term in (part.strip() for part in text.split(",")):
        if not term:
            continue
        for operator in _OPERATORS:
            key, sep, value = term.partition(operator)
            if sep:
                break
        else:
            raise ValueError(f"invalid selector term: {term!r}")
        key = key.strip()
        if not key:
            raise ValueError(f"selector term without a key: {term!r}")
        requirements.append(Requirement(key, operator != "!=", value.strip()))
    return tuple(requirements)


@dataclass(frozen=True)
class _Selector:
    requirements: tuple[Requirement, ...] = ()

    @classmethod
    def everything(cls):
        """A selector that matches every object."""
        return cls()

    @classmethod
    def from_set(cls, values: Mapping[str, str]):
        """A selector requiring each key to equal its value."""
        return cls(tuple(Requirement(k, True, v) for k, v in sorted(values.items())))

    @classmethod
    def parse(cls, text: str):
        """Parse a comma separated list of ``key=value`` and ``key!=value`` terms."""
        return cls(_parse_requirements(text))

    def is_empty(self) -> bool:
        return not self.requirements

    def __str__(self) -> str:
        return ",".join(str(r) for r in self.requirements)


class LabelSelector(_Selector):
    """Selects objects by their labels."""

    def matches(self, labels: Mapping[str, str]) -> bool:
        for req in self.requirements:
            if req.equals:
                if req.key not in labels or labels[req.key] != req.value:
                    return False
            elif req.key in labels and labels[req.key] == req.value:
                return False
        return True


class FieldSelector(_Selector):
    """Selects objects by fields such as ``metadata.name``."""

    def matches(self, fields: Mapping[str, str]) -> bool:
        return all(
            (fields.get(req.key, "") == req.value) == req.equals for req in self.requirements
        )


def object_meta_fields(meta: ObjectMeta, namespace_scoped: bool) -> dict[str, str]:
    """Return the selectable fields of an object's metadata."""
    fields = {"metadata.name": meta.name}
    if namespace_scoped:
        fields["metadata.namespace"] = meta.namespace
    return fields


def filter_nodes(nodes: Iterable[Node], selector: FieldSelector) -> list[Node]:
    """Keep the nodes whose metadata fields match ``selector``."""
    return [n for n in nodes if selector.matches(object_meta_fields(n.metadata, False))]


def filter_object_metadata(
    objects: Iterable[ObjectMeta], selector: FieldSelector
) -> list[ObjectMeta]:
    """Keep the namespaced objects whose metadata fields match ``selector``."""
    return [o for o in objects if selector.matches(object_meta_fields(o, True))]