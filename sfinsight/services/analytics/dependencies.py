from __future__ import annotations

import re
from collections import Counter
from typing import Any, Iterable

from sfinsight.domain.models import ComponentDependency, Metadata


# Metadata types grouped the way the dependency view labels them.
_FAMILY = {
    "ApexClass": "ApexClass",
    "ApexTrigger": "ApexTrigger",
    "ApexPage": "VisualForce",
    "LightningComponentBundle": "LightningComponent",
    "AuraDefinitionBundle": "LightningComponent",
    "CustomObject": "CustomObject",
}

_DEPENDENCY_TYPES = {
    ("ApexClass", "ApexClass"): "Class Reference",
    ("ApexClass", "CustomObject"): "Data Access",
    ("ApexTrigger", "ApexClass"): "Method Call",
    ("ApexTrigger", "CustomObject"): "Trigger Definition",
    ("LightningComponent", "ApexClass"): "Controller Reference",
    ("LightningComponent", "LightningComponent"): "Component Reference",
    ("VisualForce", "ApexClass"): "Controller Reference",
    ("VisualForce", "CustomObject"): "Data Binding",
}

_CONTROLLER_RE = re.compile(r"\b(controller|extensions)\s*=\s*\"([^\"]+)\"", re.IGNORECASE)
_STANDARD_CONTROLLER_RE = re.compile(r"\bstandardController\s*=\s*\"([^\"]+)\"", re.IGNORECASE)
_LINE_COMMENT_RE = re.compile(r"//[^\n]*")
_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)


def dependency_type(source_type: str, target_type: str) -> str:
    key = (_FAMILY.get(source_type, source_type), _FAMILY.get(target_type, target_type))
    return _DEPENDENCY_TYPES.get(key, "Reference")


def dependency_strength(reference_count: int) -> str:
    if reference_count >= 5:
        return "strong"
    if reference_count >= 2:
        return "medium"
    return "weak"


def _strip_comments(source: str) -> str:
    return _LINE_COMMENT_RE.sub("", _BLOCK_COMMENT_RE.sub("", source))


def _count_references(source: str, names: Iterable[str]) -> Counter[str]:
    counts: Counter[str] = Counter()
    for name in names:
        hits = len(re.findall(rf"\b{re.escape(name)}\b", source))
        if hits:
            counts[name] = hits
    return counts


def derive_dependencies(org_id: int, components: Iterable[Metadata]) -> list[ComponentDependency]:
    """Infer component-to-component references from stored source and markup."""
    rows = list(components)
    classes = {row.name: row for row in rows if row.type == "ApexClass"}
    objects = {row.name: row for row in rows if row.type == "CustomObject"}
    edges: dict[tuple[int, int], tuple[Metadata, Metadata, int]] = {}

    def _add(source: Metadata, target: Metadata, count: int) -> None:
        if source.id == target.id or count <= 0:
            return
        key = (source.id, target.id)
        previous = edges.get(key)
        edges[key] = (source, target, count + (previous[2] if previous else 0))

    for row in rows:
        data = row.data or {}
        if row.type in {"ApexClass", "ApexTrigger"}:
            body = _strip_comments(str(data.get("Body") or ""))
            for name, count in _count_references(body, classes).items():
                _add(row, classes[name], count)
            for name, count in _count_references(body, objects).items():
                _add(row, objects[name], count)
            if row.type == "ApexTrigger":
                table = data.get("TableEnumOrId")
                if table in objects:
                    # The trigger's own object is always a hard dependency.
                    _add(row, objects[table], 5)
        elif row.type == "ApexPage":
            markup = str(data.get("Markup") or "")
            for match in _CONTROLLER_RE.finditer(markup):
                for name in (part.strip() for part in match.group(2).split(",")):
                    if name in classes:
                        _add(row, classes[name], 5)
            for match in _STANDARD_CONTROLLER_RE.finditer(markup):
                if match.group(1) in objects:
                    _add(row, objects[match.group(1)], 2)

    return [
        ComponentDependency(
            org_id=org_id,
            source_component_id=source.id,
            source_component_name=source.name,
            source_component_type=source.type,
            target_component_id=target.id,
            target_component_name=target.name,
            target_component_type=target.type,
            dependency_type=dependency_type(source.type, target.type),
            dependency_strength=dependency_strength(count),
        )
        for source, target, count in edges.values()
    ]


def build_graph(
    dependencies: Iterable[ComponentDependency],
    *,
    focus_id: int | None = None,
    filter_text: str | None = None,
) -> dict[str, list[dict[str, Any]]]:
    """Render dependencies in the node/edge element shape used by the graph view."""
    nodes: dict[int, dict[str, Any]] = {}
    edges: list[dict[str, Any]] = []
    for dep in dependencies:
        for component_id, name, type_ in (
            (dep.source_component_id, dep.source_component_name, dep.source_component_type),
            (dep.target_component_id, dep.target_component_name, dep.target_component_type),
        ):
            if component_id not in nodes:
                node_id = f"node-{component_id}"
                nodes[component_id] = {
                    "id": node_id,
                    "data": {
                        "id": node_id,
                        "label": name,
                        "type": type_,
                        "isFocus": focus_id == component_id,
                    },
                }
        edges.append(
            {
                "data": {
                    "id": f"edge-{dep.id}",
                    "source": f"node-{dep.source_component_id}",
                    "target": f"node-{dep.target_component_id}",
                    "type": dep.dependency_type,
                    "strength": dep.dependency_strength,
                }
            }
        )
    node_list = list(nodes.values())
    if filter_text:
        needle = filter_text.lower()
        node_list = [
            node
            for node in node_list
            if needle in node["data"]["label"].lower() or needle in node["data"]["type"].lower()
        ]
        kept = {node["id"] for node in node_list}
        edges = [edge for edge in edges if edge["data"]["source"] in kept and edge["data"]["target"] in kept]
    return {"nodes": node_list, "edges": edges}
