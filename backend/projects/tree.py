from __future__ import annotations

from typing import Any, Iterable, Mapping


def build_project_tree(projects: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    records = list(projects)
    nodes: dict[Any, dict[str, Any]] = {}
    for record in records:
        nodes[record["id"]] = {**record, "children": []}

    roots: list[dict[str, Any]] = []
    for record in records:
        node = nodes[record["id"]]
        parent_id = record.get("parent_project_id")
        if parent_id is None:
            roots.append(node)
            continue
        parent = nodes.get(parent_id)
        if parent is None:
            roots.append(node)
        else:
            parent["children"].append(node)
    return roots
