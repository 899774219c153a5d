"""Wire format of nodes/edges and the JSON / Markdown exports."""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

from .types import Edge, GraphMetadata, Node

DEFAULT_GRAPH_NAME = "IdeaMesh Graph"


# ============================================================================
# Store / wire documents (camelCase keys)
# ============================================================================


def node_to_dict(node: Node) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": node.id,
        "title": node.title,
        "content": node.content,
        "x": node.x,
        "y": node.y,
        "color": node.color,
        "shape": node.shape,
        "tags": list(node.tags),
    }
    if node.image_url:
        data["imageUrl"] = node.image_url
    return data


def node_from_dict(data: dict[str, Any]) -> Node:
    shape = data.get("shape", "circle")
    return Node(
        id=str(data["id"]),
        title=str(data.get("title", "")),
        content=str(data.get("content", "")),
        x=float(data.get("x", 0)),
        y=float(data.get("y", 0)),
        color=data.get("color") or "#A08ABF",
        shape="square" if shape == "square" else "circle",
        tags=list(data.get("tags") or []),
        image_url=data.get("imageUrl") or None,
    )


def edge_to_dict(edge: Edge) -> dict[str, Any]:
    return {
        "id": edge.id,
        "source": edge.source,
        "target": edge.target,
        "label": edge.label,
    }


def edge_from_dict(data: dict[str, Any]) -> Edge:
    return Edge(
        id=str(data["id"]),
        source=str(data["source"]),
        target=str(data["target"]),
        label=str(data.get("label", "")),
    )


def metadata_from_dict(data: dict[str, Any]) -> GraphMetadata:
    return GraphMetadata(
        id=str(data["id"]),
        name=str(data.get("name", "")),
        owner_id=str(data.get("ownerId", "")),
        is_public=bool(data.get("isPublic", False)),
        last_edited=data.get("lastEdited"),
        node_count=int(data.get("nodeCount", 0)),
    )


# Node fields a merge-patch may carry, keyed by Python attribute name
NODE_PATCH_FIELDS = {
    "title": "title",
    "content": "content",
    "x": "x",
    "y": "y",
    "color": "color",
    "shape": "shape",
    "tags": "tags",
    "image_url": "imageUrl",
}


def node_patch_to_dict(fields: dict[str, Any]) -> dict[str, Any]:
    return {NODE_PATCH_FIELDS[k]: v for k, v in fields.items()}


# ============================================================================
# Exports
# ============================================================================


def to_json(nodes: Iterable[Node], edges: Iterable[Edge]) -> str:
    """Dump the graph as ``{"nodes": [...], "edges": [...]}``."""
    data = {
        "nodes": [node_to_dict(n) for n in nodes],
        "edges": [edge_to_dict(e) for e in edges],
    }
    return json.dumps(data, indent=2, ensure_ascii=False)


def to_markdown(
    nodes: Iterable[Node],
    edges: Iterable[Edge],
    name: str | None = None,
) -> str:
    """Render node sections followed by ``source --[label]--> target`` lines.

    Edges whose endpoints are missing are left out.
    """
    node_list = list(nodes)
    by_id = {n.id: n for n in node_list}

    lines = [f"# {name or DEFAULT_GRAPH_NAME}", "", "## Nodes"]
    for n in node_list:
        lines.append(f"### {n.title} (ID: {n.id})")
        lines.append(n.content)
        lines.append("")

    lines.append("## Edges")
    for e in edges:
        source = by_id.get(e.source)
        target = by_id.get(e.target)
        if source and target:
            lines.append(f"- **{source.title}** --[{e.label}]--> **{target.title}**")

    return "\n".join(lines) + "\n"


def export_graph(
    nodes: Iterable[Node],
    edges: Iterable[Edge],
    fmt: str,
    name: str | None = None,
) -> tuple[str, str, str]:
    """Return ``(payload, file_name, mime_type)`` for ``fmt`` in {"json", "markdown"}."""
    if fmt == "json":
        return to_json(nodes, edges), "ideamesh-graph.json", "application/json"
    if fmt == "markdown":
        return to_markdown(nodes, edges, name), "ideamesh-graph.md", "text/markdown"
    raise ValueError(f"Unsupported export format: {fmt!r}")
