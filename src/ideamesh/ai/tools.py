"""Function-calling schemas for the graph editing tools offered to the chat model.

The model only proposes these calls; ``ToolCallReconciler`` executes them.
"""

from __future__ import annotations

from typing import Any


def _tool(name: str, description: str, properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


def _string(description: str) -> dict[str, str]:
    return {"type": "string", "description": description}


ADD_NODE = _tool(
    "addNode",
    "Adds a new node to the graph. Use this when the user wants to create a new concept or idea.",
    {
        "title": _string("The title of the new node."),
        "content": _string("The content or description for the new node."),
        "tempId": _string(
            "A temporary, unique ID for this node, used to link it with addEdge in the same turn."
        ),
    },
    ["title", "content"],
)

UPDATE_NODE = _tool(
    "updateNode",
    "Updates an existing node. Use this to change the title or content of a node.",
    {
        "nodeId": _string("The ID of the node to update."),
        "title": _string("The new title for the node."),
        "content": _string("The new content for the node."),
    },
    ["nodeId"],
)

DELETE_NODE = _tool(
    "deleteNode",
    "Deletes a node and every link touching it.",
    {"nodeId": _string("The ID of the node to delete.")},
    ["nodeId"],
)

ADD_EDGE = _tool(
    "addEdge",
    "Adds a directed link between two nodes. Node IDs may be real IDs from the graph "
    "or temporary IDs of nodes created in the same turn.",
    {
        "sourceNodeId": _string("The ID (or tempId) of the source node."),
        "targetNodeId": _string("The ID (or tempId) of the target node."),
        "label": _string("A label describing the relationship between the nodes."),
    },
    ["sourceNodeId", "targetNodeId", "label"],
)

UPDATE_EDGE = _tool(
    "updateEdge",
    "Updates the label of an existing link. Find the edge ID in the graph data.",
    {
        "edgeId": _string("The ID of the edge to update."),
        "newLabel": _string("The new label for the edge."),
    },
    ["edgeId", "newLabel"],
)

DELETE_EDGE = _tool(
    "deleteEdge",
    "Deletes an existing link. Find the edge ID in the graph data.",
    {"edgeId": _string("The ID of the edge to delete.")},
    ["edgeId"],
)

REARRANGE_GRAPH = _tool(
    "rearrangeGraph",
    "Rearranges the whole graph for better visual organization, optionally centered "
    "on the node with the given title.",
    {"centerNodeTitle": _string("Title of the node to place at the center.")},
    [],
)

GRAPH_TOOLS: list[dict[str, Any]] = [
    ADD_NODE,
    UPDATE_NODE,
    DELETE_NODE,
    ADD_EDGE,
    UPDATE_EDGE,
    DELETE_EDGE,
    REARRANGE_GRAPH,
]

TOOL_NAMES = frozenset(t["function"]["name"] for t in GRAPH_TOOLS)
