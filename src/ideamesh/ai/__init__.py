from .client import Completion, LLMClient, parse_json_text
from .flows import ChatReply, GraphAI
from .tools import GRAPH_TOOLS, TOOL_NAMES

__all__ = [
    "Completion",
    "LLMClient",
    "parse_json_text",
    "ChatReply",
    "GraphAI",
    "GRAPH_TOOLS",
    "TOOL_NAMES",
]
