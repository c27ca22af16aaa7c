"""
Bounded traversal of parsed JSON/YAML documents.

Parsed documents are trees over {str, int, float, bool, None, list, dict}.
The walker is iterative and stops descending past max_depth and after
max_nodes nodes, so pathological inputs cannot exhaust the stack or hang
the event loop.
"""

from typing import Any, Dict, Iterator, List, Tuple, Union

JsonScalar = Union[str, int, float, bool, None]
JsonValue = Union[JsonScalar, List[Any], Dict[str, Any]]

DEFAULT_MAX_DEPTH = 32
DEFAULT_MAX_NODES = 10_000


def iter_strings(
    value: JsonValue,
    max_depth: int = DEFAULT_MAX_DEPTH,
    max_nodes: int = DEFAULT_MAX_NODES,
) -> Iterator[str]:
    """
    Yield every string value in a parsed document.

    Dictionary keys are not yielded; only values.

    Args:
        value: Parsed document
        max_depth: Containers nested deeper than this are skipped
        max_nodes: Traversal stops after visiting this many nodes
    """
    stack: List[Tuple[JsonValue, int]] = [(value, 0)]
    visited = 0

    while stack and visited < max_nodes:
        node, depth = stack.pop()
        visited += 1

        if isinstance(node, str):
            yield node
        elif isinstance(node, dict):
            if depth < max_depth:
                children = list(node.values())
                stack.extend((child, depth + 1) for child in reversed(children))
        elif isinstance(node, (list, tuple)):
            if depth < max_depth:
                stack.extend((child, depth + 1) for child in reversed(node))
        # numbers, booleans and None carry no URLs
