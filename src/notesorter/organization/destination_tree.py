"""Compact outline of the destination hierarchy.

The classifier never sees document content from destinations, only this
outline of titles. Output is deterministic: the same set of documents
always serializes to the same text, whatever order the store returns them
in.
"""

from typing import Iterable

from notesorter.models.document import Document
from notesorter.models.routing import DestinationTreeNode
from notesorter.utils.logging import get_logger


logger = get_logger(__name__)

INDENT = "  "


def _sort_key(node: DestinationTreeNode) -> tuple[str, str]:
    return (node.title.casefold(), node.id or "")


def build_tree(documents: Iterable[Document]) -> DestinationTreeNode:
    """
    Link documents into a tree under a synthetic root.

    Deleted documents are skipped. A document whose parent is not among the
    inputs attaches to the root.

    Args:
        documents: Destination documents (typically every organized, live document)

    Returns:
        Root node with children sorted case-insensitively by title at every level
    """
    live = [d for d in documents if not d.is_deleted]
    nodes = {
        d.id: DestinationTreeNode(id=d.id, title=d.title, kind=d.kind)
        for d in live
    }
    root = DestinationTreeNode(id=None, title="/", kind="root")

    orphans = 0
    for document in live:
        node = nodes[document.id]
        parent = nodes.get(document.parent_id) if document.parent_id else None
        if parent is None or parent is node:
            if document.parent_id:
                orphans += 1
            root.children.append(node)
        else:
            parent.children.append(node)

    _sort_children(root)

    if orphans:
        logger.debug("destination_tree_orphans_attached", count=orphans)
    return root


def _sort_children(node: DestinationTreeNode) -> None:
    node.children.sort(key=_sort_key)
    for child in node.children:
        _sort_children(child)


def serialize(tree: DestinationTreeNode) -> str:
    """
    Render the tree as an indented outline.

    Example:
        [DIR] Work
          [FILE] Planning
        [FILE] Errands
    """
    lines: list[str] = []

    def walk(node: DestinationTreeNode, depth: int) -> None:
        marker = "[DIR]" if node.kind == "container" else "[FILE]"
        lines.append(f"{INDENT * depth}{marker} {node.title}")
        for child in node.children:
            walk(child, depth + 1)

    for child in tree.children:
        walk(child, 0)
    return "\n".join(lines)


def _paths(tree: DestinationTreeNode, kind: str) -> set[str]:
    found: set[str] = set()

    def walk(node: DestinationTreeNode, prefix: str) -> None:
        path = f"{prefix}/{node.title.strip()}"
        if node.kind == kind:
            found.add(path.casefold())
        for child in node.children:
            walk(child, path)

    for child in tree.children:
        walk(child, "")
    return found


def container_paths(tree: DestinationTreeNode) -> set[str]:
    """Casefolded '/'-paths of every container in the tree."""
    return _paths(tree, "container")


def leaf_paths(tree: DestinationTreeNode) -> set[str]:
    """Casefolded '/'-paths of every leaf in the tree."""
    return _paths(tree, "leaf")
