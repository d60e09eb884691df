"""Decode a Roblox XML model document (.rbxmx) into an asset tree."""

import logging
from xml.etree import ElementTree

from rbxmx.errors import StructuralError
from rbxmx.models import AssetNode

logger = logging.getLogger(__name__)

ITEM_TAG = "Item"
DEFAULT_CLASS = "Folder"
DEFAULT_NAME = "Unnamed"


def _extract_item(element: ElementTree.Element, children: list[AssetNode]) -> AssetNode:
    """Build an AssetNode from an <Item> element and its already-built child Items.

    Only Name and Source are read back; typed properties are not.
    """
    class_name = element.get("class") or DEFAULT_CLASS
    name_node = element.find("./Properties/string[@name='Name']")
    source_node = element.find("./Properties/ProtectedString[@name='Source']")

    name = "".join(name_node.itertext()) if name_node is not None else ""
    source = "".join(source_node.itertext()) if source_node is not None else ""

    return AssetNode(
        name=name or DEFAULT_NAME,
        class_name=class_name,
        source=source or None,
        children=children,
    )


def _child_items(element: ElementTree.Element) -> list[ElementTree.Element]:
    return [child for child in element if child.tag == ITEM_TAG]


def _extract_tree(root_item: ElementTree.Element) -> AssetNode:
    """Build the tree under root_item without recursion."""
    order = []
    stack = [root_item]
    while stack:
        element = stack.pop()
        order.append(element)
        stack.extend(_child_items(element))

    # Reverse pre-order visits every child before its parent
    built: dict[int, AssetNode] = {}
    for element in reversed(order):
        children = [built.pop(id(child)) for child in _child_items(element)]
        built[id(element)] = _extract_item(element, children)

    return built[id(root_item)]


def decode(doc: str) -> AssetNode:
    """Parse an rbxmx document and return the tree under its first <Item>.

    Raises StructuralError if the document is not XML or has no <Item>.
    """
    try:
        root = ElementTree.fromstring(doc)
    except ElementTree.ParseError as e:
        raise StructuralError(f"malformed XML: {e}") from e

    first_item = next(root.iter(ITEM_TAG), None)
    if first_item is None:
        raise StructuralError("no Roblox items found")

    node = _extract_tree(first_item)
    logger.debug(f"Decoded '{node.name}' ({node.node_count()} nodes)")
    return node
