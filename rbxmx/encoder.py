"""Encode an asset tree as a Roblox XML model document (.rbxmx)."""

import logging
import math
import re

from rbxmx.models import AssetNode, BoolProperty, NumberProperty, TextProperty
from rbxmx.referents import ReferentGenerator

logger = logging.getLogger(__name__)

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'
ROOT_OPEN = (
    '<roblox xmlns:xmime="http://www.w3.org/2005/05/xmlmime"'
    ' xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"'
    ' xsi:noNamespaceSchemaLocation="http://www.roblox.com/roblox.xsd"'
    ' version="4">'
)
ROOT_CLOSE = "</roblox>"
EXTERNALS = ("null", "nil")
INDENT = "  "

_ESCAPES = {
    "<": "&lt;",
    ">": "&gt;",
    "&": "&amp;",
    '"': "&quot;",
    "'": "&apos;",
}

# Parsers normalize raw CR in text, and TAB/LF/CR in attribute values
_TEXT_ESCAPES = str.maketrans({**_ESCAPES, "\r": "&#13;"})
_ATTR_ESCAPES = str.maketrans({**_ESCAPES, "\t": "&#9;", "\n": "&#10;", "\r": "&#13;"})

_EXPONENT = re.compile(r"e([+-])0*(\d)")

# Characters XML 1.0 cannot carry, not even as character references
_INVALID_XML_CHARS = re.compile(
    "[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]"
)


def _strip_invalid(text: str, what: str) -> str:
    cleaned, removed = _INVALID_XML_CHARS.subn("", text)
    if removed:
        logger.warning(f"Removed {removed} character(s) not allowed in XML from {what}")
    return cleaned


def escape_xml(text: str | None) -> str:
    """Escape text content: < > & " ' as named entities, CR as &#13;.

    None or "" gives "".
    """
    if not text:
        return ""
    return _strip_invalid(text, "text value").translate(_TEXT_ESCAPES)


def escape_attr(text: str | None) -> str:
    """Escape an attribute value; TAB, LF and CR become character references."""
    if not text:
        return ""
    return _strip_invalid(text, "attribute value").translate(_ATTR_ESCAPES)


def wrap_cdata(text: str) -> str:
    """Wrap text in CDATA so a conforming parser recovers it unchanged.

    ``]]>`` is split across two sections and ``\\r`` is written as a
    character reference between sections, since parsers normalize raw
    carriage returns to ``\\n`` even inside CDATA.
    """
    text = _strip_invalid(text, "script source")
    text = text.replace("]]>", "]]]]><![CDATA[>")
    text = text.replace("\r", "]]>&#13;<![CDATA[")
    return f"<![CDATA[{text}]]>"


def format_number(value: float | int) -> str:
    """Decimal text for a <float> property.

    Non-integral floats use Python's shortest repr with the exponent
    unpadded, so 1e-07 is written as 1e-7 as JavaScript would.
    """
    if isinstance(value, float):
        if math.isnan(value):
            return "NAN"
        if math.isinf(value):
            return "INF" if value > 0 else "-INF"
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return _EXPONENT.sub(r"e\1\2", repr(value))
    return str(value)


def _property_lines(node: AssetNode, pad: str) -> list[str]:
    lines = [f'{pad}<string name="Name">{escape_xml(node.name)}</string>']

    if node.source and node.is_script:
        lines.append(
            f'{pad}<ProtectedString name="Source">{wrap_cdata(node.source)}</ProtectedString>'
        )

    for name, prop in node.properties.items():
        attr = escape_attr(name)
        if isinstance(prop, TextProperty):
            lines.append(f'{pad}<string name="{attr}">{escape_xml(prop.value)}</string>')
        elif isinstance(prop, BoolProperty):
            value = "true" if prop.value else "false"
            lines.append(f'{pad}<bool name="{attr}">{value}</bool>')
        elif isinstance(prop, NumberProperty):
            lines.append(f'{pad}<float name="{attr}">{format_number(prop.value)}</float>')
        else:
            raise TypeError(f"Unknown property variant for {name!r}: {type(prop).__name__}")

    return lines


def _write_items(lines: list[str], root: AssetNode, referents: ReferentGenerator) -> None:
    """Append <Item> elements for the tree, depth-first, without recursion."""
    # (node, depth, closing): closing entries emit </Item> after the children
    stack = [(root, 0, False)]
    while stack:
        node, depth, closing = stack.pop()
        indent = INDENT * (depth + 1)
        if closing:
            lines.append(f"{indent}</Item>")
            continue

        lines.append(
            f'{indent}<Item class="{escape_attr(node.class_name)}" referent="{referents.next()}">'
        )
        lines.append(f"{indent}{INDENT}<Properties>")
        lines.extend(_property_lines(node, indent + INDENT * 2))
        lines.append(f"{indent}{INDENT}</Properties>")

        stack.append((node, depth, True))
        stack.extend((child, depth + 1, False) for child in reversed(node.children))


def encode(root: AssetNode, referents: ReferentGenerator | None = None) -> str:
    """Render an asset tree as a complete rbxmx document string.

    A fresh ReferentGenerator is used unless one is passed in; pass a shared
    generator to keep referents unique across several documents.
    """
    referents = referents or ReferentGenerator()

    lines = [XML_DECLARATION, ROOT_OPEN]
    lines.extend(f"{INDENT}<External>{value}</External>" for value in EXTERNALS)
    _write_items(lines, root, referents)
    lines.append(ROOT_CLOSE)

    doc = "\n".join(lines)
    logger.debug(f"Encoded '{root.name}' ({len(doc)} chars)")
    return doc
