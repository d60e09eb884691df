"""Asset Service - wraps rbxmx for JSON parsing, export, import, and merging."""

import re
import time
from typing import Iterable, Optional

import rbxmx


def validate_asset_json(json_str: str) -> tuple[bool, Optional[int], Optional[str]]:
    """Validate an asset tree JSON string.

    Returns (valid, node_count, error_message).
    """
    try:
        node = rbxmx.from_json(json_str)
        return True, node.node_count(), None
    except Exception as e:
        return False, None, str(e)


def parse_asset_json(json_str: str) -> rbxmx.AssetNode:
    """Parse an asset tree JSON string into an AssetNode."""
    return rbxmx.from_json(json_str)


def asset_to_json(node: rbxmx.AssetNode) -> str:
    """Serialize an AssetNode to JSON string."""
    return rbxmx.to_json(node)


def export_rbxmx(node: rbxmx.AssetNode) -> tuple[bytes, dict]:
    """Encode an asset tree as rbxmx. Returns (document_bytes, stats)."""
    t0 = time.perf_counter()
    data = rbxmx.encode(node).encode("utf-8")
    elapsed_ms = (time.perf_counter() - t0) * 1000

    return data, {
        "node_count": node.node_count(),
        "bytes": len(data),
        "timings": {"encode_ms": round(elapsed_ms, 2)},
    }


def import_rbxmx(xml: str) -> tuple[rbxmx.AssetNode, dict]:
    """Decode an rbxmx document. Returns (asset, stats).

    Raises rbxmx.StructuralError for unusable documents.
    """
    t0 = time.perf_counter()
    node = rbxmx.decode(xml)
    elapsed_ms = (time.perf_counter() - t0) * 1000

    return node, {
        "node_count": node.node_count(),
        "timings": {"decode_ms": round(elapsed_ms, 2)},
    }


def merge_into_root(
    root: rbxmx.AssetNode, assets: Iterable[rbxmx.AssetNode]
) -> rbxmx.AssetNode:
    """Return a copy of root with assets appended after its children.

    The copy owns fresh copies of every child; neither root nor assets are shared.
    """
    children = [child.model_copy(deep=True) for child in [*root.children, *assets]]
    return root.model_copy(update={"children": children})


_UNSAFE_FILENAME = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


def rbxmx_filename(node: rbxmx.AssetNode) -> str:
    """Download file name for an asset: <name>.rbxmx."""
    stem = _UNSAFE_FILENAME.sub("_", node.name).strip() or "Unnamed"
    return f"{stem}.rbxmx"
