from rbxmx.decoder import decode
from rbxmx.encoder import encode, escape_attr, escape_xml, format_number, wrap_cdata
from rbxmx.errors import StructuralError
from rbxmx.models import (
    AssetNode,
    BoolProperty,
    NumberProperty,
    TextProperty,
    from_json,
    is_script_class,
    to_json,
    to_property,
)
from rbxmx.referents import ReferentGenerator

__version__ = "0.1.0"


def version() -> str:
    return __version__


__all__ = [
    # Models
    "AssetNode",
    "TextProperty",
    "NumberProperty",
    "BoolProperty",
    "to_property",
    "is_script_class",
    # Codec
    "encode",
    "decode",
    "escape_xml",
    "escape_attr",
    "wrap_cdata",
    "format_number",
    "ReferentGenerator",
    "StructuralError",
    # JSON
    "from_json",
    "to_json",
    "version",
]
