"""Asset tree models for the rbxmx codec."""

import json
import logging
import math
import uuid
from typing import Iterator, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

logger = logging.getLogger(__name__)


class TextProperty(BaseModel):
    kind: Literal["text"] = "text"
    value: str


class NumberProperty(BaseModel):
    kind: Literal["number"] = "number"
    value: float | int


class BoolProperty(BaseModel):
    kind: Literal["bool"] = "bool"
    value: bool


PropertyValue = Union[TextProperty, NumberProperty, BoolProperty]


def to_property(value) -> Optional[PropertyValue]:
    """Wrap a raw scalar in its property variant, or None if unsupported."""
    if isinstance(value, (TextProperty, NumberProperty, BoolProperty)):
        return value
    # bool before int: True is an int in Python
    if isinstance(value, bool):
        return BoolProperty(value=value)
    if isinstance(value, (int, float)):
        return NumberProperty(value=value)
    if isinstance(value, str):
        return TextProperty(value=value)
    return None


def is_script_class(class_name: str) -> bool:
    """True for class names that carry Luau source (Script, LocalScript, ModuleScript)."""
    return "Script" in (class_name or "")


def _new_id() -> str:
    return str(uuid.uuid4())


class AssetNode(BaseModel):
    """One engine object in an asset tree."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=_new_id)
    name: str
    class_name: str = Field(alias="className")
    source: Optional[str] = None
    properties: dict[str, PropertyValue] = Field(default_factory=dict)
    children: list["AssetNode"] = Field(default_factory=list)

    @field_validator("properties", mode="before")
    @classmethod
    def _coerce_properties(cls, value):
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError("properties must be an object")
        coerced = {}
        for key, raw in value.items():
            prop = to_property(raw)
            if prop is None:
                logger.warning(
                    f"Dropping property {key!r}: unsupported kind {type(raw).__name__}"
                )
                continue
            coerced[str(key)] = prop
        return coerced

    @field_validator("children", mode="before")
    @classmethod
    def _coerce_children(cls, value):
        return [] if value is None else value

    @field_serializer("properties")
    def _serialize_properties(self, properties: dict[str, PropertyValue]):
        out = {}
        for key, prop in properties.items():
            value = prop.value
            # JSON has no representation for non-finite floats
            if isinstance(value, float) and not math.isfinite(value):
                value = str(value)
            out[key] = value
        return out

    @property
    def is_script(self) -> bool:
        return is_script_class(self.class_name)

    def walk(self) -> Iterator["AssetNode"]:
        """Yield this node and its descendants depth-first, in document order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def node_count(self) -> int:
        return sum(1 for _ in self.walk())


def from_json(json_str: str) -> AssetNode:
    """Parse an asset tree from its JSON form."""
    return AssetNode.model_validate_json(json_str)


def to_json(node: AssetNode, indent: int | None = None) -> str:
    """Serialize an asset tree to its JSON form (camelCase keys)."""
    return json.dumps(
        node.model_dump(by_alias=True, exclude_none=True),
        indent=indent,
        ensure_ascii=False,
    )
