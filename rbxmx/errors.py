"""Errors raised by the rbxmx codec."""


class StructuralError(ValueError):
    """Document is not parseable XML or holds no Roblox <Item> elements."""
