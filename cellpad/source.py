"""
Conversion between persisted notebook source and editable text.

nbformat stores multi-line strings either as one string or as a list of
line fragments, each keeping its own terminator except possibly the last.
"""

from typing import Union

PersistedSource = Union[str, list[str], None]


def decode(persisted: PersistedSource) -> str:
    """
    Join persisted source into one logical string.

    Args:
        persisted: A string, a list of line fragments, or None

    Returns:
        The logical text ("" for None)
    """
    if persisted is None:
        return ""
    if isinstance(persisted, str):
        return persisted
    if isinstance(persisted, list):
        if not all(isinstance(fragment, str) for fragment in persisted):
            raise TypeError("source fragments must be strings")
        return "".join(persisted)
    raise TypeError(f"source must be a string or a list of strings, not {type(persisted).__name__}")


def encode(text: str) -> list[str]:
    """
    Split text into line fragments for persistence.

    Every fragment keeps its terminator; the last fragment has one only
    if the text ended with one, so decode(encode(text)) == text.
    """
    return text.splitlines(keepends=True)
