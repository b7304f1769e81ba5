"""Data models for KDBX database elements.

This module provides typed Python classes for representing the decrypted
document: groups, entries, their typed values, and the Meta/Root sections.
"""

from .document import (
    NULL_UUID,
    Binary,
    CustomDataItem,
    CustomIcon,
    DeletedObject,
    Document,
    Item,
    MemoryProtection,
    Meta,
    Root,
    uuid_from_b64,
    uuid_to_b64,
)
from .entry import Association, AutoType, BinaryRef, Entry, StringField
from .group import Group
from .times import Times
from .values import ProtectedValue, XmlBool

__all__ = [
    "NULL_UUID",
    "Association",
    "AutoType",
    "Binary",
    "BinaryRef",
    "CustomDataItem",
    "CustomIcon",
    "DeletedObject",
    "Document",
    "Entry",
    "Group",
    "Item",
    "MemoryProtection",
    "Meta",
    "ProtectedValue",
    "Root",
    "StringField",
    "Times",
    "XmlBool",
    "uuid_from_b64",
    "uuid_to_b64",
]
