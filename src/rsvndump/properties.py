"""Encoding of property blocks.

A property block is a sequence of entries followed by a single ``PROPS-END`` line::

    K <key length>\\n<key>\\nV <value length>\\n<value>\\n    (set)
    D <key length>\\n<key>\\n                                 (deleted)

Lengths are byte counts. Keys and text values are encoded as UTF-8, bytes values are
written untouched.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

    from rsvndump.config import PropertyValue

PROPS_END = b"PROPS-END\n"
PROPS_END_LEN = len(PROPS_END)


def to_bytes(value: str | bytes) -> bytes:
    """Return the byte representation written to the dump for `value`."""
    return value if isinstance(value, bytes) else value.encode("utf-8")


def _marker_length(tag: str, size: int) -> int:
    # "<tag> <size>\n"
    return len(tag) + 1 + len(str(size)) + 1


def encoded_length(key: str, value: PropertyValue) -> int:
    """Compute the number of bytes `encode_property` produces for one entry.

    The length is computed without building the entry.

    Args:
        key (str): the property name
        value (PropertyValue): the property value, None for a deleted property

    Returns:
        int: the exact byte length of the encoded entry
    """
    key_size = len(to_bytes(key))
    if value is None:
        return _marker_length("D", key_size) + key_size + 1
    value_size = len(to_bytes(value))
    return _marker_length("K", key_size) + key_size + 1 + _marker_length("V", value_size) + value_size + 1


def encode_property(key: str, value: PropertyValue) -> bytes:
    """Encode one property entry.

    Args:
        key (str): the property name
        value (PropertyValue): the property value, None for a deleted property

    Returns:
        bytes: the encoded entry, without the block terminator
    """
    raw_key = to_bytes(key)
    if value is None:
        return b"D %d\n%s\n" % (len(raw_key), raw_key)
    raw_value = to_bytes(value)
    return b"K %d\n%s\nV %d\n%s\n" % (len(raw_key), raw_key, len(raw_value), raw_value)


def properties_length(props: Mapping[str, PropertyValue]) -> int:
    """Length of the block `encode_properties` produces, terminator included."""
    return sum(encoded_length(k, v) for k, v in props.items()) + PROPS_END_LEN


def encode_properties(props: Mapping[str, PropertyValue]) -> bytes:
    """Encode a whole property block in insertion order, followed by ``PROPS-END``."""
    return b"".join(encode_property(k, v) for k, v in props.items()) + PROPS_END
