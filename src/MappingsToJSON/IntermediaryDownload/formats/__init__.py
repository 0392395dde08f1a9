"""Mapping file format decoders."""

from .tiny import NamespaceIndex, decode, decode_lines, decode_stream

__all__ = ["NamespaceIndex", "decode", "decode_lines", "decode_stream"]
