"""Deterministic JSON rendering of a :class:`MappingModel`.

The layout is fixed (``classes`` then ``methods`` then ``fields``, two-space
indents, insertion order everywhere) so that exports of the same artifact are
byte-identical between runs.  Strings are escaped by hand rather than through
:mod:`json` because the exported documents must keep the legacy escaping:

* ``"`` and ``\\`` plus backspace, form feed, newline, carriage return, and
  tab use their two-character escapes;
* U+2028 and U+2029 become ``\\u2028`` / ``\\u2029``;
* everything else, including non-ASCII text and the remaining ASCII control
  characters, is written unchanged.  The latter yields invalid JSON if such a
  character ever appears in a name; this gap is kept for output compatibility.
"""

from __future__ import annotations

import io
from typing import Dict, Optional, TextIO, Tuple, Union

from .model import FieldMapping, MappingModel, MethodMapping

__all__ = ["escape_json", "emit", "write_json"]

_ESCAPE_TABLE = {
    ord('"'): '\\"',
    ord("\\"): "\\\\",
    ord("\b"): "\\b",
    ord("\f"): "\\f",
    ord("\n"): "\\n",
    ord("\r"): "\\r",
    ord("\t"): "\\t",
    0x2028: "\\u2028",
    0x2029: "\\u2029",
}

_Member = Union[MethodMapping, FieldMapping]


def escape_json(value: Optional[str]) -> str:
    """Return ``value`` escaped for use inside a JSON string literal.

    ``None`` maps to the bare token ``null``; callers must not pass ``None``
    where a quoted string is required.
    """

    if value is None:
        return "null"
    return value.translate(_ESCAPE_TABLE)


def _quoted(value: Optional[str]) -> str:
    if value is None:
        return "null"
    return f'"{escape_json(value)}"'


def _write_classes(classes: Dict[str, Optional[str]], out: TextIO) -> None:
    out.write('  "classes": {\n')
    out.write(
        ",\n".join(f"    {_quoted(src)}: {_quoted(dst)}" for src, dst in classes.items())
    )
    out.write("\n  },\n")


def _write_members(
    name: str,
    members: Dict[str, Tuple[_Member, ...]],
    out: TextIO,
    *,
    last: bool,
) -> None:
    out.write(f'  "{name}": {{\n')
    first_owner = True
    for owner, entries in members.items():
        if not first_owner:
            out.write(",\n")
        first_owner = False
        out.write(f"    {_quoted(owner)}: [\n")
        for position, entry in enumerate(entries):
            out.write("      {\n")
            out.write(f'        "srcName": {_quoted(entry.src_name)},\n')
            out.write(f'        "dstName": {_quoted(entry.dst_name)},\n')
            out.write(f'        "descriptor": {_quoted(entry.descriptor)}\n')
            out.write("      }")
            if position < len(entries) - 1:
                out.write(",")
            out.write("\n")
        out.write("    ]")
    out.write("\n  }" if last else "\n  },")
    out.write("\n")


def write_json(model: MappingModel, out: TextIO) -> None:
    """Write ``model`` to the text stream ``out``."""

    out.write("{\n")
    _write_classes(model.classes, out)
    _write_members("methods", model.methods, out, last=False)
    _write_members("fields", model.fields, out, last=True)
    out.write("}")


def emit(model: MappingModel) -> bytes:
    """Render ``model`` as UTF-8 encoded JSON."""

    buffer = io.StringIO()
    write_json(model, buffer)
    return buffer.getvalue().encode("utf-8")
