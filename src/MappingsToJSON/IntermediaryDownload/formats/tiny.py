# === NAVMAP v1 ===
# {
#   "module": "MappingsToJSON.IntermediaryDownload.formats.tiny",
#   "purpose": "Single-pass decoder for tiny v1 and tiny v2 mapping files",
#   "sections": [
#     {"id": "namespaces", "name": "Namespace resolution", "anchor": "NS", "kind": "api"},
#     {"id": "builder", "name": "Model builder", "anchor": "BLD", "kind": "helpers"},
#     {"id": "v1", "name": "Tiny v1 grammar", "anchor": "V1", "kind": "helpers"},
#     {"id": "v2", "name": "Tiny v2 grammar", "anchor": "V2", "kind": "helpers"},
#     {"id": "api", "name": "Public API", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Decode tiny-format mapping files into a :class:`MappingModel`.

Two grammars exist in the wild and both are accepted:

``v1`` files start with ``v1<TAB>ns0<TAB>ns1...`` and contain flat records::

    CLASS   <name ns0>  <name ns1> ...
    METHOD  <owner ns0> <desc ns0> <name ns0> <name ns1> ...
    FIELD   <owner ns0> <desc ns0> <name ns0> <name ns1> ...

``v2`` files start with ``tiny<TAB>2<TAB><minor><TAB>ns0...`` and nest member
records under their class by indentation::

    c   <name ns0> <name ns1> ...
    <TAB>m  <desc ns0> <name ns0> <name ns1> ...
    <TAB>f  <desc ns0> <name ns0> <name ns1> ...

Only the two configured namespace columns are retained; every other column,
comments, parameters, and local variables are skipped while streaming.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from typing import BinaryIO, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from ..errors import MalformedMappingFile
from ..model import FieldMapping, MappingModel, MethodMapping

__all__ = ["NamespaceIndex", "decode", "decode_stream", "decode_lines", "unescape"]

LOGGER = logging.getLogger("MappingsToJSON.IntermediaryDownload.formats.tiny")

DEFAULT_SOURCE_NAMESPACE = "official"
DEFAULT_TARGET_NAMESPACE = "intermediary"

_ESCAPES = {"\\": "\\", "n": "\n", "r": "\r", "t": "\t", "0": "\0"}

# --- Namespace resolution -------------------------------------------------------


@dataclass(slots=True, frozen=True)
class NamespaceIndex:
    """Column positions of the source and target namespaces within a file."""

    source: int
    target: int

    @classmethod
    def resolve(
        cls,
        declared: Sequence[str],
        *,
        source: str,
        target: str,
        line: int = 1,
    ) -> "NamespaceIndex":
        """Locate ``source`` and ``target`` among the ``declared`` namespace names."""

        indices = []
        for name in (source, target):
            try:
                indices.append(list(declared).index(name))
            except ValueError:
                raise MalformedMappingFile(
                    f"namespace {name!r} not declared (found {', '.join(declared) or 'none'})",
                    line=line,
                ) from None
        return cls(source=indices[0], target=indices[1])


def unescape(value: str, *, line: Optional[int] = None) -> str:
    """Reverse tiny v2 name escaping (``\\\\``, ``\\n``, ``\\r``, ``\\t``, ``\\0``)."""

    if "\\" not in value:
        return value
    out: List[str] = []
    chars = iter(value)
    for char in chars:
        if char != "\\":
            out.append(char)
            continue
        code = next(chars, None)
        if code is None or code not in _ESCAPES:
            raise MalformedMappingFile(f"invalid escape sequence in {value!r}", line=line)
        out.append(_ESCAPES[code])
    return "".join(out)


# --- Model builder --------------------------------------------------------------


@dataclass
class _ClassEntry:
    src_name: str
    dst_name: Optional[str]
    methods: Dict[Tuple[str, str], MethodMapping] = field(default_factory=dict)
    fields: Dict[Tuple[str, str], FieldMapping] = field(default_factory=dict)


class _ModelBuilder:
    """Accumulates the two retained columns while the file is streamed."""

    def __init__(self, index: NamespaceIndex) -> None:
        self.index = index
        self._classes: Dict[str, _ClassEntry] = {}
        # Keyed by column-0 name; v1 member records reference owners that way.
        self._by_primary: Dict[str, _ClassEntry] = {}

    def _column(self, names: Sequence[str], position: int) -> Optional[str]:
        if position >= len(names):
            return None
        return names[position] or None

    def _source_name(self, names: Sequence[str], kind: str, line: int) -> str:
        name = self._column(names, self.index.source)
        if name is None:
            raise MalformedMappingFile(f"{kind} record has no source name", line=line)
        return name

    def add_class(self, names: Sequence[str], line: int) -> _ClassEntry:
        src_name = self._source_name(names, "class", line)
        dst_name = self._column(names, self.index.target)
        entry = self._classes.get(src_name)
        if entry is None:
            entry = _ClassEntry(src_name=src_name, dst_name=dst_name)
            self._classes[src_name] = entry
        elif dst_name is not None:
            entry.dst_name = dst_name
        if names and names[0]:
            self._by_primary.setdefault(names[0], entry)
        return entry

    def owner(self, primary_name: str, line: int) -> _ClassEntry:
        """Return the class whose column-0 name is ``primary_name``."""

        entry = self._by_primary.get(primary_name)
        if entry is not None:
            return entry
        if self.index.source != 0:
            raise MalformedMappingFile(
                f"member references undeclared class {primary_name!r}", line=line
            )
        # Owner without its own CLASS record: register it with no target name.
        return self.add_class([primary_name], line)

    def add_method(
        self, owner: _ClassEntry, descriptor: str, names: Sequence[str], line: int
    ) -> None:
        src_name = self._source_name(names, "method", line)
        dst_name = self._column(names, self.index.target)
        owner.methods[(src_name, descriptor)] = MethodMapping(src_name, dst_name, descriptor)

    def add_field(
        self, owner: _ClassEntry, descriptor: str, names: Sequence[str], line: int
    ) -> None:
        src_name = self._source_name(names, "field", line)
        dst_name = self._column(names, self.index.target)
        owner.fields[(src_name, descriptor)] = FieldMapping(src_name, dst_name, descriptor)

    def build(self) -> MappingModel:
        classes: Dict[str, Optional[str]] = {}
        methods: Dict[str, Tuple[MethodMapping, ...]] = {}
        fields: Dict[str, Tuple[FieldMapping, ...]] = {}
        for src_name, entry in self._classes.items():
            classes[src_name] = entry.dst_name
            if entry.methods:
                methods[src_name] = tuple(entry.methods.values())
            if entry.fields:
                fields[src_name] = tuple(entry.fields.values())
        return MappingModel(classes=classes, methods=methods, fields=fields)


# --- Tiny v1 grammar ------------------------------------------------------------


def _decode_v1(records: Iterator[Tuple[int, str]], builder: _ModelBuilder) -> None:
    for line_no, line in records:
        if not line or line.startswith("#"):
            continue
        parts = line.split("\t")
        kind = parts[0]
        if kind == "CLASS":
            if len(parts) < 2:
                raise MalformedMappingFile("CLASS record needs at least one name", line=line_no)
            builder.add_class(parts[1:], line_no)
        elif kind in ("METHOD", "FIELD"):
            if len(parts) < 4:
                raise MalformedMappingFile(
                    f"{kind} record needs owner, descriptor, and names", line=line_no
                )
            owner = builder.owner(parts[1], line_no)
            if kind == "METHOD":
                builder.add_method(owner, parts[2], parts[3:], line_no)
            else:
                builder.add_field(owner, parts[2], parts[3:], line_no)
        else:
            raise MalformedMappingFile(f"unknown record kind {kind!r}", line=line_no)


# --- Tiny v2 grammar ------------------------------------------------------------


def _split_indent(line: str) -> Tuple[int, List[str]]:
    depth = len(line) - len(line.lstrip("\t"))
    return depth, line[depth:].split("\t")


def _decode_v2(records: Iterator[Tuple[int, str]], builder: _ModelBuilder) -> None:
    escaped = False
    in_header = True
    current: Optional[_ClassEntry] = None
    # Set while inside a top-level section of an unknown kind.
    skipping = False

    def names_of(parts: Sequence[str], line_no: int) -> List[str]:
        if escaped:
            return [unescape(part, line=line_no) for part in parts]
        return list(parts)

    for line_no, line in records:
        if not line:
            continue
        depth, parts = _split_indent(line)
        if in_header:
            if depth == 1 and parts[0] not in ("m", "f"):
                if parts[0] == "escaped-names":
                    escaped = True
                continue
            in_header = False

        if depth == 0:
            if parts[0] == "c":
                if len(parts) < 2:
                    raise MalformedMappingFile("class record needs at least one name", line=line_no)
                current = builder.add_class(names_of(parts[1:], line_no), line_no)
                skipping = False
            else:
                LOGGER.debug("skipping unknown tiny v2 section %r at line %d", parts[0], line_no)
                current = None
                skipping = True
            continue

        if depth != 1 or skipping or parts[0] == "c":
            # Comments, parameters, and local variables are not exported.
            continue

        kind = parts[0]
        if kind not in ("m", "f"):
            continue
        if current is None:
            raise MalformedMappingFile("member record outside of a class", line=line_no)
        if len(parts) < 3:
            raise MalformedMappingFile(
                f"{'method' if kind == 'm' else 'field'} record needs descriptor and names",
                line=line_no,
            )
        descriptor = unescape(parts[1], line=line_no) if escaped else parts[1]
        names = names_of(parts[2:], line_no)
        if kind == "m":
            builder.add_method(current, descriptor, names, line_no)
        else:
            builder.add_field(current, descriptor, names, line_no)


# --- Public API -----------------------------------------------------------------


def _numbered(lines: Iterable[str]) -> Iterator[Tuple[int, str]]:
    for line_no, raw in enumerate(lines, start=1):
        yield line_no, raw.rstrip("\r\n")


def decode_lines(
    lines: Iterable[str],
    *,
    source_namespace: str = DEFAULT_SOURCE_NAMESPACE,
    target_namespace: str = DEFAULT_TARGET_NAMESPACE,
) -> MappingModel:
    """Decode an iterable of tiny-format lines (header first)."""

    records = _numbered(lines)
    try:
        line_no, header = next(records)
    except StopIteration:
        raise MalformedMappingFile("empty mapping file: missing header", line=1) from None

    columns = header.split("\t")
    if columns[0] == "v1":
        namespaces = columns[1:]
        decoder = _decode_v1
    elif columns[0] == "tiny" and len(columns) >= 3:
        if columns[1] != "2":
            raise MalformedMappingFile(
                f"unsupported tiny major version {columns[1]!r}", line=line_no
            )
        namespaces = columns[3:]
        decoder = _decode_v2
    else:
        raise MalformedMappingFile("unrecognised tiny header", line=line_no)

    index = NamespaceIndex.resolve(
        namespaces, source=source_namespace, target=target_namespace, line=line_no
    )
    builder = _ModelBuilder(index)
    decoder(records, builder)
    return builder.build()


def decode_stream(
    stream: BinaryIO,
    *,
    source_namespace: str = DEFAULT_SOURCE_NAMESPACE,
    target_namespace: str = DEFAULT_TARGET_NAMESPACE,
) -> MappingModel:
    """Decode a UTF-8 tiny file from a binary stream without buffering it as text."""

    text = io.TextIOWrapper(stream, encoding="utf-8-sig", newline="\n")
    try:
        return decode_lines(
            text,
            source_namespace=source_namespace,
            target_namespace=target_namespace,
        )
    except UnicodeDecodeError as exc:
        raise MalformedMappingFile(f"mapping file is not valid UTF-8: {exc.reason}") from exc
    finally:
        text.detach()


def decode(
    data: bytes,
    *,
    source_namespace: str = DEFAULT_SOURCE_NAMESPACE,
    target_namespace: str = DEFAULT_TARGET_NAMESPACE,
) -> MappingModel:
    """Decode the raw bytes of a tiny mapping file.

    Raises:
        MalformedMappingFile: If the header is unrecognised, either namespace is
            not declared, or a record violates the grammar.
    """

    return decode_stream(
        io.BytesIO(data),
        source_namespace=source_namespace,
        target_namespace=target_namespace,
    )
