"""Schema definition parser.

Turns a comma separated schema definition such as
``"uint64 timestamp, (address owner, ipfsHash cid)[] entries"`` into an
ordered list of :class:`ParamDescriptor`. Tuple type tags are rebuilt from
their components so two schemas with the same shape always produce the same
ABI types regardless of field names.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from somnia_streams.core.errors import SchemaParseError

IPFS_HASH = "ipfsHash"
BYTES32 = "bytes32"
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# ipfsHash in type position: at the start of a declaration and followed by
# array suffixes, a field name, a separator or the end
_IPFS_HASH_TOKEN = re.compile(
    r"(^|[,(])(\s*)ipfsHash(?=(?:\[\d*\])*(?:\s|,|\)|$))"
)
_IDENTIFIER = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")
_ARRAY_SUFFIX = re.compile(r"\[(\d*)\]")
_INTEGER = re.compile(r"(u?)int(\d*)")
_FIXED_BYTES = re.compile(r"bytes(\d+)")
_BARE_INTEGER = re.compile(r"(?<![A-Za-z0-9_$])(u?int)(?![A-Za-z0-9_$])")
_DATA_LOCATIONS = {"memory", "calldata", "storage"}
_INDEXED = re.compile(r"(?<![A-Za-z0-9_$])indexed(?![A-Za-z0-9_$])")


class ValueKind(str, Enum):
    """Tag describing which Python value shape a descriptor accepts."""

    BOOL = "bool"
    UINT = "uint"
    INT = "int"
    ADDRESS = "address"
    FIXED_BYTES = "fixed_bytes"
    BYTES = "bytes"
    STRING = "string"
    TUPLE = "tuple"
    ARRAY = "array"


@dataclass(frozen=True)
class ParamDescriptor:
    """Parsed schema parameter.

    ``type_tag`` is the canonical ABI type (``uint256``, ``(address,bool)[]``)
    and ``signature`` the Solidity style declaration including field names.
    Arrays wrap their element descriptor in ``element``; tuples (and arrays of
    tuples) expose their fields through ``components``.
    """

    name: str
    type_tag: str
    kind: ValueKind
    signature: str
    components: tuple["ParamDescriptor", ...] = ()
    element: "ParamDescriptor | None" = None
    size: int | None = None

    @property
    def is_array(self) -> bool:
        return self.kind is ValueKind.ARRAY

    @property
    def is_tuple(self) -> bool:
        return self.kind is ValueKind.TUPLE

    @property
    def default(self) -> Any:
        """Placeholder value for this type."""
        if self.kind is ValueKind.BOOL:
            return False
        if self.kind in (ValueKind.UINT, ValueKind.INT):
            return 0
        if self.kind is ValueKind.ADDRESS:
            return ZERO_ADDRESS
        if self.kind in (ValueKind.FIXED_BYTES, ValueKind.BYTES):
            return b""
        if self.kind is ValueKind.STRING:
            return ""
        if self.kind is ValueKind.TUPLE:
            return [c.default for c in self.components]
        # Arrays: fixed length arrays are filled, dynamic arrays start empty
        if self.size is None or self.element is None:
            return []
        return [self.element.default for _ in range(self.size)]

    def without_name(self) -> "ParamDescriptor":
        return _build(self, "")


def normalize_aliases(schema: str) -> str:
    """Rewrite the ``ipfsHash`` alias to ``bytes32`` wherever it is a type token."""
    return _IPFS_HASH_TOKEN.sub(r"\g<1>\g<2>" + BYTES32, schema)


def normalize_type(type_text: str) -> str:
    """Normalise a type or signature string for comparison.

    Applies the alias pass, canonicalises bare ``uint``/``int`` and removes
    insignificant whitespace around brackets and separators.
    """
    text = normalize_aliases(type_text.strip())
    text = re.sub(r"\s+", " ", text)
    text = re.sub(r"\s*([(),\[\]])\s*", r"\1", text)
    return _BARE_INTEGER.sub(r"\g<1>256", text)


def parse_schema(schema: str) -> list[ParamDescriptor]:
    """Parse a schema definition into ordered descriptors.

    Raises:
        SchemaParseError: If any declaration is malformed
    """
    if not isinstance(schema, str):
        raise SchemaParseError(repr(schema), "schema must be a string")

    fixed = normalize_aliases(schema)
    if not fixed.strip():
        return []
    return [_parse_declaration(part) for part in _split_top_level(fixed)]


def _split_top_level(text: str) -> list[str]:
    """Split on commas that are not nested inside parentheses."""
    parts: list[str] = []
    depth = 0
    start = 0
    for i, char in enumerate(text):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise SchemaParseError(text, "unbalanced parentheses")
        elif char == "," and depth == 0:
            parts.append(text[start:i])
            start = i + 1
    if depth != 0:
        raise SchemaParseError(text, "unbalanced parentheses")
    parts.append(text[start:])
    return parts


def _matching_paren(text: str, open_index: int) -> int:
    depth = 0
    for i in range(open_index, len(text)):
        if text[i] == "(":
            depth += 1
        elif text[i] == ")":
            depth -= 1
            if depth == 0:
                return i
    raise SchemaParseError(text, "unbalanced parentheses")


def _parse_declaration(text: str) -> ParamDescriptor:
    declaration = text.strip()
    if not declaration:
        raise SchemaParseError(text, "empty declaration")

    if declaration.startswith("tuple") and declaration[5:].lstrip().startswith("("):
        declaration = declaration[5:].lstrip()

    if declaration.startswith("("):
        close = _matching_paren(declaration, 0)
        inner = declaration[1:close]
        if not inner.strip():
            raise SchemaParseError(text, "tuple is missing its component list")
        components = tuple(_parse_declaration(p) for p in _split_top_level(inner))
        base = _tuple(components, "")
        rest = declaration[close + 1 :]
    else:
        match = _IDENTIFIER.match(declaration)
        if not match:
            raise SchemaParseError(text, "expected a type")
        word = match.group(0)
        if word == "tuple":
            raise SchemaParseError(text, "tuple is missing its component list")
        base = _primitive(word, text)
        rest = declaration[match.end() :]

    # Array suffixes must directly follow the type
    while True:
        suffix = _ARRAY_SUFFIX.match(rest)
        if not suffix:
            break
        size = int(suffix.group(1)) if suffix.group(1) else None
        if size == 0:
            raise SchemaParseError(text, "fixed array length must be positive")
        base = _array(base, size)
        rest = rest[suffix.end() :]

    if rest and not rest[0].isspace():
        raise SchemaParseError(text, f"unexpected {rest.strip()!r} after type")

    tokens = [t for t in rest.split() if t not in _DATA_LOCATIONS]
    if len(tokens) > 1:
        raise SchemaParseError(text, "expected a single field name")
    name = tokens[0] if tokens else ""
    if name and not _IDENTIFIER.fullmatch(name):
        raise SchemaParseError(text, f"invalid field name {name!r}")

    return _build(base, name)


def _primitive(word: str, fragment: str) -> ParamDescriptor:
    if word == "bool":
        return ParamDescriptor("", word, ValueKind.BOOL, word)
    if word == "address":
        return ParamDescriptor("", word, ValueKind.ADDRESS, word)
    if word == "string":
        return ParamDescriptor("", word, ValueKind.STRING, word)
    if word == "bytes":
        return ParamDescriptor("", word, ValueKind.BYTES, word)

    fixed = _FIXED_BYTES.fullmatch(word)
    if fixed:
        size = int(fixed.group(1))
        if not 1 <= size <= 32:
            raise SchemaParseError(fragment, f"unknown type {word!r}")
        return ParamDescriptor("", word, ValueKind.FIXED_BYTES, word, size=size)

    integer = _INTEGER.fullmatch(word)
    if integer:
        bits = int(integer.group(2)) if integer.group(2) else 256
        if bits % 8 != 0 or not 8 <= bits <= 256:
            raise SchemaParseError(fragment, f"unknown type {word!r}")
        kind = ValueKind.UINT if integer.group(1) else ValueKind.INT
        tag = f"{integer.group(1)}int{bits}"
        return ParamDescriptor("", tag, kind, tag, size=bits)

    raise SchemaParseError(fragment, f"unknown type {word!r}")


def _tuple(components: tuple[ParamDescriptor, ...], name: str) -> ParamDescriptor:
    type_tag = "(" + ",".join(c.type_tag for c in components) + ")"
    return ParamDescriptor(
        name=name,
        type_tag=type_tag,
        kind=ValueKind.TUPLE,
        signature=_with_name("(" + ",".join(c.signature for c in components) + ")", name),
        components=components,
    )


def _array(element: ParamDescriptor, size: int | None) -> ParamDescriptor:
    suffix = f"[{size}]" if size is not None else "[]"
    return ParamDescriptor(
        name="",
        type_tag=element.type_tag + suffix,
        kind=ValueKind.ARRAY,
        signature=element.signature + suffix,
        components=element.components,
        element=element,
        size=size,
    )


def _build(descriptor: ParamDescriptor, name: str) -> ParamDescriptor:
    """Return a copy of ``descriptor`` carrying ``name`` in name and signature."""
    if descriptor.kind is ValueKind.TUPLE:
        return _tuple(descriptor.components, name)
    if descriptor.kind is ValueKind.ARRAY:
        unnamed = _array(descriptor.element.without_name(), descriptor.size)
        return ParamDescriptor(
            name=name,
            type_tag=unnamed.type_tag,
            kind=ValueKind.ARRAY,
            signature=_with_name(unnamed.signature, name),
            components=unnamed.components,
            element=unnamed.element,
            size=unnamed.size,
        )
    return ParamDescriptor(
        name=name,
        type_tag=descriptor.type_tag,
        kind=descriptor.kind,
        signature=_with_name(descriptor.type_tag, name),
        size=descriptor.size,
    )


def _with_name(rendered: str, name: str) -> str:
    return f"{rendered} {name}" if name else rendered


def event_signature(declaration: str) -> str:
    """Canonical signature of an event declaration.

    ``"event Transfer(address indexed from, uint amount)"`` becomes
    ``"Transfer(address,uint256)"``.

    Raises:
        SchemaParseError: If the declaration is malformed
    """
    text = declaration.strip()
    if text.startswith("event "):
        text = text[len("event ") :].lstrip()
    open_index = text.find("(")
    name = text[:open_index].strip() if open_index > 0 else ""
    if not _IDENTIFIER.fullmatch(name):
        raise SchemaParseError(declaration, "expected an event name")
    close = _matching_paren(text, open_index)
    if text[close + 1 :].strip().rstrip(";"):
        raise SchemaParseError(declaration, "unexpected text after parameters")
    params = _INDEXED.sub(" ", text[open_index + 1 : close])
    return name + "(" + ",".join(p.type_tag for p in parse_schema(params)) + ")"
