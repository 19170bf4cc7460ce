"""Scanner for the version registry source file.

The registry is a small TypeScript module: default imports of the companion
components followed by one array literal of records::

    import V1Draft from "./v1-draft"
    import V2Hero from "./v2-hero"

    export const versions: Version[] = [
      { id: "v1", title: "Draft", type: "page", component: V1Draft },
      { id: "v2", title: "Hero", type: "final", component: V2Hero },
    ]

Only this subset is understood. The tokenizer knows about strings and comments
so that braces, brackets and commas inside them never count as structure, and
record blocks are found by balanced-delimiter matching.
"""

from __future__ import annotations

import string
from dataclasses import dataclass

from gallery.errors import DuplicateRecord, NotFound, StorageError

_OPENERS = {"{": "}", "[": "]", "(": ")"}
_CLOSERS = {v: k for k, v in _OPENERS.items()}
_QUOTES = "\"'`"
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}
_REVERSE_ESCAPES = {"\n": "\\n", "\t": "\\t", "\r": "\\r", "\b": "\\b", "\f": "\\f", "\v": "\\v"}


@dataclass(frozen=True)
class Span:
    """Half-open character range ``[start, end)`` in a registry buffer."""

    start: int
    end: int


@dataclass(frozen=True)
class Token:
    kind: str  # "name" | "string" | "punct"
    text: str
    start: int
    end: int


@dataclass(frozen=True)
class Field:
    """One ``key: value`` pair of a record block."""

    name: str
    kind: str  # "string" | "name" | "expr"
    value: str | None
    span: Span
    quote: str | None = None


@dataclass(frozen=True)
class RecordBlock:
    """A ``{ ... }`` element of the records list."""

    span: Span
    fields: dict[str, Field]
    comma: Span | None = None  # comma following this element
    prev_comma: Span | None = None  # comma ending the previous element

    @property
    def id(self) -> str | None:
        f = self.fields.get("id")
        return f.value if f and f.kind == "string" else None

    def value(self, name: str) -> str | None:
        f = self.fields.get(name)
        return f.value if f else None


@dataclass(frozen=True)
class ImportStatement:
    span: Span
    source: str
    default: str | None = None
    names: tuple[str, ...] = ()


@dataclass(frozen=True)
class RegistryDocument:
    """Result of scanning a registry buffer."""

    text: str
    list_span: Span
    imports: tuple[ImportStatement, ...] = ()
    records: tuple[RecordBlock, ...] = ()
    element_count: int = 0
    trailing_comma: bool = False

    def find(self, record_id: str) -> RecordBlock:
        """Return the record whose ``id`` equals ``record_id`` exactly."""
        matches = [r for r in self.records if r.id == record_id]
        if not matches:
            raise NotFound()
        if len(matches) > 1:
            raise DuplicateRecord()
        return matches[0]

    def import_for(self, binding: str) -> ImportStatement | None:
        for imp in self.imports:
            if binding in imp.names:
                return imp
        return None


# ── Tokenizer ────────────────────────────────────────────────


def _string_end(text: str, start: int) -> int:
    quote = text[start]
    i = start + 1
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        if ch == "\n" and quote != "`":
            break
        i += 1
    raise StorageError("Unterminated string in registry")


def tokenize(text: str) -> list[Token]:
    """Split a registry buffer into tokens, skipping whitespace and comments."""
    tokens: list[Token] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch.isspace():
            i += 1
        elif text.startswith("//", i):
            j = text.find("\n", i)
            i = n if j == -1 else j
        elif text.startswith("/*", i):
            j = text.find("*/", i + 2)
            if j == -1:
                raise StorageError("Unterminated comment in registry")
            i = j + 2
        elif ch in _QUOTES:
            j = _string_end(text, i)
            tokens.append(Token("string", text[i:j], i, j))
            i = j
        elif ch.isalnum() or ch in "_$":
            j = i + 1
            while j < n and (text[j].isalnum() or text[j] in "_$"):
                j += 1
            tokens.append(Token("name", text[i:j], i, j))
            i = j
        else:
            tokens.append(Token("punct", ch, i, i + 1))
            i += 1
    return tokens


def _match_brackets(tokens: list[Token]) -> dict[int, int]:
    """Map the index of every opening bracket token to its closing partner."""
    pairs: dict[int, int] = {}
    stack: list[int] = []
    for idx, tok in enumerate(tokens):
        if tok.kind != "punct":
            continue
        if tok.text in _OPENERS:
            stack.append(idx)
        elif tok.text in _CLOSERS:
            if not stack or tokens[stack[-1]].text != _CLOSERS[tok.text]:
                raise StorageError("Unbalanced delimiters in registry")
            pairs[stack.pop()] = idx
    if stack:
        raise StorageError("Unbalanced delimiters in registry")
    return pairs


# ── String literals ──────────────────────────────────────────


def _hex(digits: str, width: int | None = None) -> int:
    """Parse the digits of a ``\\x``/``\\u`` escape. Only hex digits are allowed."""
    if not digits or (width is not None and len(digits) != width):
        raise ValueError(f"Bad escape digits: {digits!r}")
    if not all(c in string.hexdigits for c in digits):
        raise ValueError(f"Bad escape digits: {digits!r}")
    return int(digits, 16)


def decode_string(literal: str) -> str:
    """Decode a quoted string literal into its value."""
    if literal[0] == "`" and "${" in literal:
        raise StorageError("Template interpolation is not supported in registry values")
    body = literal[1:-1]
    out: list[str] = []
    i = 0
    try:
        while i < len(body):
            ch = body[i]
            if ch != "\\":
                out.append(ch)
                i += 1
                continue
            esc = body[i + 1]
            if esc == "u" and body[i + 2 : i + 3] == "{":
                close = body.index("}", i)
                out.append(chr(_hex(body[i + 3 : close])))
                i = close + 1
            elif esc == "u":
                out.append(chr(_hex(body[i + 2 : i + 6], 4)))
                i += 6
            elif esc == "x":
                out.append(chr(_hex(body[i + 2 : i + 4], 2)))
                i += 4
            elif esc == "\n":
                i += 2  # line continuation
            else:
                out.append(_ESCAPES.get(esc, esc))
                i += 2
    except (IndexError, ValueError, OverflowError) as exc:
        raise StorageError("Malformed escape in registry string") from exc
    # Recombine escaped surrogate pairs.
    try:
        return "".join(out).encode("utf-16", "surrogatepass").decode("utf-16")
    except UnicodeError as exc:
        raise StorageError("Malformed escape in registry string") from exc


def quote(value: str, quote_char: str = '"') -> str:
    """Render ``value`` as a string literal that decodes back to ``value``."""
    if quote_char not in ("'", '"'):
        quote_char = '"'
    out = [quote_char]
    for ch in value:
        if ch == "\\" or ch == quote_char:
            out.append("\\" + ch)
        elif ch in _REVERSE_ESCAPES:
            out.append(_REVERSE_ESCAPES[ch])
        elif ord(ch) < 0x20 or ch in "\u2028\u2029":
            out.append(f"\\u{ord(ch):04x}")
        else:
            out.append(ch)
    out.append(quote_char)
    return "".join(out)


# ── Structure ────────────────────────────────────────────────


def _text(tokens: list[Token], idx: int) -> str:
    return tokens[idx].text if idx < len(tokens) else ""


def _skip_to(tokens: list[Token], pairs: dict[int, int], start: int, stop: int, texts: str) -> int:
    """Advance from ``start`` to the first punct in ``texts`` at this depth (or ``stop``)."""
    i = start
    while i < stop:
        tok = tokens[i]
        if tok.kind == "punct" and tok.text in texts:
            return i
        i = pairs[i] + 1 if i in pairs else i + 1
    return stop


def _parse_imports(tokens: list[Token], pairs: dict[int, int]) -> list[ImportStatement]:
    imports: list[ImportStatement] = []
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        if i in pairs:
            i = pairs[i] + 1
            continue
        is_static_import = (
            tok.kind == "name"
            and tok.text == "import"
            and (i == 0 or tokens[i - 1].text != ".")
            and i + 1 < len(tokens)
            and tokens[i + 1].text not in ("(", ".")
        )
        if not is_static_import:
            i += 1
            continue

        names: list[str] = []
        default: str | None = None
        j = i + 1
        if (
            _text(tokens, j) == "type"
            and j + 1 < len(tokens)
            and tokens[j + 1].kind == "name"
            and tokens[j + 1].text != "from"
        ):
            j += 1  # `import type X from ...`
        if tokens[j].kind == "name" and _text(tokens, j + 1) in ("from", ","):
            default = tokens[j].text
        while j < len(tokens) and tokens[j].kind != "string":
            t = tokens[j]
            if t.kind == "name" and t.text not in ("type", "from", "as"):
                if j + 1 < len(tokens) and tokens[j + 1].text == "as":
                    j += 1  # `A as B` binds B
                else:
                    names.append(t.text)
            j += 1
        if j >= len(tokens):
            raise StorageError("Import statement without a source path")
        source_tok = tokens[j]
        end = source_tok.end
        if j + 1 < len(tokens) and tokens[j + 1].text == ";":
            end = tokens[j + 1].end
            j += 1
        imports.append(
            ImportStatement(
                span=Span(tok.start, end),
                source=decode_string(source_tok.text),
                default=default,
                names=tuple(names),
            )
        )
        i = j + 1
    return imports


def _find_list(tokens: list[Token], pairs: dict[int, int], list_name: str) -> int:
    """Return the token index of ``[`` opening the ``list_name`` initializer."""
    for i, tok in enumerate(tokens):
        if tok.kind != "name" or tok.text != list_name:
            continue
        if i == 0 or tokens[i - 1].text not in ("const", "let", "var"):
            continue
        eq = _skip_to(tokens, pairs, i + 1, len(tokens), "=;")
        while _text(tokens, eq) == "=" and _text(tokens, eq + 1) == ">":
            # arrow inside a type annotation
            eq = _skip_to(tokens, pairs, eq + 2, len(tokens), "=;")
        if _text(tokens, eq) == "=" and _text(tokens, eq + 1) == "[":
            return eq + 1
    raise StorageError(f"Registry list '{list_name}' not found")


def _parse_fields(tokens: list[Token], pairs: dict[int, int], open_idx: int) -> dict[str, Field]:
    fields: dict[str, Field] = {}
    close = pairs[open_idx]
    p = open_idx + 1
    while p < close:
        end = _skip_to(tokens, pairs, p, close, ",")
        key = tokens[p]
        if key.kind in ("name", "string") and p < end:
            name = decode_string(key.text) if key.kind == "string" else key.text
            if p + 1 == end and key.kind == "name":
                # shorthand `{ component }`
                value_field = Field(name, "name", key.text, Span(key.start, key.end))
            elif p + 2 < end and tokens[p + 1].text == ":":
                first, last = tokens[p + 2], tokens[end - 1]
                span = Span(first.start, last.end)
                if p + 3 == end and first.kind == "string":
                    value_field = Field(name, "string", decode_string(first.text), span, first.text[0])
                elif p + 3 == end and first.kind == "name":
                    value_field = Field(name, "name", first.text, span)
                else:
                    value_field = Field(name, "expr", None, span)
            else:
                value_field = None
            if value_field is not None and name not in fields:
                fields[name] = value_field
        p = end + 1
    return fields


def _parse_records(
    tokens: list[Token], pairs: dict[int, int], open_idx: int
) -> tuple[list[RecordBlock], int, bool]:
    close = pairs[open_idx]
    records: list[RecordBlock] = []
    count = 0
    trailing = False
    prev_comma: Span | None = None
    k = open_idx + 1
    while k < close:
        e = _skip_to(tokens, pairs, k, close, ",")
        if e == k:
            raise StorageError("Empty element in registry list")
        comma = Span(tokens[e].start, tokens[e].end) if e < close else None
        count += 1
        if tokens[k].text == "{" and pairs.get(k) == e - 1:
            records.append(
                RecordBlock(
                    span=Span(tokens[k].start, tokens[e - 1].end),
                    fields=_parse_fields(tokens, pairs, k),
                    comma=comma,
                    prev_comma=prev_comma,
                )
            )
        trailing = comma is not None and e + 1 == close
        prev_comma = comma
        k = e + 1
    return records, count, trailing


def scan(text: str, list_name: str = "versions") -> RegistryDocument:
    """Scan a registry buffer into imports and record blocks."""
    tokens = tokenize(text)
    pairs = _match_brackets(tokens)
    open_idx = _find_list(tokens, pairs, list_name)
    records, count, trailing = _parse_records(tokens, pairs, open_idx)
    return RegistryDocument(
        text=text,
        list_span=Span(tokens[open_idx].start, tokens[pairs[open_idx]].end),
        imports=tuple(_parse_imports(tokens, pairs)),
        records=tuple(records),
        element_count=count,
        trailing_comma=trailing,
    )


# ── Locate / replace ─────────────────────────────────────────


def locate(text: str, record_id: str, field_name: str, list_name: str = "versions") -> Span:
    """Find the value span of ``field_name`` inside the record whose id is ``record_id``."""
    record = scan(text, list_name).find(record_id)
    f = record.fields.get(field_name)
    if f is None:
        raise NotFound(f"Field '{field_name}' not found")
    return f.span


def replace(text: str, span: Span, new_value: str) -> str:
    """Return a copy of ``text`` with ``span`` swapped for ``new_value``."""
    if not 0 <= span.start <= span.end <= len(text):
        raise ValueError(f"Span {span} outside buffer of length {len(text)}")
    return text[: span.start] + new_value + text[span.end :]


def expand_to_lines(text: str, span: Span) -> Span:
    """Widen ``span`` to whole lines when it is alone on its line(s).

    Leading indentation, a trailing ``//`` comment on the same line and the
    newline are included. Otherwise the span is only widened over trailing
    spaces so inline removals stay tidy.
    """
    start = span.start
    while start > 0 and text[start - 1] in " \t":
        start -= 1
    end = span.end
    while end < len(text) and text[end] in " \t":
        end += 1
    at_line_start = start == 0 or text[start - 1] == "\n"
    if at_line_start and text.startswith("//", end):
        while end < len(text) and text[end] not in "\r\n":
            end += 1
    at_line_end = end == len(text) or text[end] in "\r\n"
    if at_line_start and at_line_end:
        if text.startswith("\r\n", end):
            end += 2
        elif end < len(text):
            end += 1
        return Span(start, end)
    return Span(span.start, end)
