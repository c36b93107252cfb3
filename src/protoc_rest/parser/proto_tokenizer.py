"""Tokenizer for protobuf (.proto) files."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import List

from protoc_rest.errors import ProtoSyntaxError


class ProtoTokenType(Enum):
    # Keywords
    SYNTAX = auto()
    PACKAGE = auto()
    IMPORT = auto()
    OPTION = auto()
    MESSAGE = auto()
    ENUM = auto()
    SERVICE = auto()
    RPC = auto()
    RETURNS = auto()
    STREAM = auto()
    REPEATED = auto()
    OPTIONAL = auto()
    REQUIRED = auto()
    RESERVED = auto()
    ONEOF = auto()
    MAP = auto()
    EXTENSIONS = auto()
    EXTEND = auto()
    GROUP = auto()

    # Delimiters
    LBRACE = auto()
    RBRACE = auto()
    LPAREN = auto()
    RPAREN = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    LANGLE = auto()
    RANGLE = auto()
    SEMICOLON = auto()
    EQUALS = auto()
    COMMA = auto()
    DOT = auto()
    COLON = auto()
    MINUS = auto()
    PLUS = auto()

    # Literals
    IDENT = auto()
    NUMBER = auto()
    STRING_LIT = auto()

    # Special
    COMMENT = auto()
    EOF = auto()


_KEYWORDS = {
    "syntax": ProtoTokenType.SYNTAX,
    "package": ProtoTokenType.PACKAGE,
    "import": ProtoTokenType.IMPORT,
    "option": ProtoTokenType.OPTION,
    "message": ProtoTokenType.MESSAGE,
    "enum": ProtoTokenType.ENUM,
    "service": ProtoTokenType.SERVICE,
    "rpc": ProtoTokenType.RPC,
    "returns": ProtoTokenType.RETURNS,
    "stream": ProtoTokenType.STREAM,
    "repeated": ProtoTokenType.REPEATED,
    "optional": ProtoTokenType.OPTIONAL,
    "required": ProtoTokenType.REQUIRED,
    "reserved": ProtoTokenType.RESERVED,
    "oneof": ProtoTokenType.ONEOF,
    "map": ProtoTokenType.MAP,
    "extensions": ProtoTokenType.EXTENSIONS,
    "extend": ProtoTokenType.EXTEND,
    "group": ProtoTokenType.GROUP,
}

KEYWORD_TYPES = frozenset(_KEYWORDS.values())

_SINGLE_CHAR_TOKENS = {
    "{": ProtoTokenType.LBRACE,
    "}": ProtoTokenType.RBRACE,
    "(": ProtoTokenType.LPAREN,
    ")": ProtoTokenType.RPAREN,
    "[": ProtoTokenType.LBRACKET,
    "]": ProtoTokenType.RBRACKET,
    "<": ProtoTokenType.LANGLE,
    ">": ProtoTokenType.RANGLE,
    ";": ProtoTokenType.SEMICOLON,
    "=": ProtoTokenType.EQUALS,
    ",": ProtoTokenType.COMMA,
    ".": ProtoTokenType.DOT,
    ":": ProtoTokenType.COLON,
    "-": ProtoTokenType.MINUS,
    "+": ProtoTokenType.PLUS,
}

_DIGITS = "0123456789"
_HEX_DIGITS = "0123456789abcdefABCDEF"

_ESCAPES = {
    '"': '"',
    "'": "'",
    "\\": "\\",
    "n": "\n",
    "r": "\r",
    "t": "\t",
}


@dataclass
class ProtoToken:
    type: ProtoTokenType
    value: str
    line: int
    col: int
    end_line: int = 0

    def __post_init__(self):
        if not self.end_line:
            self.end_line = self.line

    @property
    def is_keyword(self) -> bool:
        return self.type in KEYWORD_TYPES


def _clean_block_comment(body: str) -> str:
    lines = []
    for raw in body.split("\n"):
        stripped = raw.strip()
        if stripped.startswith("*"):
            stripped = stripped[1:].strip()
        lines.append(stripped)
    return "\n".join(lines).strip()


def tokenize_proto(text: str) -> List[ProtoToken]:
    """Tokenize a protobuf source string into a list of tokens.

    Comments are kept as COMMENT tokens so the parser can attach them to
    declarations.
    """
    tokens: List[ProtoToken] = []
    i = 0
    line = 1
    col = 1
    n = len(text)

    while i < n:
        ch = text[i]

        # Whitespace
        if ch in (" ", "\t", "\r", "\f", "\v", "\ufeff"):
            i += 1
            col += 1
            continue

        if ch == "\n":
            i += 1
            line += 1
            col = 1
            continue

        # Single-line comment
        if ch == "/" and i + 1 < n and text[i + 1] == "/":
            start = i + 2
            while i < n and text[i] != "\n":
                i += 1
            body = text[start:i].lstrip("/").strip()
            tokens.append(ProtoToken(ProtoTokenType.COMMENT, body, line, col))
            col += i - start + 2
            continue

        # Multi-line comment
        if ch == "/" and i + 1 < n and text[i + 1] == "*":
            start_line = line
            start_col = col
            i += 2
            col += 2
            start = i
            closed = False
            while i < n:
                if text[i] == "\n":
                    line += 1
                    col = 1
                elif text[i] == "*" and i + 1 < n and text[i + 1] == "/":
                    closed = True
                    break
                else:
                    col += 1
                i += 1
            if not closed:
                raise ProtoSyntaxError(start_line, start_col, "Unterminated block comment")
            body = _clean_block_comment(text[start:i])
            i += 2
            col += 2
            tokens.append(
                ProtoToken(ProtoTokenType.COMMENT, body, start_line, start_col, end_line=line)
            )
            continue

        # String literal, adjacent literals are joined by the parser
        if ch in ('"', "'"):
            quote = ch
            start_col = col
            i += 1
            col += 1
            chars: List[str] = []
            while True:
                if i >= n or text[i] == "\n":
                    raise ProtoSyntaxError(line, start_col, "Unterminated string literal")
                c = text[i]
                if c == quote:
                    i += 1
                    col += 1
                    break
                if c == "\\" and i + 1 < n:
                    nxt = text[i + 1]
                    chars.append(_ESCAPES.get(nxt, "\\" + nxt))
                    i += 2
                    col += 2
                    continue
                chars.append(c)
                i += 1
                col += 1
            tokens.append(ProtoToken(ProtoTokenType.STRING_LIT, "".join(chars), line, start_col))
            continue

        # Number: decimal or hex integers, floats like 1.5, 1., .5 and 1e-3
        if ch in _DIGITS or (ch == "." and i + 1 < n and text[i + 1] in _DIGITS):
            start = i
            start_col = col
            if ch == "0" and i + 1 < n and text[i + 1] in "xX":
                i += 2
                while i < n and text[i] in _HEX_DIGITS:
                    i += 1
            else:
                while i < n and text[i] in _DIGITS:
                    i += 1
                if i < n and text[i] == ".":
                    i += 1
                    while i < n and text[i] in _DIGITS:
                        i += 1
                if i < n and text[i] in "eE":
                    j = i + 1
                    if j < n and text[j] in "+-":
                        j += 1
                    if j < n and text[j] in _DIGITS:
                        i = j
                        while i < n and text[i] in _DIGITS:
                            i += 1
            if i < n and (text[i].isalnum() or text[i] == "_"):
                raise ProtoSyntaxError(line, start_col, f"Malformed number {text[start:i + 1]!r}")
            tokens.append(ProtoToken(ProtoTokenType.NUMBER, text[start:i], line, start_col))
            col += i - start
            continue

        # Identifier / keyword
        if (ch.isascii() and ch.isalpha()) or ch == "_":
            start = i
            start_col = col
            while i < n and ((text[i].isascii() and text[i].isalnum()) or text[i] == "_"):
                i += 1
                col += 1
            word = text[start:i]
            tok_type = _KEYWORDS.get(word, ProtoTokenType.IDENT)
            tokens.append(ProtoToken(tok_type, word, line, start_col))
            continue

        # Single-character tokens
        tok_type = _SINGLE_CHAR_TOKENS.get(ch)
        if tok_type is not None:
            tokens.append(ProtoToken(tok_type, ch, line, col))
            i += 1
            col += 1
            continue

        raise ProtoSyntaxError(line, col, f"Unexpected character {ch!r}")

    tokens.append(ProtoToken(ProtoTokenType.EOF, "", line, col))
    return tokens
