"""Recursive descent parser for protobuf (.proto) files.

Consumes a token stream from proto_tokenizer and produces the ProtoFile tree
defined in protoc_rest.models.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from protoc_rest.annotations import decode_http_rule, is_http_option
from protoc_rest.errors import (
    DuplicateDefinitionError,
    InvalidSyntaxError,
    ProtoSyntaxError,
    UnexpectedTokenError,
    UnsupportedFeatureError,
    ValidationError,
)
from protoc_rest.models import (
    PROTO_PRIMITIVES,
    Comment,
    CommentType,
    EnumValue,
    Field,
    FieldLabel,
    FieldType,
    HttpAnnotation,
    Import,
    ImportType,
    MapType,
    Message,
    Oneof,
    OptionValue,
    OptionValueKind,
    ProtocolVersion,
    ProtoEnum,
    ProtoFile,
    ProtoOption,
    RpcMethod,
    ScalarType,
    Service,
    TypeReference,
)

from .proto_tokenizer import ProtoToken, ProtoTokenType

logger = logging.getLogger(__name__)

MAX_FIELD_NUMBER = 536870911
MAX_ENUM_NUMBER = 2147483647
# Guards the Python call stack against pathological nesting.
MAX_NESTING_DEPTH = 64

_LABELS = {
    ProtoTokenType.OPTIONAL: FieldLabel.OPTIONAL,
    ProtoTokenType.REQUIRED: FieldLabel.REQUIRED,
    ProtoTokenType.REPEATED: FieldLabel.REPEATED,
}


def _to_int(text: str) -> int:
    if text[:2] in ("0x", "0X"):
        return int(text, 16)
    if len(text) > 1 and text.startswith("0"):
        return int(text, 8)
    return int(text)


def _to_number(text: str) -> float:
    if text[:2] in ("0x", "0X"):
        return float(int(text, 16))
    return float(text)


class ProtoAstParser:
    """Recursive descent parser for .proto files."""

    def __init__(
        self,
        tokens: List[ProtoToken],
        *,
        preserve_comments: bool = True,
        strict: bool = True,
    ):
        self._tokens = tokens
        self._pos = 0
        self._preserve_comments = preserve_comments
        self._strict = strict
        self._pending: List[ProtoToken] = []
        self._last: Optional[ProtoToken] = None
        self._depth = 0

    # -- public API --

    def parse(self) -> ProtoFile:
        """Parse the full token stream into a ProtoFile AST."""
        proto = ProtoFile()

        # Header: syntax first, then package/import/option in any order.
        if self._peek().type == ProtoTokenType.SYNTAX:
            proto.syntax = self._parse_syntax()
        while True:
            tok = self._peek()
            if tok.type == ProtoTokenType.PACKAGE:
                if proto.package is not None:
                    raise DuplicateDefinitionError("package", tok.line)
                proto.package = self._parse_package()
            elif tok.type == ProtoTokenType.IMPORT:
                proto.imports.append(self._parse_import())
            elif tok.type == ProtoTokenType.OPTION:
                proto.options.append(self._parse_option_statement())
            elif tok.type == ProtoTokenType.SEMICOLON:
                self._advance()
            else:
                break

        # Definitions in any order.
        seen: Dict[str, int] = {}
        while True:
            tok = self._peek()
            tt = tok.type
            if tt == ProtoTokenType.EOF:
                break
            if tt == ProtoTokenType.SERVICE:
                service = self._parse_service()
                self._declare(seen, service.name, tok.line)
                proto.services.append(service)
            elif tt == ProtoTokenType.MESSAGE:
                message = self._parse_message()
                self._declare(seen, message.name, tok.line)
                proto.messages.append(message)
            elif tt == ProtoTokenType.ENUM:
                enum = self._parse_enum()
                self._declare(seen, enum.name, tok.line)
                proto.enums.append(enum)
            elif tt == ProtoTokenType.SEMICOLON:
                self._advance()
            elif tt == ProtoTokenType.EXTEND:
                raise UnsupportedFeatureError("extend blocks", tok.line)
            else:
                raise InvalidSyntaxError(
                    f"Unexpected content at end of file: {tok.value!r} "
                    f"at line {tok.line}, column {tok.col}"
                )

        logger.debug(
            "Parsed %d service(s), %d message(s), %d enum(s), %d import(s)",
            len(proto.services), len(proto.messages), len(proto.enums), len(proto.imports),
        )
        return proto

    # -- header statements --

    def _parse_syntax(self) -> ProtocolVersion:
        """Parse: SYNTAX EQUALS STRING_LIT SEMICOLON"""
        self._expect(ProtoTokenType.SYNTAX, "'syntax'")
        self._expect(ProtoTokenType.EQUALS, "'='")
        tok = self._expect(ProtoTokenType.STRING_LIT, "syntax version string")
        try:
            version = ProtocolVersion(tok.value)
        except ValueError:
            raise ProtoSyntaxError(
                tok.line, tok.col, f"Unsupported syntax {tok.value!r}, expected proto2 or proto3"
            ) from None
        self._expect(ProtoTokenType.SEMICOLON, "';'")
        self._trailing_comments()
        return version

    def _parse_package(self) -> str:
        """Parse: PACKAGE full_ident SEMICOLON"""
        self._expect(ProtoTokenType.PACKAGE, "'package'")
        name = self._parse_full_ident()
        self._expect(ProtoTokenType.SEMICOLON, "';'")
        self._trailing_comments()
        return name

    def _parse_import(self) -> Import:
        """Parse: IMPORT [public|weak] STRING_LIT SEMICOLON"""
        self._expect(ProtoTokenType.IMPORT, "'import'")
        import_type = ImportType.NORMAL
        tok = self._peek()
        if tok.type == ProtoTokenType.IDENT and tok.value in ("public", "weak"):
            self._advance()
            import_type = ImportType.PUBLIC if tok.value == "public" else ImportType.WEAK
        path = self._parse_string()
        self._expect(ProtoTokenType.SEMICOLON, "';'")
        self._trailing_comments()
        return Import(path=path, import_type=import_type)

    # -- options --

    def _parse_option_statement(self) -> ProtoOption:
        """Parse: OPTION option_name EQUALS value SEMICOLON"""
        self._expect(ProtoTokenType.OPTION, "'option'")
        option = self._parse_option_assignment()
        self._expect(ProtoTokenType.SEMICOLON, "';'")
        self._trailing_comments()
        return option

    def _parse_option_assignment(self) -> ProtoOption:
        name = self._parse_option_name()
        self._expect(ProtoTokenType.EQUALS, "'='")
        value = self._parse_option_value()
        return ProtoOption(name=name, value=value)

    def _parse_option_name(self) -> str:
        """Parse ``name``, ``(custom.name)``, ``(custom).sub.field`` or ``name[index]``."""
        parts: List[str] = [self._parse_option_name_part()]
        while True:
            tt = self._peek().type
            if tt == ProtoTokenType.DOT:
                self._advance()
                parts.append("." + self._parse_option_name_part())
            elif tt == ProtoTokenType.LBRACKET:
                self._advance()
                index = self._parse_full_ident()
                self._expect(ProtoTokenType.RBRACKET, "']'")
                parts.append(f"[{index}]")
            else:
                break
        return "".join(parts)

    def _parse_option_name_part(self) -> str:
        if self._peek().type == ProtoTokenType.LPAREN:
            self._advance()
            prefix = "." if self._match(ProtoTokenType.DOT) else ""
            inner = self._parse_full_ident()
            self._expect(ProtoTokenType.RPAREN, "')'")
            return f"({prefix}{inner})"
        return self._expect_name("option name")

    def _parse_option_value(self) -> OptionValue:
        tok = self._peek()
        tt = tok.type

        if tt == ProtoTokenType.STRING_LIT:
            return OptionValue.string(self._parse_string())
        if tt in (ProtoTokenType.MINUS, ProtoTokenType.PLUS):
            self._advance()
            sign = -1.0 if tt == ProtoTokenType.MINUS else 1.0
            nxt = self._peek()
            if nxt.type == ProtoTokenType.NUMBER:
                self._advance()
                return OptionValue.number(sign * _to_number(nxt.value))
            if nxt.type == ProtoTokenType.IDENT and nxt.value in ("inf", "nan"):
                self._advance()
                return OptionValue.number(sign * float(nxt.value))
            raise self._unexpected(nxt, "number after sign")
        if tt == ProtoTokenType.NUMBER:
            self._advance()
            return OptionValue.number(_to_number(tok.value))
        if tt == ProtoTokenType.IDENT and tok.value in ("true", "false"):
            self._advance()
            return OptionValue.boolean(tok.value == "true")
        if tt == ProtoTokenType.LBRACE:
            return OptionValue.message(self._parse_message_literal())
        if tt == ProtoTokenType.LBRACKET:
            return self._parse_list_literal()
        if tt == ProtoTokenType.IDENT or tok.is_keyword:
            return OptionValue.identifier(self._parse_full_ident())
        raise self._unexpected(tok, "option value")

    def _parse_message_literal(self) -> Dict[str, OptionValue]:
        """Parse: LBRACE (key [COLON] value [COMMA|SEMICOLON])* RBRACE

        A key that appears more than once collects its values into a LIST.
        """
        open_tok = self._expect(ProtoTokenType.LBRACE, "'{'")
        self._enter(open_tok)
        fields: Dict[str, OptionValue] = {}
        while self._peek().type != ProtoTokenType.RBRACE:
            if self._at_end():
                raise self._unexpected(self._peek(), "'}' to close message literal")
            key = self._parse_literal_key()
            if self._match(ProtoTokenType.COLON):
                value = self._parse_option_value()
            elif self._peek().type == ProtoTokenType.LBRACE:
                value = OptionValue.message(self._parse_message_literal())
            else:
                raise self._unexpected(self._peek(), f"':' after {key!r}")
            self._add_literal_field(fields, key, value)
            if not self._match(ProtoTokenType.COMMA):
                self._match(ProtoTokenType.SEMICOLON)
        self._expect(ProtoTokenType.RBRACE, "'}'")
        self._leave()
        return fields

    def _parse_literal_key(self) -> str:
        if self._match(ProtoTokenType.LBRACKET):
            name = self._parse_full_ident()
            self._expect(ProtoTokenType.RBRACKET, "']'")
            return f"[{name}]"
        return self._expect_name("field name in message literal")

    @staticmethod
    def _add_literal_field(fields: Dict[str, OptionValue], key: str, value: OptionValue) -> None:
        existing = fields.get(key)
        if existing is None:
            fields[key] = value
        elif existing.kind == OptionValueKind.LIST:
            existing.value.append(value)
        else:
            fields[key] = OptionValue.list_of([existing, value])

    def _parse_list_literal(self) -> OptionValue:
        """Parse: LBRACKET [value (COMMA value)*] RBRACKET"""
        self._expect(ProtoTokenType.LBRACKET, "'['")
        items: List[OptionValue] = []
        if self._peek().type != ProtoTokenType.RBRACKET:
            items.append(self._parse_option_value())
            while self._match(ProtoTokenType.COMMA):
                items.append(self._parse_option_value())
        self._expect(ProtoTokenType.RBRACKET, "']'")
        return OptionValue.list_of(items)

    def _parse_field_options(self) -> List[ProtoOption]:
        """Parse: LBRACKET option_assignment (COMMA option_assignment)* RBRACKET"""
        self._expect(ProtoTokenType.LBRACKET, "'['")
        options = [self._parse_option_assignment()]
        while self._match(ProtoTokenType.COMMA):
            options.append(self._parse_option_assignment())
        self._expect(ProtoTokenType.RBRACKET, "']'")
        return options

    # -- service parsing --

    def _parse_service(self) -> Service:
        """Parse: SERVICE IDENT LBRACE (rpc | option)* RBRACE"""
        comments = self._take_comments()
        self._expect(ProtoTokenType.SERVICE, "'service'")
        name = self._expect_name("service name")
        self._expect(ProtoTokenType.LBRACE, "'{'")
        service = Service(name=name, comments=comments)
        seen: Dict[str, int] = {}

        while self._peek().type != ProtoTokenType.RBRACE:
            tok = self._peek()
            if tok.type == ProtoTokenType.RPC:
                method = self._parse_rpc()
                self._declare(seen, f"{name}.{method.name}", tok.line)
                service.methods.append(method)
            elif tok.type == ProtoTokenType.OPTION:
                service.options.append(self._parse_option_statement())
            elif tok.type == ProtoTokenType.SEMICOLON:
                self._advance()
            else:
                raise self._unexpected(tok, "'rpc', 'option' or '}'")

        self._close_block()
        service.comments.extend(self._trailing_comments())
        return service

    def _parse_rpc(self) -> RpcMethod:
        """Parse: RPC IDENT LPAREN [STREAM] type RPAREN RETURNS LPAREN [STREAM] type RPAREN body"""
        comments = self._take_comments()
        self._expect(ProtoTokenType.RPC, "'rpc'")
        name = self._expect_name("method name")
        input_type = self._parse_rpc_type()
        self._expect(ProtoTokenType.RETURNS, "'returns'")
        output_type = self._parse_rpc_type()

        method_options: List[ProtoOption] = []
        if self._match(ProtoTokenType.LBRACE):
            while self._peek().type != ProtoTokenType.RBRACE:
                tok = self._peek()
                if tok.type == ProtoTokenType.OPTION:
                    method_options.append(self._parse_option_statement())
                elif tok.type == ProtoTokenType.SEMICOLON:
                    self._advance()
                else:
                    raise self._unexpected(tok, "'option' or '}'")
            self._close_block()
            self._match(ProtoTokenType.SEMICOLON)
        else:
            self._expect(ProtoTokenType.SEMICOLON, "'{' or ';'")

        # Intercept google.api.http into the method's http_annotation.
        http_annotation: Optional[HttpAnnotation] = None
        options: List[ProtoOption] = []
        for option in method_options:
            if http_annotation is None and is_http_option(option):
                try:
                    http_annotation = decode_http_rule(option.value)
                    continue
                except ValidationError as e:
                    # Left in the options so the extractor reports it.
                    logger.debug("Deferring invalid HTTP rule on %s: %s", name, e)
            options.append(option)

        return RpcMethod(
            name=name,
            input_type=input_type,
            output_type=output_type,
            options=options,
            comments=comments + self._trailing_comments(),
            http_annotation=http_annotation,
        )

    def _parse_rpc_type(self) -> TypeReference:
        self._expect(ProtoTokenType.LPAREN, "'('")
        is_stream = False
        if self._peek().type == ProtoTokenType.STREAM and self._peek_next().type != ProtoTokenType.RPAREN:
            self._advance()
            is_stream = True
        type_name = self._parse_type_name()
        self._expect(ProtoTokenType.RPAREN, "')'")
        return TypeReference.parse(type_name, is_stream=is_stream)

    # -- message parsing --

    def _parse_message(self) -> Message:
        """Parse: MESSAGE IDENT LBRACE body RBRACE"""
        comments = self._take_comments()
        self._expect(ProtoTokenType.MESSAGE, "'message'")
        name_tok = self._peek()
        name = self._expect_name("message name")
        self._enter(name_tok)
        self._expect(ProtoTokenType.LBRACE, "'{'")
        message = Message(name=name, comments=comments)
        self._parse_message_body(message)
        self._close_block()
        self._leave()
        message.comments.extend(self._trailing_comments())
        return message

    def _parse_message_body(self, message: Message) -> None:
        """Parse the contents between { and } of a message."""
        names: Dict[str, int] = {}
        numbers: Dict[int, int] = {}

        while self._peek().type != ProtoTokenType.RBRACE:
            tok = self._peek()
            tt = tok.type

            if tt == ProtoTokenType.MESSAGE:
                nested = self._parse_message()
                self._declare(names, nested.name, tok.line)
                message.nested_messages.append(nested)
            elif tt == ProtoTokenType.ENUM:
                nested_enum = self._parse_enum()
                self._declare(names, nested_enum.name, tok.line)
                message.nested_enums.append(nested_enum)
            elif tt == ProtoTokenType.OPTION:
                message.options.append(self._parse_option_statement())
            elif tt == ProtoTokenType.ONEOF:
                oneof = self._parse_oneof()
                self._declare(names, oneof.name, tok.line)
                for f in oneof.fields:
                    self._declare_field(message, names, numbers, f, tok)
                message.oneofs.append(oneof)
                message.fields.extend(oneof.fields)
            elif tt == ProtoTokenType.RESERVED:
                ranges, reserved_names = self._parse_reserved(MAX_FIELD_NUMBER)
                message.reserved_ranges.extend(ranges)
                message.reserved_names.extend(reserved_names)
            elif tt in (ProtoTokenType.EXTENSIONS, ProtoTokenType.EXTEND):
                raise UnsupportedFeatureError(f"'{tok.value}' in message {message.name}", tok.line)
            elif tt == ProtoTokenType.SEMICOLON:
                self._advance()
            elif tt == ProtoTokenType.EOF:
                raise self._unexpected(tok, f"'}}' to close message {message.name}")
            else:
                f = self._parse_field()
                self._declare_field(message, names, numbers, f, tok)
                message.fields.append(f)

        if self._strict:
            self._check_reserved(message, names)

    def _parse_field(self, allow_label: bool = True) -> Field:
        """Parse: [label] type IDENT EQUALS NUMBER [field_options] SEMICOLON"""
        comments = self._take_comments()
        label = FieldLabel.OPTIONAL
        tok = self._peek()
        if tok.type in _LABELS:
            if not allow_label:
                raise self._unexpected(tok, "field type (labels are not allowed in oneof)")
            self._advance()
            label = _LABELS[tok.type]
            tok = self._peek()

        if tok.type == ProtoTokenType.GROUP:
            raise UnsupportedFeatureError("group fields", tok.line)
        if tok.type == ProtoTokenType.MAP and self._peek_next().type == ProtoTokenType.LANGLE:
            if label != FieldLabel.OPTIONAL:
                raise self._unexpected(tok, "map field without a label")
            field_type: FieldType = self._parse_map_type()
        else:
            field_type = self._parse_field_type()

        name = self._expect_name("field name")
        self._expect(ProtoTokenType.EQUALS, "'='")
        number = self._parse_field_number()
        options: List[ProtoOption] = []
        if self._peek().type == ProtoTokenType.LBRACKET:
            options = self._parse_field_options()
        self._expect(ProtoTokenType.SEMICOLON, "';'")

        return Field(
            name=name,
            field_type=field_type,
            number=number,
            label=label,
            options=options,
            comments=comments + self._trailing_comments(),
        )

    def _parse_field_type(self) -> FieldType:
        type_name = self._parse_type_name()
        if type_name in PROTO_PRIMITIVES:
            return ScalarType(type_name)
        return TypeReference.parse(type_name)

    def _parse_map_type(self) -> MapType:
        """Parse: MAP LANGLE key_type COMMA type RANGLE"""
        self._expect(ProtoTokenType.MAP, "'map'")
        self._expect(ProtoTokenType.LANGLE, "'<'")
        key_tok = self._peek()
        key_type = self._parse_field_type()
        if not isinstance(key_type, ScalarType) or key_type in (
            ScalarType.DOUBLE, ScalarType.FLOAT, ScalarType.BYTES,
        ):
            raise ProtoSyntaxError(key_tok.line, key_tok.col, f"Invalid map key type {key_tok.value!r}")
        self._expect(ProtoTokenType.COMMA, "','")
        value_type = self._parse_field_type()
        if isinstance(value_type, MapType):
            raise ProtoSyntaxError(key_tok.line, key_tok.col, "Map values cannot be maps")
        self._expect(ProtoTokenType.RANGLE, "'>'")
        return MapType(key_type=key_type, value_type=value_type)

    def _parse_field_number(self) -> int:
        tok = self._expect(ProtoTokenType.NUMBER, "field number")
        try:
            number = _to_int(tok.value)
        except ValueError:
            raise self._unexpected(tok, "integer field number") from None
        if self._strict and not 1 <= number <= MAX_FIELD_NUMBER:
            raise ProtoSyntaxError(tok.line, tok.col, f"Field number {number} is out of range")
        return number

    def _parse_oneof(self) -> Oneof:
        """Parse: ONEOF IDENT LBRACE (field | option)* RBRACE"""
        comments = self._take_comments()
        self._expect(ProtoTokenType.ONEOF, "'oneof'")
        name = self._expect_name("oneof name")
        self._expect(ProtoTokenType.LBRACE, "'{'")
        oneof = Oneof(name=name, comments=comments)

        while self._peek().type != ProtoTokenType.RBRACE:
            tok = self._peek()
            if tok.type == ProtoTokenType.OPTION:
                oneof.options.append(self._parse_option_statement())
            elif tok.type == ProtoTokenType.SEMICOLON:
                self._advance()
            elif tok.type == ProtoTokenType.EOF:
                raise self._unexpected(tok, f"'}}' to close oneof {name}")
            else:
                f = self._parse_field(allow_label=False)
                f.oneof = name
                oneof.fields.append(f)

        self._close_block()
        oneof.comments.extend(self._trailing_comments())
        return oneof

    def _parse_reserved(self, max_value: int) -> Tuple[List[range], List[str]]:
        """Parse: RESERVED (ranges | field names) SEMICOLON"""
        self._expect(ProtoTokenType.RESERVED, "'reserved'")
        ranges: List[range] = []
        names: List[str] = []
        if self._peek().type == ProtoTokenType.STRING_LIT:
            names.append(self._parse_string())
            while self._match(ProtoTokenType.COMMA):
                names.append(self._parse_string())
        else:
            ranges.append(self._parse_range(max_value))
            while self._match(ProtoTokenType.COMMA):
                ranges.append(self._parse_range(max_value))
        self._expect(ProtoTokenType.SEMICOLON, "';'")
        self._trailing_comments()
        return ranges, names

    def _parse_range(self, max_value: int) -> range:
        start_tok = self._peek()
        start = self._parse_signed_int()
        end = start
        tok = self._peek()
        if tok.type == ProtoTokenType.IDENT and tok.value == "to":
            self._advance()
            tok = self._peek()
            if tok.type == ProtoTokenType.IDENT and tok.value == "max":
                self._advance()
                end = max_value
            else:
                end = self._parse_signed_int()
        if end < start:
            raise ProtoSyntaxError(start_tok.line, start_tok.col, f"Invalid reserved range {start} to {end}")
        return range(start, end + 1)

    # -- enum parsing --

    def _parse_enum(self) -> ProtoEnum:
        """Parse: ENUM IDENT LBRACE (value | option | reserved)* RBRACE"""
        comments = self._take_comments()
        self._expect(ProtoTokenType.ENUM, "'enum'")
        name = self._expect_name("enum name")
        self._expect(ProtoTokenType.LBRACE, "'{'")
        enum = ProtoEnum(name=name, comments=comments)
        seen: Dict[str, int] = {}

        while self._peek().type != ProtoTokenType.RBRACE:
            tok = self._peek()
            if tok.type == ProtoTokenType.OPTION:
                enum.options.append(self._parse_option_statement())
            elif tok.type == ProtoTokenType.RESERVED:
                ranges, names = self._parse_reserved(MAX_ENUM_NUMBER)
                enum.reserved_ranges.extend(ranges)
                enum.reserved_names.extend(names)
            elif tok.type == ProtoTokenType.SEMICOLON:
                self._advance()
            elif tok.type == ProtoTokenType.EOF:
                raise self._unexpected(tok, f"'}}' to close enum {name}")
            else:
                value = self._parse_enum_value()
                self._declare(seen, f"{name}.{value.name}", tok.line)
                enum.values.append(value)

        self._close_block()
        enum.comments.extend(self._trailing_comments())
        return enum

    def _parse_enum_value(self) -> EnumValue:
        """Parse: IDENT EQUALS [MINUS] NUMBER [field_options] SEMICOLON"""
        comments = self._take_comments()
        name = self._expect_name("enum value name")
        self._expect(ProtoTokenType.EQUALS, "'='")
        number = self._parse_signed_int()
        options: List[ProtoOption] = []
        if self._peek().type == ProtoTokenType.LBRACKET:
            options = self._parse_field_options()
        self._expect(ProtoTokenType.SEMICOLON, "';'")
        return EnumValue(
            name=name,
            number=number,
            options=options,
            comments=comments + self._trailing_comments(),
        )

    # -- lexical primitives --

    def _parse_full_ident(self) -> str:
        """Parse: IDENT (DOT IDENT)*"""
        parts = [self._expect_name("identifier")]
        while self._peek().type == ProtoTokenType.DOT:
            self._advance()
            parts.append(self._expect_name("identifier after '.'"))
        return ".".join(parts)

    def _parse_type_name(self) -> str:
        """Parse: [DOT] full_ident"""
        prefix = "." if self._match(ProtoTokenType.DOT) else ""
        return prefix + self._parse_full_ident()

    def _parse_string(self) -> str:
        """Parse one or more adjacent string literals."""
        parts = [self._expect(ProtoTokenType.STRING_LIT, "string literal").value]
        while self._peek().type == ProtoTokenType.STRING_LIT:
            parts.append(self._advance().value)
        return "".join(parts)

    def _parse_signed_int(self) -> int:
        negative = self._match(ProtoTokenType.MINUS)
        tok = self._expect(ProtoTokenType.NUMBER, "integer")
        try:
            value = _to_int(tok.value)
        except ValueError:
            raise self._unexpected(tok, "integer") from None
        return -value if negative else value

    # -- validation helpers --

    def _declare(self, seen: Dict[str, int], name: str, line: int) -> None:
        if self._strict and name in seen:
            raise DuplicateDefinitionError(name, line)
        seen[name] = line

    def _declare_field(
        self,
        message: Message,
        names: Dict[str, int],
        numbers: Dict[int, int],
        f: Field,
        tok: ProtoToken,
    ) -> None:
        self._declare(names, f.name, tok.line)
        if self._strict and f.number in numbers:
            raise DuplicateDefinitionError(
                f"field number {f.number} in message {message.name}", tok.line
            )
        numbers[f.number] = tok.line

    @staticmethod
    def _check_reserved(message: Message, names: Dict[str, int]) -> None:
        for f in message.fields:
            if f.name in message.reserved_names:
                raise ProtoSyntaxError(
                    names.get(f.name, 0), 0,
                    f"Field name {f.name!r} is reserved in message {message.name}",
                )
            if any(f.number in r for r in message.reserved_ranges):
                raise ProtoSyntaxError(
                    names.get(f.name, 0), 0,
                    f"Field number {f.number} is reserved in message {message.name}",
                )

    # -- comment helpers --

    def _take_comments(self) -> List[Comment]:
        """Consume comments pending before the next declaration."""
        decl = self._peek()
        pending, self._pending = self._pending, []
        if not self._preserve_comments:
            return []
        comments: List[Comment] = []
        for tok in pending:
            if not tok.value:
                continue
            kind = CommentType.DETACHED if decl.line - tok.end_line > 1 else CommentType.LEADING
            comments.append(Comment(text=tok.value, comment_type=kind))
        return comments

    def _trailing_comments(self) -> List[Comment]:
        """Take a comment on the same line as the declaration's last token."""
        # Comments inside a declaration are not attached anywhere. Comments
        # already queued past its last token stay pending for the next one.
        pending, self._pending = self._pending, []
        last = self._last
        if last is None:
            return []
        found: Optional[ProtoToken] = None
        for tok in pending:
            if (tok.line, tok.col) < (last.line, last.col):
                continue
            if found is None and tok.line == last.end_line:
                found = tok
            else:
                self._pending.append(tok)
        if found is None and not self._pending:
            tok = self._tokens[self._pos]
            if tok.type == ProtoTokenType.COMMENT and tok.line == self._last.end_line:
                self._pos += 1
                found = tok
        if found is not None and self._preserve_comments and found.value:
            return [Comment(text=found.value, comment_type=CommentType.TRAILING)]
        return []

    # -- token helpers --

    def _peek(self) -> ProtoToken:
        while self._tokens[self._pos].type == ProtoTokenType.COMMENT:
            self._pending.append(self._tokens[self._pos])
            self._pos += 1
        return self._tokens[self._pos]

    def _peek_next(self) -> ProtoToken:
        """Return the token after the next one, skipping comments."""
        self._peek()
        pos = self._pos + 1
        while pos < len(self._tokens) and self._tokens[pos].type == ProtoTokenType.COMMENT:
            pos += 1
        return self._tokens[min(pos, len(self._tokens) - 1)]

    def _advance(self) -> ProtoToken:
        tok = self._peek()
        if tok.type != ProtoTokenType.EOF:
            self._pos += 1
        self._last = tok
        return tok

    def _match(self, expected: ProtoTokenType) -> bool:
        if self._peek().type == expected:
            self._advance()
            return True
        return False

    def _expect(self, expected: ProtoTokenType, description: str) -> ProtoToken:
        tok = self._peek()
        if tok.type != expected:
            raise self._unexpected(tok, description)
        return self._advance()

    def _expect_name(self, description: str) -> str:
        """Accept an identifier; keywords are valid names in proto."""
        tok = self._peek()
        if tok.type != ProtoTokenType.IDENT and not tok.is_keyword:
            raise self._unexpected(tok, description)
        return self._advance().value

    def _close_block(self) -> None:
        self._expect(ProtoTokenType.RBRACE, "'}'")

    def _enter(self, tok: ProtoToken) -> None:
        self._depth += 1
        if self._depth > MAX_NESTING_DEPTH:
            raise ProtoSyntaxError(tok.line, tok.col, f"Nesting deeper than {MAX_NESTING_DEPTH} levels")

    def _leave(self) -> None:
        self._depth -= 1

    def _at_end(self) -> bool:
        return self._peek().type == ProtoTokenType.EOF

    @staticmethod
    def _unexpected(tok: ProtoToken, expected: str) -> UnexpectedTokenError:
        shown = tok.value if tok.type != ProtoTokenType.EOF else "<end of file>"
        return UnexpectedTokenError(shown, tok.line, expected, column=tok.col)
