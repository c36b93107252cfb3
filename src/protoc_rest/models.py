"""Data model shared by the parser, the route extractor and the generator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import ClassVar, Dict, List, Optional, Union

# Proto scalar types -- any field type not in this set is a message or enum reference.
PROTO_PRIMITIVES = {
    "double", "float",
    "int32", "int64", "uint32", "uint64",
    "sint32", "sint64", "fixed32", "fixed64", "sfixed32", "sfixed64",
    "bool", "string", "bytes",
}

WELL_KNOWN_TYPES = {
    "google.protobuf.Timestamp",
    "google.protobuf.Duration",
    "google.protobuf.Empty",
    "google.protobuf.Any",
    "google.protobuf.Struct",
    "google.protobuf.Value",
    "google.protobuf.ListValue",
    "google.protobuf.NullValue",
}


class ProtocolVersion(Enum):
    PROTO2 = "proto2"
    PROTO3 = "proto3"


class ImportType(Enum):
    NORMAL = auto()
    PUBLIC = auto()
    WEAK = auto()


class CommentType(Enum):
    LEADING = auto()
    TRAILING = auto()
    DETACHED = auto()


class FieldLabel(Enum):
    OPTIONAL = auto()
    REQUIRED = auto()
    REPEATED = auto()


class ScalarType(Enum):
    DOUBLE = "double"
    FLOAT = "float"
    INT32 = "int32"
    INT64 = "int64"
    UINT32 = "uint32"
    UINT64 = "uint64"
    SINT32 = "sint32"
    SINT64 = "sint64"
    FIXED32 = "fixed32"
    FIXED64 = "fixed64"
    SFIXED32 = "sfixed32"
    SFIXED64 = "sfixed64"
    BOOL = "bool"
    STRING = "string"
    BYTES = "bytes"


@dataclass
class Comment:
    text: str
    comment_type: CommentType = CommentType.LEADING


# -- options --


class OptionValueKind(Enum):
    STRING = auto()
    NUMBER = auto()
    BOOLEAN = auto()
    IDENTIFIER = auto()
    MESSAGE = auto()
    LIST = auto()


@dataclass
class OptionValue:
    """A tagged option value.

    ``value`` holds a str for STRING and IDENTIFIER, a float for NUMBER, a bool
    for BOOLEAN, a dict of name -> OptionValue for MESSAGE and a list of
    OptionValue for LIST.
    """

    kind: OptionValueKind
    value: object

    @classmethod
    def string(cls, value: str) -> OptionValue:
        return cls(OptionValueKind.STRING, value)

    @classmethod
    def number(cls, value: float) -> OptionValue:
        return cls(OptionValueKind.NUMBER, float(value))

    @classmethod
    def boolean(cls, value: bool) -> OptionValue:
        return cls(OptionValueKind.BOOLEAN, value)

    @classmethod
    def identifier(cls, value: str) -> OptionValue:
        return cls(OptionValueKind.IDENTIFIER, value)

    @classmethod
    def message(cls, fields: Dict[str, OptionValue]) -> OptionValue:
        return cls(OptionValueKind.MESSAGE, dict(fields))

    @classmethod
    def list_of(cls, items: List[OptionValue]) -> OptionValue:
        return cls(OptionValueKind.LIST, list(items))

    @property
    def is_message(self) -> bool:
        return self.kind == OptionValueKind.MESSAGE

    def to_python(self) -> object:
        """Convert to plain Python values (dicts, lists and scalars)."""
        if self.kind == OptionValueKind.MESSAGE:
            return {k: v.to_python() for k, v in self.value.items()}
        if self.kind == OptionValueKind.LIST:
            return [v.to_python() for v in self.value]
        return self.value


@dataclass
class ProtoOption:
    name: str
    value: OptionValue

    @property
    def is_custom(self) -> bool:
        return self.name.startswith("(")

    @property
    def bare_name(self) -> str:
        """Option name without the parentheses of a custom option."""
        return self.name.replace("(", "").replace(")", "")


# -- types --


@dataclass
class TypeReference:
    name: str
    package: Optional[str] = None
    is_stream: bool = False

    @classmethod
    def parse(cls, type_name: str, is_stream: bool = False) -> TypeReference:
        """Split a possibly dotted type name into package and type parts.

        The first segment starting with an uppercase letter begins the type
        chain (``google.protobuf.Timestamp``, ``pkg.Outer.Inner``). Without
        any uppercase segment the last segment is taken as the type.
        """
        type_name = type_name.lstrip(".")
        if "." not in type_name:
            return cls(name=type_name, is_stream=is_stream)
        parts = type_name.split(".")
        type_start = None
        for idx, seg in enumerate(parts):
            if seg and seg[0].isupper():
                type_start = idx
                break
        if type_start is None:
            type_start = len(parts) - 1
        if type_start == 0:
            return cls(name=type_name, is_stream=is_stream)
        return cls(
            name=".".join(parts[type_start:]),
            package=".".join(parts[:type_start]),
            is_stream=is_stream,
        )

    def fully_qualified_name(self) -> str:
        if self.package:
            return f"{self.package}.{self.name}"
        return self.name

    def is_scalar(self) -> bool:
        return self.name in PROTO_PRIMITIVES

    def is_well_known_type(self) -> bool:
        return self.fully_qualified_name() in WELL_KNOWN_TYPES

    @property
    def simple_name(self) -> str:
        return self.name.rsplit(".", 1)[-1]


@dataclass
class MapType:
    key_type: ScalarType
    value_type: Union[ScalarType, TypeReference]

    def __str__(self) -> str:
        return f"map<{_type_str(self.key_type)}, {_type_str(self.value_type)}>"


FieldType = Union[ScalarType, TypeReference, MapType]


def _type_str(field_type: FieldType) -> str:
    if isinstance(field_type, ScalarType):
        return field_type.value
    if isinstance(field_type, TypeReference):
        return field_type.fully_qualified_name()
    return str(field_type)


# -- definitions --


@dataclass
class Field:
    name: str
    field_type: FieldType
    number: int
    label: FieldLabel = FieldLabel.OPTIONAL
    options: List[ProtoOption] = field(default_factory=list)
    comments: List[Comment] = field(default_factory=list)
    oneof: Optional[str] = None

    @property
    def type_name(self) -> str:
        return _type_str(self.field_type)

    @property
    def is_repeated(self) -> bool:
        return self.label == FieldLabel.REPEATED

    @property
    def is_scalar(self) -> bool:
        return isinstance(self.field_type, ScalarType)

    @property
    def is_map(self) -> bool:
        return isinstance(self.field_type, MapType)


@dataclass
class Oneof:
    name: str
    fields: List[Field] = field(default_factory=list)
    options: List[ProtoOption] = field(default_factory=list)
    comments: List[Comment] = field(default_factory=list)


@dataclass
class EnumValue:
    name: str
    number: int
    options: List[ProtoOption] = field(default_factory=list)
    comments: List[Comment] = field(default_factory=list)


@dataclass
class ProtoEnum:
    name: str
    values: List[EnumValue] = field(default_factory=list)
    options: List[ProtoOption] = field(default_factory=list)
    comments: List[Comment] = field(default_factory=list)
    reserved_ranges: List[range] = field(default_factory=list)
    reserved_names: List[str] = field(default_factory=list)


@dataclass
class Message:
    """A message definition, possibly containing nested messages and enums.

    ``fields`` lists every field in declaration order, including the members
    of oneofs (which are also grouped under ``oneofs``).
    """

    name: str
    fields: List[Field] = field(default_factory=list)
    nested_messages: List[Message] = field(default_factory=list)
    nested_enums: List[ProtoEnum] = field(default_factory=list)
    options: List[ProtoOption] = field(default_factory=list)
    comments: List[Comment] = field(default_factory=list)
    oneofs: List[Oneof] = field(default_factory=list)
    reserved_ranges: List[range] = field(default_factory=list)
    reserved_names: List[str] = field(default_factory=list)

    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]


# -- HTTP annotations and routes --


@dataclass(frozen=True)
class HttpMethod:
    verb: str
    is_custom: bool = False

    GET: ClassVar[HttpMethod]
    POST: ClassVar[HttpMethod]
    PUT: ClassVar[HttpMethod]
    PATCH: ClassVar[HttpMethod]
    DELETE: ClassVar[HttpMethod]

    @classmethod
    def custom(cls, verb: str) -> HttpMethod:
        return cls(verb.upper(), is_custom=True)

    def as_str(self) -> str:
        return self.verb

    @property
    def allows_body(self) -> bool:
        return self.verb in ("POST", "PUT", "PATCH")

    def __str__(self) -> str:
        return self.verb


HttpMethod.GET = HttpMethod("GET")
HttpMethod.POST = HttpMethod("POST")
HttpMethod.PUT = HttpMethod("PUT")
HttpMethod.PATCH = HttpMethod("PATCH")
HttpMethod.DELETE = HttpMethod("DELETE")

STANDARD_HTTP_METHODS: Dict[str, HttpMethod] = {
    "get": HttpMethod.GET,
    "post": HttpMethod.POST,
    "put": HttpMethod.PUT,
    "patch": HttpMethod.PATCH,
    "delete": HttpMethod.DELETE,
}


@dataclass
class HttpBinding:
    method: HttpMethod
    path: str
    body: Optional[str] = None


@dataclass
class HttpAnnotation:
    method: HttpMethod
    path: str
    body: Optional[str] = None
    response_body: Optional[str] = None
    additional_bindings: List[HttpBinding] = field(default_factory=list)


@dataclass(frozen=True)
class ParameterType:
    name: str
    is_custom: bool = False

    STRING: ClassVar[ParameterType]
    INTEGER: ClassVar[ParameterType]
    FLOAT: ClassVar[ParameterType]
    BOOLEAN: ClassVar[ParameterType]

    @classmethod
    def custom(cls, name: str) -> ParameterType:
        return cls(name, is_custom=True)

    def __str__(self) -> str:
        return self.name


ParameterType.STRING = ParameterType("string")
ParameterType.INTEGER = ParameterType("integer")
ParameterType.FLOAT = ParameterType("float")
ParameterType.BOOLEAN = ParameterType("boolean")


@dataclass
class PathParameter:
    name: str
    param_type: ParameterType = ParameterType.STRING
    # Path parameters are always required.
    required: bool = True


@dataclass
class QueryParameter:
    name: str
    param_type: ParameterType = ParameterType.STRING
    required: bool = False


@dataclass
class RequestBody:
    field: Optional[str] = None
    content_type: str = "application/json"
    is_entire_message: bool = True

    @classmethod
    def entire_message(cls) -> RequestBody:
        return cls(field=None, is_entire_message=True)

    @classmethod
    def for_field(cls, field_name: str) -> RequestBody:
        return cls(field=field_name, is_entire_message=False)


@dataclass
class HttpRoute:
    service_name: str
    method_name: str
    http_method: HttpMethod
    path_template: str
    path_parameters: List[PathParameter] = field(default_factory=list)
    query_parameters: List[QueryParameter] = field(default_factory=list)
    request_body: Optional[RequestBody] = None
    input_type: TypeReference = field(default_factory=lambda: TypeReference("Empty"))
    response_type: TypeReference = field(default_factory=lambda: TypeReference("Empty"))

    def operation_id(self) -> str:
        return f"{self.service_name}_{self.method_name}"

    def signature(self) -> str:
        return f"{self.http_method.as_str()} {self.path_template}"

    def has_path_parameters(self) -> bool:
        return bool(self.path_parameters)

    def has_query_parameters(self) -> bool:
        return bool(self.query_parameters)

    def has_request_body(self) -> bool:
        return self.request_body is not None


# -- services and files --


@dataclass
class RpcMethod:
    name: str
    input_type: TypeReference
    output_type: TypeReference
    options: List[ProtoOption] = field(default_factory=list)
    comments: List[Comment] = field(default_factory=list)
    http_annotation: Optional[HttpAnnotation] = None

    @property
    def is_http_enabled(self) -> bool:
        return self.http_annotation is not None


@dataclass
class Service:
    name: str
    methods: List[RpcMethod] = field(default_factory=list)
    options: List[ProtoOption] = field(default_factory=list)
    comments: List[Comment] = field(default_factory=list)

    def http_methods(self) -> List[RpcMethod]:
        return [m for m in self.methods if m.is_http_enabled]


@dataclass
class Import:
    path: str
    import_type: ImportType = ImportType.NORMAL


@dataclass
class TypeDefinition:
    name: str
    fully_qualified_name: str
    kind: str  # "message" or "enum"
    package: Optional[str] = None


@dataclass
class ProtoFile:
    """Top-level parsed representation of a .proto file."""

    syntax: ProtocolVersion = ProtocolVersion.PROTO3
    package: Optional[str] = None
    imports: List[Import] = field(default_factory=list)
    options: List[ProtoOption] = field(default_factory=list)
    services: List[Service] = field(default_factory=list)
    messages: List[Message] = field(default_factory=list)
    enums: List[ProtoEnum] = field(default_factory=list)

    def get_dependencies(self) -> List[str]:
        return [imp.path for imp in self.imports]

    def qualify(self, type_name: str) -> str:
        return f"{self.package}.{type_name}" if self.package else type_name

    def get_all_types(self) -> List[TypeDefinition]:
        """All message and enum definitions, nested ones included."""
        types: List[TypeDefinition] = []

        def visit(msg: Message, prefix: str) -> None:
            types.append(TypeDefinition(msg.name, prefix, "message", self.package))
            for nested in msg.nested_messages:
                visit(nested, f"{prefix}.{nested.name}")
            for nested_enum in msg.nested_enums:
                types.append(TypeDefinition(
                    nested_enum.name, f"{prefix}.{nested_enum.name}", "enum", self.package,
                ))

        for msg in self.messages:
            visit(msg, self.qualify(msg.name))
        for enum in self.enums:
            types.append(TypeDefinition(enum.name, self.qualify(enum.name), "enum", self.package))
        return types

    def find_message(self, type_name: str) -> Optional[Message]:
        """Look up a message by simple, nested (Outer.Inner) or qualified name."""
        name = type_name.lstrip(".")
        if self.package and name.startswith(self.package + "."):
            name = name[len(self.package) + 1:]
        parts = name.split(".")
        candidates = self.messages
        found: Optional[Message] = None
        for part in parts:
            found = next((m for m in candidates if m.name == part), None)
            if found is None:
                return None
            candidates = found.nested_messages
        return found
