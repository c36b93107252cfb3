"""Decoding of ``google.api.http`` option values into HttpAnnotation objects.

The option arrives as a message literal, for example::

    option (google.api.http) = {
      post: "/v1/books"
      body: "book"
      additional_bindings { post: "/v1/shelves/{shelf}/books" body: "*" }
    };

Exactly one verb key (``get``, ``post``, ``put``, ``patch``, ``delete``) or a
``custom { kind: "...", path: "..." }`` block supplies the method and path.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from protoc_rest.errors import InvalidHttpAnnotationError
from protoc_rest.models import (
    STANDARD_HTTP_METHODS,
    HttpAnnotation,
    HttpBinding,
    HttpMethod,
    OptionValue,
    OptionValueKind,
    ProtoOption,
)

HTTP_OPTION_NAMES = ("google.api.http", "(google.api.http)")


def is_http_option(option: ProtoOption) -> bool:
    return option.name in HTTP_OPTION_NAMES


def decode_http_rule(value: OptionValue) -> HttpAnnotation:
    """Decode a google.api.http message literal.

    Raises InvalidHttpAnnotationError when the literal has no verb, more than
    one verb, a non-string path or a malformed additional binding.
    """
    fields = _expect_message(value, "google.api.http")
    method, path = _decode_pattern(fields)
    body = _optional_string(fields, "body")
    response_body = _optional_string(fields, "response_body")

    bindings: List[HttpBinding] = []
    raw_bindings = fields.get("additional_bindings")
    if raw_bindings is not None:
        items = raw_bindings.value if raw_bindings.kind == OptionValueKind.LIST else [raw_bindings]
        for item in items:
            bindings.append(_decode_binding(item))

    return HttpAnnotation(
        method=method,
        path=path,
        body=body,
        response_body=response_body,
        additional_bindings=bindings,
    )


def _decode_binding(value: OptionValue) -> HttpBinding:
    fields = _expect_message(value, "additional_bindings")
    if "additional_bindings" in fields:
        raise InvalidHttpAnnotationError(
            "additional_bindings cannot be nested inside another binding"
        )
    method, path = _decode_pattern(fields)
    return HttpBinding(method=method, path=path, body=_optional_string(fields, "body"))


def _decode_pattern(fields: Dict[str, OptionValue]) -> Tuple[HttpMethod, str]:
    found: List[Tuple[HttpMethod, str]] = []

    for key, method in STANDARD_HTTP_METHODS.items():
        if key not in fields:
            continue
        raw = fields[key]
        if raw.kind != OptionValueKind.STRING:
            raise InvalidHttpAnnotationError(f"'{key}' must be a string path template")
        found.append((method, raw.value))

    if "custom" in fields:
        custom = _expect_message(fields["custom"], "custom")
        kind = _optional_string(custom, "kind")
        path = _optional_string(custom, "path")
        if not kind or path is None:
            raise InvalidHttpAnnotationError("custom pattern requires both 'kind' and 'path'")
        found.append((HttpMethod.custom(kind), path))

    if not found:
        raise InvalidHttpAnnotationError("Missing HTTP method or path")
    if len(found) > 1:
        verbs = ", ".join(m.as_str() for m, _ in found)
        raise InvalidHttpAnnotationError(f"Multiple HTTP methods in one rule: {verbs}")
    return found[0]


def _expect_message(value: OptionValue, context: str) -> Dict[str, OptionValue]:
    if value.kind != OptionValueKind.MESSAGE:
        raise InvalidHttpAnnotationError(
            f"Invalid HTTP annotation format: {context} must be a message literal"
        )
    return value.value


def _optional_string(fields: Dict[str, OptionValue], key: str) -> Optional[str]:
    raw = fields.get(key)
    if raw is None:
        return None
    if raw.kind != OptionValueKind.STRING:
        raise InvalidHttpAnnotationError(f"'{key}' must be a string")
    return raw.value
