from __future__ import annotations

from typing import Any, Sequence

"""Field path -> nested request body.

HiBob addresses fields with dotted paths such as ``root.work.title``. An update
body nests one object per segment: ``{"work": {"title": value}}``.

Custom fields are the exception. For ``root.userData.custom.category_1.field_2``
the platform expects the category and field collapsed into one compound key:
``{"userData": {"custom": {"category_1.field_2": value}}}``. Deep nesting there
would silently update the wrong field.
"""

__all__ = [
    "ROOT_PREFIX",
    "DEFAULT_CUSTOM_PREFIX",
    "split_path",
    "build_request_body",
    "extract_value",
]

ROOT_PREFIX = "root"
DEFAULT_CUSTOM_PREFIX: tuple[str, str] = ("userData", "custom")


def split_path(path: str) -> list[str]:
    """Strip the ``root.`` prefix and split on dots, dropping empty segments."""
    segments = [s for s in path.strip().split(".") if s]
    if segments and segments[0] == ROOT_PREFIX:
        segments = segments[1:]
    return segments


def _is_custom(segments: Sequence[str], custom_prefix: Sequence[str]) -> bool:
    return len(segments) > 2 and tuple(segments[:2]) == tuple(custom_prefix)


def build_request_body(
    path: str,
    value: Any,
    custom_prefix: Sequence[str] = DEFAULT_CUSTOM_PREFIX,
) -> dict[str, Any]:
    """An empty path yields an empty body."""
    segments = split_path(path)
    if not segments:
        return {}

    if _is_custom(segments, custom_prefix):
        envelope, bucket = segments[0], segments[1]
        compound_key = ".".join(segments[2:])
        return {envelope: {bucket: {compound_key: value}}}

    body: Any = value
    for segment in reversed(segments):
        body = {segment: body}
    return body


def extract_value(
    payload: dict[str, Any],
    path: str,
    custom_prefix: Sequence[str] = DEFAULT_CUSTOM_PREFIX,
) -> Any:
    """Read a field back out of a person payload. Returns None when absent.

    Read responses may key fields by the full path, by the compound custom key
    or by nested objects; all three shapes are tried in that order.
    """
    if path in payload:
        return payload[path]
    segments = split_path(path)
    if not segments:
        return None

    if _is_custom(segments, custom_prefix):
        bucket = payload.get(segments[0], {})
        bucket = bucket.get(segments[1], {}) if isinstance(bucket, dict) else {}
        compound_key = ".".join(segments[2:])
        if isinstance(bucket, dict) and compound_key in bucket:
            return bucket[compound_key]

    node: Any = payload
    for segment in segments:
        if not isinstance(node, dict) or segment not in node:
            return None
        node = node[segment]
    if isinstance(node, dict) and "value" in node:
        return node["value"]
    return node
