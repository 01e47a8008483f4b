from __future__ import annotations

import re
from typing import Protocol, Sequence

from hrsync.models.reference import FieldDescriptor

from .path_resolver import split_path

"""Which named list backs a list-typed field?

Field metadata does not always carry the list name, and list names do not
always follow one convention. The strategies below are tried in order; the
first one that names an existing list wins. List name comes first, field id
second.
"""

__all__ = [
    "Resolver",
    "DeclaredListNameResolver",
    "FieldIdResolver",
    "CategoryPrefixResolver",
    "PatternResolver",
    "ResolverChain",
    "default_chain",
]


class Resolver(Protocol):
    def resolve(self, field: FieldDescriptor) -> str | None: ...


class DeclaredListNameResolver:
    """The list name recorded in the field metadata."""

    def __init__(self, list_names: Sequence[str]) -> None:
        self._names = set(list_names)

    def resolve(self, field: FieldDescriptor) -> str | None:
        if field.list_name and field.list_name in self._names:
            return field.list_name
        return None


class FieldIdResolver:
    """A list named exactly like the field id (common for built-in fields)."""

    def __init__(self, list_names: Sequence[str]) -> None:
        self._names = set(list_names)

    def resolve(self, field: FieldDescriptor) -> str | None:
        if field.id and field.id in self._names:
            return field.id
        return None


class CategoryPrefixResolver:
    """``<category>.<field id>`` or ``<category>_<field id>`` (custom fields)."""

    def __init__(self, list_names: Sequence[str]) -> None:
        self._names = set(list_names)

    def resolve(self, field: FieldDescriptor) -> str | None:
        if not (field.category and field.id):
            return None
        for candidate in (f"{field.category}.{field.id}", f"{field.category}_{field.id}"):
            if candidate in self._names:
                return candidate
        return None


class PatternResolver:
    """Case-insensitive match of the last path segment against list names,
    ignoring separators (``employmentType`` ~ ``employment_type``)."""

    _SEPARATORS = re.compile(r"[\s_\-.]+")

    def __init__(self, list_names: Sequence[str]) -> None:
        self._names = list(list_names)

    @classmethod
    def _squash(cls, text: str) -> str:
        return cls._SEPARATORS.sub("", text).lower()

    def resolve(self, field: FieldDescriptor) -> str | None:
        segments = split_path(field.path)
        if not segments:
            return None
        wanted = self._squash(segments[-1])
        for name in self._names:
            if self._squash(name) == wanted:
                return name
        return None


class ResolverChain:
    def __init__(self, resolvers: Sequence[Resolver]) -> None:
        self._resolvers = list(resolvers)

    def resolve(self, field: FieldDescriptor) -> str | None:
        for resolver in self._resolvers:
            name = resolver.resolve(field)
            if name:
                return name
        return None


def default_chain(list_names: Sequence[str]) -> ResolverChain:
    return ResolverChain([
        DeclaredListNameResolver(list_names),
        FieldIdResolver(list_names),
        CategoryPrefixResolver(list_names),
        PatternResolver(list_names),
    ])
