# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""Field declarations.

A declaration is the author-supplied description of a field. Two shapes are
accepted:

- Scalar: the value itself (bool, number, string or list). The field has no
  nested fields.
- Composite: a dict with any of ``value, default, label, name, disabled,
  rules, validate, related`` and an optional ``fields`` entry holding the
  nested declarations.

Example:
    >>> decl = parse_declaration({
    ...     'label': 'Account',
    ...     'fields': {
    ...         'username': {'value': '', 'rules': 'required|min:3'},
    ...         'age': 0,
    ...         'tags': ['a', 'b'],
    ...     },
    ... })
    >>> decl.fields['age']
    ScalarDeclaration(value=0)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from .exceptions import InvalidDeclarationError

COMPOSITE_KEYS = frozenset((
    'value', 'default', 'label', 'name', 'disabled',
    'rules', 'validate', 'related', 'fields',
))

_SCALAR_TYPES = (bool, int, float, str, list, tuple)


@dataclass(frozen=True)
class ScalarDeclaration:
    """A field whose declaration is its value."""

    value: Any = ''

    @property
    def fields(self) -> dict[str, Declaration]:
        return {}


@dataclass(frozen=True)
class CompositeDeclaration:
    """A field declared through its properties, possibly with nested fields."""

    value: Any = None
    default: Any = None
    label: str | None = None
    name: str | None = None
    disabled: bool | None = None
    rules: str | list[str] | None = None
    validate: Any = None
    related: list[str] | None = None
    fields: dict[str, Declaration] = field(default_factory=dict)


Declaration = Union[ScalarDeclaration, CompositeDeclaration]


def parse_declaration(raw: Any, path: str = '') -> Declaration:
    """Turn a raw declaration into a ScalarDeclaration or CompositeDeclaration.

    Args:
        raw: The raw declaration. None is read as an empty string value.
        path: Dotted path of the field, used in error messages.

    Returns:
        The parsed declaration. Already-parsed declarations are returned
        unchanged.

    Raises:
        InvalidDeclarationError: If the shape is not recognized.
    """
    if isinstance(raw, (ScalarDeclaration, CompositeDeclaration)):
        return raw
    if raw is None:
        return ScalarDeclaration('')
    if isinstance(raw, _SCALAR_TYPES):
        if isinstance(raw, tuple):
            raw = list(raw)
        return ScalarDeclaration(raw)
    if isinstance(raw, dict):
        unknown = sorted(str(k) for k in set(raw) - COMPOSITE_KEYS)
        if unknown:
            raise InvalidDeclarationError(
                path, f"unknown keys {', '.join(unknown)}"
            )
        props = {k: v for k, v in raw.items() if k != 'fields'}
        related = props.get('related')
        if related is not None:
            props['related'] = list(related)
        return CompositeDeclaration(
            fields=parse_fields(raw.get('fields'), path), **props
        )
    raise InvalidDeclarationError(
        path, f"unsupported type {type(raw).__name__}"
    )


def parse_fields(raw: Any, path: str = '') -> dict[str, Declaration]:
    """Parse the ``fields`` entry of a composite declaration.

    Accepts a dict of nested declarations, or a list of field names (each
    declared as an empty value, to be filled from the override store).

    Raises:
        InvalidDeclarationError: If ``raw`` is neither a dict nor a list
            of names.
    """
    if raw is None:
        return {}

    def _child_path(key: str) -> str:
        return f"{path}.{key}" if path else key

    if isinstance(raw, dict):
        return {
            str(key): parse_declaration(value, _child_path(str(key)))
            for key, value in raw.items()
        }
    if isinstance(raw, (list, tuple)):
        result: dict[str, Declaration] = {}
        for name in raw:
            if not isinstance(name, (str, int)) or isinstance(name, bool):
                raise InvalidDeclarationError(
                    path, f"field names must be strings, got {name!r}"
                )
            result[str(name)] = ScalarDeclaration('')
        return result
    raise InvalidDeclarationError(
        path, f"'fields' must be a dict or a list of names, not {type(raw).__name__}"
    )
