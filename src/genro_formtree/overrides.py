# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""OverrideStore - per-path field properties kept apart from declarations.

Forms can be declared in a "separated" style: the tree shape comes from the
declaration while values, labels, rules and so on are supplied per path.
OverrideStore holds those per-path properties, grouped by category.

Categories:
    values, labels, defaults, disabled, related, validate, rules

Path Syntax:
    - Dotted paths: 'address.city'
    - Numeric segments index lists: 'members.0.name'

Example:
    >>> store = OverrideStore({
    ...     'values': {'address': {'city': 'Milano'}},
    ...     'rules': {'address.zip': 'required|digits:5'},
    ... })
    >>> store.get('values', 'address.city')
    'Milano'
    >>> store.get('rules', 'address.zip')
    'required|digits:5'
    >>> store.get('labels', 'address.city') is None
    True
"""

from __future__ import annotations

import copy
from typing import Any, Iterator, Mapping

CATEGORIES = (
    'values', 'labels', 'defaults', 'disabled', 'related', 'validate', 'rules',
)

_MISSING = object()


class OverrideStore:
    """Per-category nested property store addressed by dotted path.

    Lookups are read-only and never fail: a missing category, segment or
    index resolves to the default.
    """

    __slots__ = ('_data',)

    def __init__(self, source: Mapping[str, Any] | OverrideStore | None = None) -> None:
        """Initialize an OverrideStore.

        Args:
            source: Optional initial data, a mapping from category name to
                a nested dict. Keys containing dots are expanded, so
                ``{'values': {'a.b': 1}}`` equals ``{'values': {'a': {'b': 1}}}``.
                Another OverrideStore is copied.

        Raises:
            KeyError: If the source has an unknown category.
        """
        self._data: dict[str, dict[str, Any]] = {c: {} for c in CATEGORIES}
        if source is None:
            return
        self.update(source)

    def update(self, source: Mapping[str, Any] | OverrideStore) -> None:
        """Merge overrides from another source into this store.

        Existing entries at the same path are replaced, others are kept.

        Args:
            source: Mapping from category to nested dict, or OverrideStore.

        Raises:
            KeyError: If the source has an unknown category.
        """
        if isinstance(source, OverrideStore):
            source = source.as_dict()
        for category, entries in source.items():
            if entries is None:
                continue
            self._check_category(category)
            self._load(category, '', entries)

    def _load(self, category: str, prefix: str, entries: Mapping[str, Any]) -> None:
        for key, value in entries.items():
            path = f"{prefix}.{key}" if prefix else str(key)
            if isinstance(value, Mapping) and value:
                self._load(category, path, value)
            else:
                self.set(category, path, value)

    def _check_category(self, category: str) -> None:
        if category not in self._data:
            raise KeyError(
                f"Unknown override category '{category}' "
                f"(expected one of {', '.join(CATEGORIES)})"
            )

    # ==================== Special Methods ====================

    def __repr__(self) -> str:
        filled = [c for c in CATEGORIES if self._data[c]]
        return f"OverrideStore({filled})"

    def __contains__(self, item: tuple[str, str]) -> bool:
        """Check for an entry with ``(category, path) in store``."""
        category, path = item
        return self._traverse(category, path) is not _MISSING

    def __iter__(self) -> Iterator[str]:
        return iter(self.categories())

    # ==================== Path Utilities ====================

    def _traverse(self, category: str, path: str) -> Any:
        current: Any = self._data.get(category, _MISSING)
        if current is _MISSING:
            return _MISSING
        if not path:
            return current
        for part in path.split('.'):
            if isinstance(current, Mapping):
                current = current.get(part, _MISSING)
            elif isinstance(current, list) and part.isdecimal():
                index = int(part)
                current = current[index] if index < len(current) else _MISSING
            else:
                return _MISSING
            if current is _MISSING:
                return _MISSING
        return current

    # ==================== Core API ====================

    def get(self, category: str, path: str, default: Any = None) -> Any:
        """Get the override for ``path`` in ``category``.

        Args:
            category: One of CATEGORIES.
            path: Dotted field path.
            default: Value returned when no override exists.

        Returns:
            The stored override, or default.
        """
        value = self._traverse(category, path)
        return default if value is _MISSING else value

    def set(self, category: str, path: str, value: Any) -> None:
        """Set the override for ``path``, creating intermediate levels.

        Raises:
            KeyError: If category is unknown or path is empty.
            TypeError: If a path segment crosses a non-container value.
        """
        self._check_category(category)
        if not path:
            raise KeyError("Empty path")
        parts = path.split('.')
        current: Any = self._data[category]
        for i, part in enumerate(parts[:-1]):
            if isinstance(current, list) and part.isdecimal():
                index = int(part)
                while len(current) <= index:
                    current.append({})
                current = current[index]
                continue
            if not isinstance(current, dict):
                done = '.'.join(parts[:i])
                raise TypeError(f"'{done}' is a leaf, cannot set '{path}'")
            if not isinstance(current.get(part), (dict, list)):
                current[part] = {}
            current = current[part]
        last = parts[-1]
        if isinstance(current, list) and last.isdecimal():
            index = int(last)
            while len(current) <= index:
                current.append(None)
            current[index] = value
        elif isinstance(current, dict):
            current[last] = value
        else:
            raise TypeError(f"Cannot set '{path}' inside {type(current).__name__}")

    def props(self, path: str) -> dict[str, Any]:
        """Return every category's override for ``path``.

        Missing entries are None.
        """
        return {category: self.get(category, path) for category in CATEGORIES}

    def categories(self) -> list[str]:
        """Return the categories holding at least one override."""
        return [c for c in CATEGORIES if self._data[c]]

    def as_dict(self) -> dict[str, Any]:
        """Return a plain nested-dict copy of the non-empty categories."""
        return {c: copy.deepcopy(self._data[c]) for c in self.categories()}
