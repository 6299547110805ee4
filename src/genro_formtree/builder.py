# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""FieldTreeBuilder - child collection and tree construction for fields.

FieldTreeBuilder is the shared base of FieldNode and Form. It owns the
ordered collection of child fields and knows how to build them from
declarations:

- init_fields(declaration): create every declared child not yet present
- init_field(key, path, declaration): create one child through the form's
  node factory, resolving per-path overrides first
- select(path): dotted-path lookup relative to this node
- walk(): depth-first iteration over every descendant
- subscribe(): insert/delete/update notifications

Children whose keys are all non-negative integers make the node
*incremental*: it behaves as an ordered list of entries.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterator, TYPE_CHECKING

from .declaration import Declaration
from .reactive import Cell, Reaction, batch, computed, untracked

if TYPE_CHECKING:
    from .field import FieldNode
    from .form import Form

logger = logging.getLogger(__name__)

SubscriberCallback = Callable[..., Any]


class FieldTreeBuilder:
    """Ordered, observable collection of child fields.

    Attributes:
        path: Dotted path from the root ('' for the form itself).
    """

    __slots__ = (
        'path', '_fields', '_fields_version', '_computeds',
        '_ins_subscribers', '_del_subscribers', '_upd_subscribers',
    )

    def __init__(self, path: str = '') -> None:
        self.path = path
        self._fields: dict[str, FieldNode] = {}
        self._fields_version = Cell(0)
        self._computeds: dict[str, Any] = {}
        self._ins_subscribers: dict[str, SubscriberCallback] = {}
        self._del_subscribers: dict[str, SubscriberCallback] = {}
        self._upd_subscribers: dict[str, Reaction] = {}

    @property
    def form(self) -> Form:
        """The Form owning this tree."""
        raise NotImplementedError

    # ==================== Special Methods ====================

    def __len__(self) -> int:
        """Return the number of direct children."""
        self._fields_version.get()
        return len(self._fields)

    def __iter__(self) -> Iterator[FieldNode]:
        """Iterate over direct children in insertion order."""
        self._fields_version.get()
        return iter(list(self._fields.values()))

    def __contains__(self, path: str | int) -> bool:
        """Check if a key or relative dotted path exists."""
        return self.select(path, raise_error=False) is not None

    # ==================== Path Utilities ====================

    def _child_path(self, key: str) -> str:
        return f"{self.path}.{key}" if self.path else key

    def select(self, path: str | int, raise_error: bool = True) -> FieldNode | None:
        """Get a descendant field by relative dotted path.

        Args:
            path: Dotted path relative to this node (e.g. 'address.city',
                'members.0.name'). Integers are accepted for direct children.
            raise_error: If False, return None instead of raising.

        Returns:
            The FieldNode at path.

        Raises:
            KeyError: If a path segment is not found.
        """
        path = str(path)
        if not path:
            if raise_error:
                raise KeyError("Empty path")
            return None
        current: FieldTreeBuilder = self
        for part in path.split('.'):
            current._fields_version.get()
            node = current._fields.get(part)
            if node is None:
                if raise_error:
                    where = self.path or '<form>'
                    raise KeyError(f"Field '{path}' not found in '{where}'")
                return None
            current = node
        return current  # type: ignore[return-value]

    # ==================== Index / Keys ====================

    def keys(self) -> list[str]:
        """Return child keys in insertion order."""
        self._fields_version.get()
        return list(self._fields)

    def values(self) -> list[FieldNode]:
        """Return child fields in insertion order."""
        self._fields_version.get()
        return list(self._fields.values())

    def items(self) -> list[tuple[str, FieldNode]]:
        """Return (key, field) pairs in insertion order."""
        self._fields_version.get()
        return list(self._fields.items())

    def get(self, key: str | int, default: Any = None) -> FieldNode | None:
        """Get a direct child by key, with default (no path traversal)."""
        self._fields_version.get()
        return self._fields.get(str(key), default)

    def has_int_keys(self) -> bool:
        """True if every child key is a non-negative integer.

        Vacuously true when there are no children.
        """
        return all(key.isdecimal() for key in self.keys())

    def int_keys(self) -> list[int]:
        """Return the integer child keys."""
        return [int(key) for key in self.keys() if key.isdecimal()]

    def max_key(self) -> int:
        """Return the highest integer child key, or -1 when there is none."""
        return max(self.int_keys(), default=-1)

    @computed
    def incremental(self) -> bool:
        """True if the node has children and all their keys are integers."""
        return len(self) > 0 and self.has_int_keys()

    def ordered_fields(self) -> list[FieldNode]:
        """Return children ordered by integer key when incremental,
        by insertion order otherwise.
        """
        if self.incremental:
            return [field for _, field in sorted(self.items(), key=lambda kv: int(kv[0]))]
        return self.values()

    # ==================== Construction ====================

    def init_fields(self, declaration: Declaration, update: bool = False) -> None:
        """Create a child for every declared field not already present.

        Calling it again with the same declaration is a no-op, so it can be
        used to refresh a tree after the declaration grew.

        Args:
            declaration: A parsed declaration whose ``fields`` are built.
            update: Forwarded to init_field.
        """
        for key, child in declaration.fields.items():
            if key in self._fields:
                continue
            self.init_field(key, self._child_path(key), child, update=update)

    def init_field(
        self,
        key: str | int,
        path: str,
        declaration: Any = None,
        fields: FieldTreeBuilder | None = None,
        update: bool = False,
    ) -> FieldNode:
        """Create one field and insert it into a child collection.

        Overrides for ``path`` are looked up in the form's override store
        and take precedence over the declaration. The new field builds its
        own nested fields before being inserted.

        Args:
            key: Key of the new field in the target collection.
            path: Full dotted path of the new field.
            declaration: Raw or parsed declaration (None for an empty field).
            fields: Target collection, defaults to this node.
            update: True when refreshing an existing form: the new field's
                default is left empty instead of being computed.

        Returns:
            The created FieldNode.
        """
        form = self.form
        key = str(key)
        props = form.overrides.props(path)
        node = form.make_field(key, path, declaration, props=props, update=update)
        target = self if fields is None else fields
        target._merge_fields({key: node})
        return node

    def _merge_fields(self, fields: dict[str, FieldNode]) -> None:
        with batch():
            inserted = []
            for key, node in fields.items():
                self._fields[key] = node
                inserted.append(node)
            self._fields_version.set(self._fields_version.peek() + 1)
            for node in inserted:
                logger.debug("Field inserted: %s", node.path)
                self._on_field_inserted(node, list(self._fields).index(node.key))

    def _remove_field(self, key: str | int) -> FieldNode | None:
        key = str(key)
        if key not in self._fields:
            return None
        with batch():
            index = list(self._fields).index(key)
            node = self._fields.pop(key)
            self._fields_version.set(self._fields_version.peek() + 1)
            logger.debug("Field deleted: %s", node.path)
            self._on_field_deleted(node, index)
        return node

    # ==================== Walk ====================

    def walk(self) -> Iterator[tuple[str, FieldNode]]:
        """Walk the subtree depth-first in insertion order.

        Yields:
            Tuples of (path, field) for every descendant.

        Example:
            >>> for path, field in form.walk():
            ...     print(path, field.value)
        """
        for node in self.values():
            yield node.path, node
            yield from node.walk()

    def each(self, callback: Callable[[FieldNode], Any]) -> None:
        """Call ``callback`` on every descendant, depth-first."""
        for _, node in self.walk():
            callback(node)

    def get_values(self) -> Any:
        """Return the subtree's values.

        Incremental nodes give a list ordered by key, other nodes a dict
        keyed by child key.
        """
        if self.incremental:
            return [field.get_values() for field in self.ordered_fields()]
        return {key: field.get_values() for key, field in self.items()}

    def errors(self) -> dict[str, str]:
        """Return the surfaced errors of the subtree, keyed by path."""
        return {
            path: field.error
            for path, field in self.walk()
            if field.error is not None
        }

    # ==================== Subscriptions ====================

    def subscribe(
        self,
        subscriber_id: str,
        insert: SubscriberCallback | None = None,
        delete: SubscriberCallback | None = None,
        update: SubscriberCallback | None = None,
    ) -> None:
        """Register callbacks for changes of this node.

        Args:
            subscriber_id: Identifier used by unsubscribe().
            insert: Called as ``insert(field, index)`` after a child is added.
            delete: Called as ``delete(field, index)`` after a child is removed.
            update: Called as ``update(node, values)`` after the values of
                this subtree changed.
        """
        self.unsubscribe(subscriber_id)
        if insert is not None:
            self._ins_subscribers[subscriber_id] = insert
        if delete is not None:
            self._del_subscribers[subscriber_id] = delete
        if update is not None:
            self._upd_subscribers[subscriber_id] = self._watch_values(update)

    def unsubscribe(self, subscriber_id: str) -> None:
        """Remove every callback registered under ``subscriber_id``."""
        self._ins_subscribers.pop(subscriber_id, None)
        self._del_subscribers.pop(subscriber_id, None)
        reaction = self._upd_subscribers.pop(subscriber_id, None)
        if reaction is not None:
            reaction.dispose()

    def _watch_values(self, callback: SubscriberCallback) -> Reaction:
        started = False

        def _react() -> None:
            nonlocal started
            values = self.get_values()
            if not started:
                started = True
                return
            with untracked():
                callback(self, values)

        reaction = Reaction(_react)
        reaction.run()
        return reaction

    def _on_field_inserted(self, node: FieldNode, index: int) -> None:
        for callback in list(self._ins_subscribers.values()):
            callback(node, index)

    def _on_field_deleted(self, node: FieldNode, index: int) -> None:
        for callback in list(self._del_subscribers.values()):
            callback(node, index)
