# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""FieldNode - one observable field of a form tree.

Each field holds:
- identity: key, path, name
- value state: initial, default, current value, label, disabled,
  related, rules, validate
- interaction state: focus, touched, show_error
- validation state: error_sync, error_async, the pending sync error stack
  and the latest async outcome
- children: an ordered collection of nested fields (see FieldTreeBuilder)

All state lives in reactive cells, so derived properties (has_error,
is_dirty, error, ...) and subscribers update as soon as a cell changes.

Example:
    >>> form = Form({'username': {'value': '', 'rules': 'required|min:3'}})
    >>> username = form.select('username')
    >>> username.value = 'ab'
    >>> form.validate('username')
    False
    >>> username.error
    'The username must be at least 3 characters.'
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Mapping, TYPE_CHECKING

from .builder import FieldTreeBuilder
from .declaration import Declaration, ScalarDeclaration, parse_declaration
from .exceptions import StructuralError
from .reactive import Cell, action, computed

if TYPE_CHECKING:
    from .form import Form

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AsyncOutcome:
    """Result of the latest asynchronous check of a field."""

    valid: bool
    message: str | None = None


# ==================== Value helpers ====================

def is_number(value: Any) -> bool:
    """True for int and float, False for bool."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def to_number(value: Any) -> int | float | None:
    """Coerce ``value`` to a number, or return None when it cannot be.

    Numeric strings become int when integral in form ('7'), float
    otherwise ('7.5'). Blank strings are not coerced.
    """
    if isinstance(value, bool):
        return int(value)
    if is_number(value):
        return None if value != value else value
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    return None if number != number else number


def strict_equal(a: Any, b: Any) -> bool:
    """Identity for containers, same-type equality for scalars."""
    if a is b:
        return True
    if isinstance(a, (list, dict)) or isinstance(b, (list, dict)):
        return False
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if is_number(a) and is_number(b):
        return a == b
    return type(a) is type(b) and a == b


def deep_equal(a: Any, b: Any) -> bool:
    """Structural equality that keeps booleans apart from numbers."""
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(deep_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        return a.keys() == b.keys() and all(deep_equal(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple, Mapping)) or isinstance(b, (list, tuple, Mapping)):
        return False
    return a == b


def is_empty_value(value: Any) -> bool:
    """Structural emptiness: None and empty containers/strings."""
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, dict)):
        return len(value) == 0
    return False


def _copy(value: Any) -> Any:
    if isinstance(value, (list, dict)):
        return copy.deepcopy(value)
    return value


def _pick(*candidates: Any) -> Any:
    for candidate in candidates:
        if candidate is not None:
            return candidate
    return None


def _prevent_default(event: Any) -> None:
    for name in ('prevent_default', 'preventDefault'):
        handler = getattr(event, name, None)
        if callable(handler):
            handler()
            return


class FieldNode(FieldTreeBuilder):
    """A field of the form tree.

    Fields are created by the builder (Form.make_field), never directly by
    application code; use Form.select() to reach them.

    Attributes:
        key: Local name within the parent collection.
        path: Dotted path from the root, unique in the tree.
        name: Logical name, defaults to key.
    """

    __slots__ = (
        'key', 'name', '_form',
        '_value', '_initial', '_default', '_label', '_disabled',
        '_related', '_rules', '_validate',
        '_focus', '_touched', '_show_error',
        '_error_sync', '_error_async', '_error_stack', '_async_data',
        '_validating', '_async_generation',
    )

    def __init__(
        self,
        key: str | int,
        path: str,
        declaration: Any = None,
        form: Form | None = None,
        props: Mapping[str, Any] | None = None,
        update: bool = False,
    ) -> None:
        """Initialize a FieldNode and its nested fields.

        Args:
            key: The field's key in its parent collection.
            path: Full dotted path of the field.
            declaration: Raw or parsed declaration.
            form: The owning Form (node factory, override store, options).
            props: Per-path overrides keyed by category ('values',
                'labels', 'defaults', 'disabled', 'related', 'validate',
                'rules'). Non-None overrides beat the declaration.
            update: True on a config refresh: default is left empty.
        """
        super().__init__(path)
        if form is None:
            raise ValueError("FieldNode requires its owning form")
        self._form = form
        self.key = str(key)
        self._focus = Cell(False)
        self._touched = Cell(False)
        self._show_error = Cell(True)
        self._error_sync = Cell(None)
        self._error_async = Cell(None)
        self._error_stack = Cell([])
        self._async_data: Cell = Cell(None)
        self._validating = Cell(False)
        self._async_generation = 0

        parsed = parse_declaration(declaration, path)
        self._setup_field(parsed, props or {}, update)
        self.init_fields(parsed, update)

    def __repr__(self) -> str:
        if self._fields:
            return f"FieldNode({self.path!r}, fields={list(self._fields)})"
        return f"FieldNode({self.path!r}, value={self._value.peek()!r})"

    @property
    def form(self) -> Form:
        return self._form

    # ==================== Setup ====================

    def _setup_field(
        self, declaration: Declaration, props: Mapping[str, Any], update: bool
    ) -> None:
        if isinstance(declaration, ScalarDeclaration):
            # The declaration IS the value
            self.name = self.key
            declared_value, declared_default = declaration.value, None
            label = rules = disabled = related = validate = None
        else:
            self.name = declaration.name or self.key
            declared_value, declared_default = declaration.value, declaration.default
            label = declaration.label
            rules = declaration.rules
            disabled = declaration.disabled
            related = declaration.related
            validate = declaration.validate

        initial = self._parse_initial_value(declared_value, props.get('values'))
        if update:
            default = ''
        else:
            default = self._parse_default_value(declared_default, props.get('defaults'), initial)

        self._initial = Cell(initial)
        self._default = Cell(default)
        self._value = Cell(_copy(initial))
        self._label = Cell(_pick(props.get('labels'), label) or self.name)
        self._disabled = Cell(bool(_pick(props.get('disabled'), disabled, False)))
        self._rules = _pick(props.get('rules'), rules)
        self._related = list(_pick(props.get('related'), related, []))
        self._validate = copy.deepcopy(_pick(props.get('validate'), validate))

    @staticmethod
    def _parse_initial_value(declared: Any, override: Any) -> Any:
        value = _pick(override, declared)
        if value is None:
            return ''
        if isinstance(value, tuple):
            return list(value)
        return _copy(value)

    @staticmethod
    def _parse_default_value(declared: Any, override: Any, initial: Any) -> Any:
        value = _pick(override, declared)
        if value is None:
            return _copy(initial)
        return _copy(value)

    # ==================== Value ====================

    @property
    def value(self) -> Any:
        """The field's value.

        Incremental fields return their children's values as a list
        ordered by key. List values are returned as a fresh copy.
        """
        if self.incremental:
            return [field.get_values() for field in self.ordered_fields()]
        value = self._value.get()
        if isinstance(value, list):
            return list(value)
        return value

    @value.setter
    def value(self, new_value: Any) -> None:
        if self.incremental:
            self._structural_error(
                f"Cannot assign a scalar value to incremental field '{self.path}'"
            )
            return
        self._set_value(new_value)

    @action
    def _set_value(self, new_value: Any) -> None:
        current = self._value.peek()
        if strict_equal(current, new_value):
            return
        if is_number(self._initial.peek()):
            number = to_number(new_value)
            if number is not None:
                new_value = number
                if strict_equal(current, new_value):
                    return
        if isinstance(new_value, tuple):
            new_value = list(new_value)
        self._value.set(new_value)
        self._form._field_value_changed(self)

    def get_values(self) -> Any:
        """Return the value of the subtree.

        Leaves return their value, incremental fields a list and fields with
        named children a dict.
        """
        if len(self) == 0:
            return self.value
        return super().get_values()

    @action
    def set_values(self, data: Any) -> None:
        """Assign values to the subtree.

        Dicts are spread over named children, lists over the entries of an
        incremental field (adding or deleting entries to match the list
        length). A childless field grows entries from a list unless its
        initial value is itself a list. Anything else is assigned to
        ``value``.
        """
        if isinstance(data, Mapping) and len(self) and not self.incremental:
            for key, value in data.items():
                self.select(str(key)).set_values(value)
            return
        if isinstance(data, (list, tuple)) and self._takes_entries():
            entries = self.ordered_fields()
            for index, item in enumerate(data):
                entry = entries[index] if index < len(entries) else self.add()
                entry.set_values(item)
            for extra in entries[len(data):]:
                self.del_field(extra.key)
            return
        self.value = data

    def _takes_entries(self) -> bool:
        if len(self):
            return self.incremental
        return not isinstance(self._initial.peek(), list)

    # ==================== Properties ====================

    @property
    def label(self) -> str:
        return self._label.get()

    @property
    def related(self) -> list[str]:
        return list(self._related)

    @property
    def disabled(self) -> bool:
        return self._disabled.get()

    @property
    def default(self) -> Any:
        return self._default.get()

    @property
    def initial(self) -> Any:
        return self._initial.get()

    @property
    def focus(self) -> bool:
        return self._focus.get()

    @property
    def touched(self) -> bool:
        return self._touched.get()

    @property
    def rules(self) -> str | list[str] | None:
        return self._rules

    @property
    def validate(self) -> Any:
        """Opaque custom-validator payload."""
        return self._validate

    @property
    def show_error(self) -> bool:
        return self._show_error.get()

    @property
    def error_sync(self) -> str | None:
        return self._error_sync.get()

    @property
    def error_async(self) -> str | None:
        return self._error_async.get()

    @property
    def validation_error_stack(self) -> list[str]:
        """Pending sync errors, most recent first."""
        return list(self._error_stack.get())

    @property
    def validation_async_data(self) -> AsyncOutcome | None:
        """Latest async outcome, None while unknown."""
        return self._async_data.get()

    @property
    def validating(self) -> bool:
        """True while an async check for this field is in flight."""
        return self._validating.get()

    @property
    def async_generation(self) -> int:
        return self._async_generation

    # ==================== Computed ====================

    @computed
    def error(self) -> str | None:
        """The surfaced error, None when hidden or absent."""
        if not self._show_error.get():
            return None
        return self._error_async.get() or self._error_sync.get()

    @computed
    def has_error(self) -> bool:
        outcome = self._async_data.get()
        return (
            (outcome is not None and outcome.valid is False)
            or bool(self._error_stack.get())
            or isinstance(self._error_async.get(), str)
            or isinstance(self._error_sync.get(), str)
        )

    @computed
    def is_valid(self) -> bool:
        return not self.has_error

    @computed
    def is_dirty(self) -> bool:
        return not deep_equal(self._default.get(), self.value)

    @computed
    def is_pristine(self) -> bool:
        return deep_equal(self._default.get(), self.value)

    @computed
    def is_default(self) -> bool:
        return deep_equal(self._default.get(), self.value)

    @computed
    def is_empty(self) -> bool:
        value = self.value
        if is_number(value):
            return False
        if isinstance(value, bool):
            return not value
        return is_empty_value(value)

    # ==================== Actions ====================

    def _structural_error(self, message: str) -> None:
        if self._form.options.raise_on_error:
            raise StructuralError(message)
        logger.warning("%s (ignored)", message)

    @action
    def add(self, path: str | None = None, declaration: Any = None) -> FieldNode | None:
        """Add an entry to an incremental field.

        Args:
            path: Optional relative path of a descendant to add to.
            declaration: Optional declaration of the new entry.

        Returns:
            The new field, keyed max(integer keys) + 1 (0 for the first).

        Raises:
            StructuralError: If the target has non-integer children.
        """
        if isinstance(path, str):
            return self.select(path).add(declaration=declaration)
        if len(self) and not self.has_int_keys():
            self._structural_error(
                f"Cannot add an entry to '{self.path}': children are not integer-keyed"
            )
            return None
        key = str(self.max_key() + 1)
        return self.init_field(key, self._child_path(key), declaration)

    @action
    def del_field(self, key: str | int) -> None:
        """Remove the child at ``key``; no-op if absent."""
        self._remove_field(key)

    @action
    def invalidate(self, message: str | list[str], is_async: bool = False) -> None:
        """Record a validation error.

        Args:
            message: The error message. A list replaces the whole pending
                sync error stack.
            is_async: Write ``message`` into the surfaced async slot.
        """
        if is_async:
            self._error_async.set(message)
            return
        if isinstance(message, list):
            self._error_stack.set(list(message))
            return
        self._error_stack.set([message, *self._error_stack.peek()])

    @action
    def set_validation_async_data(self, valid: bool, message: str | None = None) -> None:
        """Record the latest async outcome without surfacing it."""
        self._async_data.set(AsyncOutcome(valid, message))

    @action
    def set_validating(self, validating: bool) -> None:
        self._validating.set(validating)

    def next_async_generation(self) -> int:
        """Start a new async dispatch, making older ones stale."""
        self._async_generation += 1
        return self._async_generation

    @action
    def reset_validation(self, deep: bool = False) -> None:
        """Clear all validation state and show errors again.

        In-flight async checks become stale and their outcome is dropped.
        """
        self._show_error.set(True)
        self._error_sync.set(None)
        self._error_async.set(None)
        self._async_data.set(None)
        self._error_stack.set([])
        self._validating.set(False)
        self._async_generation += 1
        if deep:
            for field in self.values():
                field.reset_validation(deep=True)

    @action
    def show_errors(self, show: bool = True) -> None:
        """Surface or hide errors.

        ``show=False`` hides errors without clearing them. ``show=True``
        makes errors visible and moves the most recent pending sync error
        into ``error_sync``; older pending errors are dropped.
        """
        if not show:
            self._show_error.set(False)
            return
        self._show_error.set(True)
        stack = self._error_stack.peek()
        self._error_sync.set(stack[0] if stack else None)
        self._error_stack.set([])

    @action
    def show_async_errors(self) -> None:
        """Copy the recorded async outcome into ``error_async``."""
        outcome = self._async_data.peek()
        if outcome is not None and outcome.valid is False:
            self._error_async.set(outcome.message)
            return
        self._error_async.set(None)

    @action
    def clear(self, deep: bool = True) -> None:
        """Reset validation and set the value to the empty value of its type."""
        self.reset_validation()
        value = self._value.peek()
        if isinstance(value, list):
            self._value.set([])
        elif isinstance(value, bool):
            self._value.set(False)
        elif is_number(value):
            self._value.set(0)
        elif isinstance(value, str):
            self._value.set('')
        if deep:
            for field in self.values():
                field.clear(deep=True)

    @action
    def reset(self, deep: bool = True) -> None:
        """Set the value back to default (or initial when they coincide)."""
        default, initial = self._default.peek(), self._initial.peek()
        target = initial if strict_equal(default, initial) else default
        if not self.incremental:
            self.value = _copy(target)
        if deep:
            for field in self.values():
                field.reset(deep=True)

    # ==================== Events ====================

    def sync(self, event: Any) -> None:
        """Set the value from a UI event or a raw value.

        Events expose ``target.checked`` (used for boolean fields) and
        ``target.value``; anything without a ``target`` is the value itself.
        """
        target = getattr(event, 'target', None)
        if target is None:
            self.value = event
            return
        checked = getattr(target, 'checked', None)
        if isinstance(self._value.peek(), bool) and isinstance(checked, bool):
            self.value = checked
            return
        self.value = getattr(target, 'value', None)

    def on_change(self, event: Any) -> None:
        self.sync(event)

    def on_toggle(self, event: Any) -> None:
        self.sync(event)

    @action
    def on_focus(self, event: Any = None) -> None:
        self._focus.set(True)
        self._touched.set(True)

    @action
    def on_blur(self, event: Any = None) -> None:
        self._focus.set(False)

    def on_clear(self, event: Any) -> None:
        _prevent_default(event)
        self.clear(True)

    def on_reset(self, event: Any) -> None:
        _prevent_default(event)
        self.reset(True)

    def on_add(self, event: Any, key: str | None = None) -> FieldNode | None:
        _prevent_default(event)
        return self.add(key)

    def on_del(self, event: Any, key: str | int) -> None:
        _prevent_default(event)
        self.del_field(key)
