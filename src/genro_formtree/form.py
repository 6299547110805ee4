# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""Form - root of a field tree.

The Form owns everything its fields share:
- the node factory (make_field, field_factory)
- the override store consulted when fields are built
- the validation orchestrator and its pending async checks
- the options

Example:
    Unified declaration::

        form = Form({
            'username': {'value': '', 'rules': 'required|min:3'},
            'age': 0,
            'members': {'fields': {}},
        })
        form.select('username').value = 'abc'
        form.select('members').add()
        form.validate()

    Separated declaration::

        form = Form(
            ['email', 'password'],
            values={'email': 'ada@example.com'},
            rules={'email': 'required|email', 'password': 'required|min:8'},
        )

    Async rules::

        async def available(value, params, attribute):
            return await users.is_free(value)

        form.register_async_rule('available', available, 'The :attribute is taken.')
        valid = await form.validate_async()
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Mapping

from .builder import FieldTreeBuilder
from .config import FormOptions
from .declaration import CompositeDeclaration, parse_fields
from .field import FieldNode
from .overrides import OverrideStore
from .reactive import action, batch, computed
from .validation import RuleEngine, ValidationOrchestrator

logger = logging.getLogger(__name__)


class Form(FieldTreeBuilder):
    """A form: the root of a tree of FieldNode.

    Attributes:
        options: The FormOptions in effect.
        overrides: Per-path property overrides used when fields are built.
        validator: The ValidationOrchestrator.
    """

    __slots__ = ('options', 'overrides', 'validator', '_declaration')

    field_factory: type[FieldNode] = FieldNode

    def __init__(
        self,
        fields: Mapping[str, Any] | list[str] | None = None,
        *,
        values: Mapping[str, Any] | None = None,
        labels: Mapping[str, Any] | None = None,
        defaults: Mapping[str, Any] | None = None,
        disabled: Mapping[str, Any] | None = None,
        related: Mapping[str, Any] | None = None,
        validate: Mapping[str, Any] | None = None,
        rules: Mapping[str, Any] | None = None,
        overrides: Mapping[str, Any] | OverrideStore | None = None,
        engine: RuleEngine | None = None,
        options: FormOptions | Mapping[str, Any] | None = None,
        **option_kwargs: Any,
    ) -> None:
        """Initialize a Form and build its fields.

        Args:
            fields: Field declarations keyed by name, or a list of names.
            values, labels, defaults, disabled, related, validate, rules:
                Per-path overrides by category (nested dicts or dotted
                keys). They take precedence over the declarations.
            overrides: An OverrideStore (or its mapping form) merged
                below the per-category arguments.
            engine: Rule engine, a fresh RuleEngine by default.
            options: FormOptions or a mapping of options.
            **option_kwargs: Individual options overriding ``options``.

        Raises:
            InvalidDeclarationError: If a declaration has an unknown shape.
            ValueError: If an option is unknown or invalid.
        """
        super().__init__(path='')
        if isinstance(options, FormOptions):
            base = options
        else:
            base = FormOptions.from_dict(options or {})
        self.options = base.merge(**option_kwargs)

        self.overrides = OverrideStore(overrides)
        self.overrides.update({
            'values': values,
            'labels': labels,
            'defaults': defaults,
            'disabled': disabled,
            'related': related,
            'validate': validate,
            'rules': rules,
        })
        self.validator = ValidationOrchestrator(engine=engine, options=self.options)
        self._declaration = CompositeDeclaration(fields=parse_fields(fields))

        self.init_fields(self._declaration)
        if self.options.validate_on_init:
            self.validate(show_errors=False)

    def __repr__(self) -> str:
        return f"Form({self.keys()})"

    @property
    def form(self) -> Form:
        return self

    def make_field(
        self,
        key: str,
        path: str,
        declaration: Any,
        props: Mapping[str, Any] | None = None,
        update: bool = False,
    ) -> FieldNode:
        """Node factory used by the builder for every field of the tree.

        Override to build FieldNode subclasses, or set ``field_factory``.
        """
        return self.field_factory(
            key, path, declaration, form=self, props=props, update=update
        )

    # ==================== Declarations ====================

    @action
    def update_fields(self, fields: Mapping[str, Any] | list[str]) -> None:
        """Add newly declared fields, keeping the existing ones.

        Fields created this way are built as a config refresh: their
        default is left empty.
        """
        declaration = CompositeDeclaration(fields=parse_fields(fields))
        self.init_fields(declaration, update=True)

    # ==================== Validation ====================

    def register_async_rule(
        self,
        name: str,
        callback: Callable[[Any, list[str], str], Any],
        message: str | None = None,
    ) -> None:
        """Register an asynchronous rule (see ValidationOrchestrator)."""
        self.validator.register_async_rule(name, callback, message)

    def _validation_targets(self, path: str | None) -> list[FieldNode]:
        if path is None:
            return [field for _, field in self.walk()]
        field = self.select(path)
        return [field] + [child for _, child in field.walk()]

    def validate(self, path: str | None = None, show_errors: bool = True) -> bool:
        """Validate the whole form, or the field at ``path`` and its subtree.

        Async checks are dispatched but not awaited; with the default
        'silent' pending policy they do not count as errors until they
        complete.

        Args:
            path: Dotted path of the field to validate, None for all.
            show_errors: Surface the resulting sync errors.

        Returns:
            True if no validated field has an error right now.
        """
        targets = self._validation_targets(path)
        with batch():
            for field in targets:
                field.reset_validation()
                self.validator.validate_field(field, self)
                if show_errors:
                    field.show_errors(True)
        valid = all(field.is_valid for field in targets)
        logger.debug("Validated %d fields under %r: valid=%s", len(targets), path, valid)
        return valid

    async def validate_async(self, path: str | None = None, show_errors: bool = True) -> bool:
        """Validate like validate() and wait for the async checks."""
        self.validate(path, show_errors=show_errors)
        await self.wait_pending()
        return all(field.is_valid for field in self._validation_targets(path))

    async def wait_pending(self) -> None:
        """Wait for every pending async check to settle."""
        await self.validator.wait_pending()

    async def submit(
        self,
        on_success: Callable[[Form], Any] | None = None,
        on_error: Callable[[Form], Any] | None = None,
    ) -> bool:
        """Validate everything, then call ``on_success`` or ``on_error``.

        Callbacks receive the form and may be coroutine functions.

        Returns:
            True if the form was valid.
        """
        valid = await self.validate_async()
        callback = on_success if valid else on_error
        if callback is not None:
            result = callback(self)
            if inspect.isawaitable(result):
                await result
        return valid

    def _field_value_changed(self, field: FieldNode) -> None:
        if not self.options.validate_on_change:
            return
        targets = [field]
        for path in field.related:
            related = self.select(path, raise_error=False)
            if related is None:
                logger.warning("Related field '%s' of '%s' not found", path, field.path)
                continue
            targets.append(related)
        with batch():
            for target in targets:
                target.reset_validation()
                self.validator.validate_field(target, self)
                if self.options.show_errors_on_change:
                    target.show_errors(True)

    # ==================== State ====================

    @computed
    def has_error(self) -> bool:
        return any(field.has_error for _, field in self.walk())

    @computed
    def is_valid(self) -> bool:
        return not self.has_error

    @computed
    def is_dirty(self) -> bool:
        return any(field.is_dirty for _, field in self.walk())

    @computed
    def is_pristine(self) -> bool:
        return not self.is_dirty

    @computed
    def focus(self) -> bool:
        return any(field.focus for _, field in self.walk())

    @computed
    def touched(self) -> bool:
        return any(field.touched for _, field in self.walk())

    def get_values(self) -> dict[str, Any]:
        """Return the form's values as a nested dict."""
        return {key: field.get_values() for key, field in self.items()}

    @action
    def update(self, data: Mapping[str, Any]) -> None:
        """Assign values by key or dotted path (see FieldNode.set_values).

        Raises:
            KeyError: If a key does not name a field.
        """
        for path, value in data.items():
            self.select(path).set_values(value)

    @action
    def clear(self) -> None:
        """Clear every field (empty values, no errors)."""
        for field in self.values():
            field.clear(deep=True)

    @action
    def reset(self) -> None:
        """Reset every field to its default value."""
        for field in self.values():
            field.reset(deep=True)

    @action
    def reset_validation(self) -> None:
        for field in self.values():
            field.reset_validation(deep=True)

    @action
    def show_errors(self, show: bool = True) -> None:
        """Surface (or hide) the errors of every field."""
        for _, field in self.walk():
            field.show_errors(show)
