# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""ValidationOrchestrator - sync/async rule dispatch for a single field.

For each field the declared rules are split in two subsets:

- sync: every rule whose name was not registered as asynchronous
- async: the rules registered through register_async_rule()

Both subsets are checked against a snapshot of the whole form
(``path -> value``). Sync failures are queued on the field's error stack and
surfaced by ``show_errors()``; async failures are written straight into the
field's async error slot when the check completes.

Async checks run as asyncio tasks collected in ``promises``. validate_field()
does not wait for them: await wait_pending() to get the settled state.

Each dispatch takes a new generation number from the field; a completion
whose generation is no longer current (a newer dispatch started, or the
field's validation was reset) is discarded.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, TYPE_CHECKING

from ..config import FormOptions
from ..reactive import batch
from .rules import RuleEngine, RuleSpec, Validation, rule_name, split_rules

if TYPE_CHECKING:
    from ..builder import FieldTreeBuilder
    from ..field import FieldNode

logger = logging.getLogger(__name__)

GENERIC_ERROR = 'The :attribute field is invalid.'


class ValidationOrchestrator:
    """Runs a field's sync and async rules and writes the outcomes back.

    Attributes:
        engine: The rule engine creating Validation objects.
        options: FormOptions (async pending policy, loading message).
        promises: Pending async check tasks, drained by wait_pending().
        async_rules: Names of the rules registered as asynchronous.
    """

    def __init__(
        self,
        engine: RuleEngine | None = None,
        options: FormOptions | None = None,
        promises: list[asyncio.Future] | None = None,
    ) -> None:
        self.engine = engine if engine is not None else RuleEngine()
        self.options = options if options is not None else FormOptions()
        self.promises: list[asyncio.Future] = promises if promises is not None else []
        self.async_rules: list[str] = []
        self._drain_lock: asyncio.Lock | None = None
        self._drain_loop: asyncio.AbstractEventLoop | None = None

    def __repr__(self) -> str:
        return (
            f"ValidationOrchestrator(async_rules={self.async_rules!r}, "
            f"pending={len(self.promises)})"
        )

    # ==================== Rules ====================

    def register_async_rule(
        self,
        name: str,
        callback: Callable[[Any, list[str], str], Any],
        message: str | None = None,
    ) -> None:
        """Mark ``name`` as asynchronous and register it with the engine.

        Args:
            name: Rule name as used in rule specs.
            callback: ``callback(value, params, attribute)`` returning a
                bool or an awaitable bool.
            message: Message template for failures.
        """
        if name not in self.async_rules:
            self.async_rules.append(name)
        self.engine.register_async(name, callback, message)

    def rules(self, spec: RuleSpec, kind: str) -> list[str]:
        """Return the ``kind`` ('sync' or 'async') subset of a rule spec.

        Rules are matched by name, parameters are ignored. A rule not
        registered as async is always sync.
        """
        declared = split_rules(spec)
        async_names = set(self.async_rules)
        if kind == 'sync':
            return [rule for rule in declared if rule_name(rule) not in async_names]
        if kind == 'async':
            return [rule for rule in declared if rule_name(rule) in async_names]
        raise ValueError(f"kind must be 'sync' or 'async', not {kind!r}")

    # ==================== Dispatch ====================

    @staticmethod
    def collect_data(tree: FieldTreeBuilder) -> dict[str, Any]:
        """Snapshot every field's value, keyed by path."""
        return {path: field.value for path, field in tree.walk()}

    def validate_field(
        self, field: FieldNode, tree: FieldTreeBuilder, apply: bool = True
    ) -> None:
        """Validate one field against the whole tree.

        The async check is dispatched first and not awaited; the sync rules
        and the field's validation functions run immediately.

        Args:
            field: The field to validate.
            tree: The tree supplying the data snapshot (usually the form).
            apply: If False, outcomes are computed but not written back.
        """
        data = self.collect_data(tree)
        with batch():
            self.validate_field_async(field, data, apply)
            self.validate_field_sync(field, data, apply)
            self.validate_field_functions(field, tree, apply)

    def _make_validation(self, field: FieldNode, data: dict[str, Any], rules: list[str]) -> Validation:
        validation = self.engine.make(data, {field.path: rules})
        validation.set_attribute_names({field.path: field.label})
        return validation

    def validate_field_sync(
        self, field: FieldNode, data: dict[str, Any], apply: bool = True
    ) -> bool:
        """Check the field's sync rules.

        Returns:
            True if there were no sync rules or they all passed.
        """
        rules = self.rules(field.rules, 'sync')
        if not rules:
            return True
        validation = self._make_validation(field, data, rules)
        if validation.passes():
            return True
        if apply:
            field.invalidate(validation.errors.first(field.path))
        return False

    def validate_field_functions(
        self, field: FieldNode, tree: FieldTreeBuilder, apply: bool = True
    ) -> bool:
        """Run the callables found in the field's ``validate`` payload.

        Each callable is called as ``fn(field, tree)`` and returns True or
        None when valid, False or an error message otherwise, or a
        ``(valid, message)`` pair. Any other result is judged by its
        truthiness. Non-callable payloads are ignored.

        Returns:
            True if every function passed.
        """
        payload = field.validate
        functions = payload if isinstance(payload, (list, tuple)) else [payload]
        passed = True
        for function in functions:
            if not callable(function):
                continue
            valid, message = self._function_outcome(function(field, tree))
            if valid:
                continue
            passed = False
            if apply:
                field.invalidate(message or GENERIC_ERROR.replace(':attribute', field.label))
        return passed

    @staticmethod
    def _function_outcome(result: Any) -> tuple[bool, str | None]:
        if result is None or result is True:
            return True, None
        if result is False:
            return False, None
        if isinstance(result, str):
            return False, result
        if isinstance(result, (tuple, list)) and len(result) == 2:
            valid, message = result
            return bool(valid), message
        return bool(result), None

    def validate_field_async(
        self, field: FieldNode, data: dict[str, Any], apply: bool = True
    ) -> asyncio.Task | None:
        """Dispatch the field's async rules.

        Inside a running event loop the check is scheduled as a task,
        appended to ``promises`` and returned. Without a running loop the
        check runs to completion before returning.
        """
        rules = self.rules(field.rules, 'async')
        if not rules:
            return None
        validation = self._make_validation(field, data, rules)
        generation = field.next_async_generation()
        if apply and self.options.async_pending == 'placeholder' and not field.has_error:
            field.invalidate(self.options.loading_message, is_async=True)
        field.set_validating(True)
        check = self._run_async(field, validation, generation, apply)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop, checking %s synchronously", field.path)
            asyncio.run(check)
            return None
        logger.debug("Dispatched async check #%d for %s", generation, field.path)
        task = loop.create_task(check)
        self.promises.append(task)
        return task

    async def _run_async(
        self, field: FieldNode, validation: Validation, generation: int, apply: bool
    ) -> None:
        try:
            passed = await validation.passes_async()
        finally:
            if field.async_generation == generation:
                field.set_validating(False)
        if field.async_generation != generation:
            logger.debug(
                "Discarded stale async outcome #%d for %s", generation, field.path
            )
            return
        if not apply:
            return
        if passed:
            self._handle_async_passes(field)
        else:
            self._handle_async_fails(field, validation)

    def _handle_async_passes(self, field: FieldNode) -> None:
        with batch():
            field.set_validation_async_data(True, '')
            field.show_async_errors()

    def _handle_async_fails(self, field: FieldNode, validation: Validation) -> None:
        message = validation.errors.first(field.path)
        with batch():
            field.set_validation_async_data(False, message)
            field.invalidate(message, is_async=True)
            field.show_async_errors()

    # ==================== Settling ====================

    def _get_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._drain_lock is None or self._drain_loop is not loop:
            self._drain_lock = asyncio.Lock()
            self._drain_loop = loop
        return self._drain_lock

    async def wait_pending(self) -> None:
        """Wait until every dispatched async check has settled.

        Checks dispatched while waiting are awaited too. Concurrent callers
        are serialized, so the list is only ever drained by one of them.

        Raises:
            Exception: The first exception raised by an async rule.
        """
        async with self._get_lock():
            while self.promises:
                pending = self.promises[:]
                del self.promises[:]
                logger.debug("Waiting for %d async checks", len(pending))
                results = await asyncio.gather(*pending, return_exceptions=True)
                for result in results:
                    if isinstance(result, BaseException):
                        raise result
