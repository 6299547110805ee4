# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""Form options."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Mapping

ASYNC_PENDING_POLICIES = ('silent', 'placeholder')


@dataclass(frozen=True)
class FormOptions:
    """Behavior switches for a Form.

    Attributes:
        validate_on_init: Run a validation pass right after construction.
            Errors are recorded but not surfaced.
        validate_on_change: Revalidate a field (and its related fields)
            every time its value changes.
        show_errors_on_change: Surface errors produced by change-driven
            validation.
        async_pending: What a field shows while an async check is in
            flight:
            - 'silent': nothing; the field counts as valid unless it
              already carries a synchronous error
            - 'placeholder': ``loading_message`` is written into the
              async error slot when the field has no error yet
        loading_message: Placeholder text for the 'placeholder' policy.
        raise_on_error: If True (default), structural misuse of the tree
            raises StructuralError. If False, it is logged and ignored.
    """

    validate_on_init: bool = False
    validate_on_change: bool = False
    show_errors_on_change: bool = True
    async_pending: str = 'silent'
    loading_message: str = 'validating...'
    raise_on_error: bool = True

    def __post_init__(self) -> None:
        if self.async_pending not in ASYNC_PENDING_POLICIES:
            raise ValueError(
                f"async_pending must be one of {ASYNC_PENDING_POLICIES}, "
                f"not {self.async_pending!r}"
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FormOptions:
        """Build options from a mapping, rejecting unknown keys.

        Raises:
            ValueError: If a key is not a FormOptions field.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown form options: {', '.join(unknown)}")
        return cls(**dict(data))

    def merge(self, **changes: Any) -> FormOptions:
        """Return a copy with the given options replaced."""
        if not changes:
            return self
        known = {f.name for f in fields(self)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ValueError(f"Unknown form options: {', '.join(unknown)}")
        return replace(self, **changes)
