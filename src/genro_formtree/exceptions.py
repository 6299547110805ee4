# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""FormTree exceptions.

Validation outcomes are never raised: they are recorded on the fields and
read back through ``error`` / ``has_error``. The exceptions below signal
programming errors (malformed declarations, misuse of the tree structure,
unknown rules).
"""

from __future__ import annotations


class FormTreeError(Exception):
    """Base exception for FormTree errors."""

    pass


class StructuralError(FormTreeError):
    """Raised when an operation would corrupt the field tree.

    Examples are assigning a scalar value to an incremental field or
    calling ``add()`` on a field whose children are not integer-keyed.
    """

    pass


class InvalidDeclarationError(FormTreeError):
    """Raised when a field declaration has an unrecognized shape."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        where = f" at '{path}'" if path else ''
        super().__init__(f"Invalid field declaration{where}: {reason}")


class RuleError(FormTreeError):
    """Raised when a validation rule is unknown or malformed."""

    pass
