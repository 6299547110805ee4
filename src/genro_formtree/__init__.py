# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""Genro-FormTree - Reactive form field trees with sync/async validation.

A lightweight, zero-dependency library modelling a form as a tree of
observable fields, for the Genro ecosystem (Genro Kyō).
"""

__version__ = "0.1.0"

from .builder import FieldTreeBuilder
from .config import FormOptions
from .declaration import (
    CompositeDeclaration,
    ScalarDeclaration,
    parse_declaration,
    parse_fields,
)
from .exceptions import (
    FormTreeError,
    InvalidDeclarationError,
    RuleError,
    StructuralError,
)
from .field import AsyncOutcome, FieldNode
from .form import Form
from .overrides import OverrideStore
from .reactive import Cell, Computed, Reaction, action, autorun, batch, computed, untracked
from .validation import RuleEngine, Validation, ValidationOrchestrator

__all__ = [
    # Core classes
    "Form",
    "FieldNode",
    "FieldTreeBuilder",
    "FormOptions",
    "OverrideStore",
    "AsyncOutcome",
    # Declarations
    "ScalarDeclaration",
    "CompositeDeclaration",
    "parse_declaration",
    "parse_fields",
    # Validation
    "ValidationOrchestrator",
    "RuleEngine",
    "Validation",
    # Reactive
    "Cell",
    "Computed",
    "Reaction",
    "computed",
    "autorun",
    "batch",
    "action",
    "untracked",
    # Exceptions
    "FormTreeError",
    "StructuralError",
    "InvalidDeclarationError",
    "RuleError",
]
