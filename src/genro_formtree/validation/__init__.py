# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""Validation package - rule engine and per-field orchestration.

The package is organized into:
- rules: RuleEngine, Validation and the built-in rule set
- orchestrator: ValidationOrchestrator, splitting a field's rules into
  sync and async subsets and merging their outcomes into field state
"""

from .orchestrator import ValidationOrchestrator
from .rules import ErrorBag, Rule, RuleEngine, Validation, parse_rule, split_rules

__all__ = [
    "ValidationOrchestrator",
    "RuleEngine",
    "Validation",
    "ErrorBag",
    "Rule",
    "parse_rule",
    "split_rules",
]
