# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""Declarative validation rules.

Rules are written as a pipe-delimited string or a list, each rule being a
name optionally followed by ``:`` and comma-separated parameters::

    'required|min:3|max:20'
    ['required', 'in:red,green,blue']
    'regex:/^[a-z]+$/i'

RuleEngine keeps the rule registry and creates Validation objects, which
check a flat ``path -> value`` data map against ``path -> rules``.

Example:
    >>> engine = RuleEngine()
    >>> validation = engine.make({'user.name': 'ab'}, {'user.name': 'required|min:3'})
    >>> validation.passes()
    False
    >>> validation.errors.first('user.name')
    'The name must be at least 3 characters.'
"""

from __future__ import annotations

import inspect
import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence, Union

from ..exceptions import RuleError

RuleSpec = Union[str, Sequence[str], None]
RuleCheck = Callable[..., Any]

DEFAULT_MESSAGE = 'The :attribute field is invalid.'

MESSAGES: dict[str, str | dict[str, str]] = {
    'accepted': 'The :attribute must be accepted.',
    'alpha': 'The :attribute field must contain only alphabetic characters.',
    'alpha_dash': (
        'The :attribute field may only contain alpha-numeric characters, '
        'as well as dashes and underscores.'
    ),
    'alpha_num': 'The :attribute field must be alphanumeric.',
    'array': 'The :attribute must be an array.',
    'between': {
        'numeric': 'The :attribute field must be between :min and :max.',
        'string': 'The :attribute field must be between :min and :max characters.',
        'array': 'The :attribute field must have between :min and :max items.',
    },
    'boolean': 'The :attribute field must be true or false.',
    'confirmed': 'The :attribute confirmation does not match.',
    'different': 'The :attribute and :different must be different.',
    'digits': 'The :attribute must be :digits digits.',
    'email': 'The :attribute format is invalid.',
    'in': 'The selected :attribute is invalid.',
    'integer': 'The :attribute must be an integer.',
    'max': {
        'numeric': 'The :attribute may not be greater than :max.',
        'string': 'The :attribute may not be greater than :max characters.',
        'array': 'The :attribute may not have more than :max items.',
    },
    'min': {
        'numeric': 'The :attribute must be at least :min.',
        'string': 'The :attribute must be at least :min characters.',
        'array': 'The :attribute must have at least :min items.',
    },
    'not_in': 'The selected :attribute is invalid.',
    'numeric': 'The :attribute must be a number.',
    'regex': 'The :attribute format is invalid.',
    'required': 'The :attribute field is required.',
    'required_if': 'The :attribute field is required when :other is :value.',
    'same': 'The :attribute and :same fields must match.',
    'size': {
        'numeric': 'The :attribute must be :size.',
        'string': 'The :attribute must be :size characters.',
        'array': 'The :attribute must contain :size items.',
    },
    'string': 'The :attribute must be a string.',
    'url': 'The :attribute format is invalid.',
}

# Placeholder names for each rule's parameters, in order.
PARAM_NAMES: dict[str, tuple[str, ...]] = {
    'between': ('min', 'max'),
    'different': ('different',),
    'digits': ('digits',),
    'max': ('max',),
    'min': ('min',),
    'required_if': ('other', 'value'),
    'same': ('same',),
    'size': ('size',),
}

# Parameters naming another attribute, displayed through attribute names.
_ATTRIBUTE_PARAMS = frozenset(('different', 'same', 'other'))

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_URL_RE = re.compile(r"^https?://[^\s/$.?#][^\s]*$", re.IGNORECASE)
_ALPHA_DASH_RE = re.compile(r"^[\w-]+$")
_INTEGER_RE = re.compile(r"^-?\d+$")


# ==================== Rule parsing ====================

def split_rules(spec: RuleSpec) -> list[str]:
    """Split a rule spec into its rule strings.

    Example:
        >>> split_rules('required|min:3')
        ['required', 'min:3']
    """
    if spec is None:
        return []
    parts = spec.split('|') if isinstance(spec, str) else list(spec)
    return [part.strip() for part in parts if part and part.strip()]


def parse_rule(rule: str) -> tuple[str, list[str]]:
    """Split a rule string into name and parameters.

    Example:
        >>> parse_rule('between:1,10')
        ('between', ['1', '10'])
    """
    name, _, params = rule.partition(':')
    name = name.strip()
    if not params:
        return name, []
    if name == 'regex':
        return name, [params]
    return name, [param.strip() for param in params.split(',')]


def rule_name(rule: str) -> str:
    """Return the name part of a rule string."""
    return parse_rule(rule)[0]


@dataclass(frozen=True)
class Rule:
    """A registered rule.

    Attributes:
        name: Rule name used in specs.
        check: ``check(value, params, attribute, validation) -> bool``; may
            return an awaitable for async rules.
        message: Message template, or dict of templates by value kind
            ('numeric', 'string', 'array').
        is_async: Only usable through Validation.passes_async().
        implicit: Runs on empty values too (rules like 'required').
    """

    name: str
    check: RuleCheck
    message: str | dict[str, str] = DEFAULT_MESSAGE
    is_async: bool = False
    implicit: bool = False


# ==================== Errors ====================

class ErrorBag:
    """Error messages collected by a Validation, grouped by attribute."""

    __slots__ = ('_errors',)

    def __init__(self) -> None:
        self._errors: dict[str, list[str]] = {}

    def __repr__(self) -> str:
        return f"ErrorBag({self._errors!r})"

    def __len__(self) -> int:
        return sum(len(messages) for messages in self._errors.values())

    def __bool__(self) -> bool:
        return bool(self._errors)

    def __contains__(self, attribute: str) -> bool:
        return attribute in self._errors

    def add(self, attribute: str, message: str) -> None:
        self._errors.setdefault(attribute, []).append(message)

    def get(self, attribute: str) -> list[str]:
        """Return all messages for ``attribute`` (empty list if none)."""
        return list(self._errors.get(attribute, []))

    def first(self, attribute: str) -> str | None:
        """Return the first message for ``attribute``, or None."""
        messages = self._errors.get(attribute)
        return messages[0] if messages else None

    def all(self) -> dict[str, list[str]]:
        return {attribute: list(messages) for attribute, messages in self._errors.items()}


# ==================== Built-in checks ====================

def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ''
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_numeric(value: Any) -> bool:
    if _is_number(value):
        return value == value
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return False
        return number == number
    return False


def _required(value, params, attribute, validation) -> bool:
    return not _is_empty(value)


def _required_if(value, params, attribute, validation) -> bool:
    if len(params) < 2:
        raise RuleError("required_if needs two parameters: other,value")
    other = validation.lookup(attribute, params[0])
    if str(other) in params[1:]:
        return not _is_empty(value)
    return True


def _accepted(value, params, attribute, validation) -> bool:
    return value in (True, 1, '1', 'on', 'yes', 'true')


def _alpha(value, params, attribute, validation) -> bool:
    return isinstance(value, str) and value.isalpha()


def _alpha_dash(value, params, attribute, validation) -> bool:
    return isinstance(value, str) and bool(_ALPHA_DASH_RE.match(value))


def _alpha_num(value, params, attribute, validation) -> bool:
    if _is_number(value):
        return True
    return isinstance(value, str) and value.isalnum()


def _array(value, params, attribute, validation) -> bool:
    return isinstance(value, (list, tuple))


def _boolean(value, params, attribute, validation) -> bool:
    return value in (True, False) or value in ('0', '1', 'true', 'false')


def _size_param(name: str, params: list[str], index: int = 0) -> float:
    try:
        return float(params[index])
    except (IndexError, ValueError):
        raise RuleError(f"Rule '{name}' needs a numeric parameter") from None


def _between(value, params, attribute, validation) -> bool:
    size = validation.size_of(attribute, value)
    low, high = _size_param('between', params, 0), _size_param('between', params, 1)
    return size is not None and low <= size <= high


def _confirmed(value, params, attribute, validation) -> bool:
    return validation.lookup(attribute, f"{attribute}_confirmation") == value


def _different(value, params, attribute, validation) -> bool:
    return validation.lookup(attribute, params[0]) != value


def _digits(value, params, attribute, validation) -> bool:
    text = str(value)
    return text.isdecimal() and len(text) == int(_size_param('digits', params))


def _email(value, params, attribute, validation) -> bool:
    return isinstance(value, str) and bool(_EMAIL_RE.match(value))


def _in(value, params, attribute, validation) -> bool:
    if isinstance(value, (list, tuple)):
        return all(str(item) in params for item in value)
    return str(value) in params


def _integer(value, params, attribute, validation) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    if isinstance(value, float):
        return value.is_integer()
    return isinstance(value, str) and bool(_INTEGER_RE.match(value.strip()))


def _max(value, params, attribute, validation) -> bool:
    size = validation.size_of(attribute, value)
    return size is not None and size <= _size_param('max', params)


def _min(value, params, attribute, validation) -> bool:
    size = validation.size_of(attribute, value)
    return size is not None and size >= _size_param('min', params)


def _not_in(value, params, attribute, validation) -> bool:
    return not _in(value, params, attribute, validation)


def _numeric(value, params, attribute, validation) -> bool:
    return _is_numeric(value)


def _regex(value, params, attribute, validation) -> bool:
    if not params:
        raise RuleError("Rule 'regex' needs a pattern")
    pattern, flags = params[0], 0
    if pattern.startswith('/') and pattern.rfind('/') > 0:
        end = pattern.rfind('/')
        if 'i' in pattern[end + 1:]:
            flags |= re.IGNORECASE
        pattern = pattern[1:end]
    return bool(re.search(pattern, str(value), flags))


def _same(value, params, attribute, validation) -> bool:
    return validation.lookup(attribute, params[0]) == value


def _size(value, params, attribute, validation) -> bool:
    size = validation.size_of(attribute, value)
    return size is not None and size == _size_param('size', params)


def _string(value, params, attribute, validation) -> bool:
    return isinstance(value, str)


def _url(value, params, attribute, validation) -> bool:
    return isinstance(value, str) and bool(_URL_RE.match(value))


def _builtin_rules() -> dict[str, Rule]:
    checks: dict[str, RuleCheck] = {
        'accepted': _accepted,
        'alpha': _alpha,
        'alpha_dash': _alpha_dash,
        'alpha_num': _alpha_num,
        'array': _array,
        'between': _between,
        'boolean': _boolean,
        'confirmed': _confirmed,
        'different': _different,
        'digits': _digits,
        'email': _email,
        'in': _in,
        'integer': _integer,
        'max': _max,
        'min': _min,
        'not_in': _not_in,
        'numeric': _numeric,
        'regex': _regex,
        'required': _required,
        'required_if': _required_if,
        'same': _same,
        'size': _size,
        'string': _string,
        'url': _url,
    }
    implicit = {'required', 'required_if', 'accepted'}
    return {
        name: Rule(name, check, MESSAGES[name], implicit=name in implicit)
        for name, check in checks.items()
    }


# ==================== Validation ====================

class Validation:
    """One validation run of a data map against a set of rules.

    Created by RuleEngine.make(). ``passes()`` / ``passes_async()`` fill
    ``errors``.
    """

    def __init__(
        self,
        engine: RuleEngine,
        data: Mapping[str, Any],
        rules: Mapping[str, RuleSpec],
    ) -> None:
        self.engine = engine
        self.data = dict(data)
        self.rules = {
            attribute: [parse_rule(rule) for rule in split_rules(spec)]
            for attribute, spec in rules.items()
        }
        self.attribute_names: dict[str, str] = {}
        self.errors = ErrorBag()

    def set_attribute_names(self, names: Mapping[str, str]) -> None:
        """Set display names used in messages instead of attribute paths."""
        self.attribute_names.update(names)

    def passes(self) -> bool:
        """Run the rules synchronously.

        Raises:
            RuleError: If a rule is unknown or asynchronous.
        """
        self.errors = ErrorBag()
        for attribute, rule, params, value in self._iter_checks():
            if rule.is_async:
                raise RuleError(
                    f"Rule '{rule.name}' is asynchronous, use passes_async()"
                )
            if not rule.check(value, params, attribute, self):
                self.errors.add(attribute, self.message(rule, attribute, params))
        return not self.errors

    def fails(self) -> bool:
        return not self.passes()

    async def passes_async(self) -> bool:
        """Run the rules, awaiting the asynchronous ones.

        Raises:
            RuleError: If a rule is unknown.
        """
        self.errors = ErrorBag()
        for attribute, rule, params, value in self._iter_checks():
            result = rule.check(value, params, attribute, self)
            if inspect.isawaitable(result):
                result = await result
            if not result:
                self.errors.add(attribute, self.message(rule, attribute, params))
        return not self.errors

    def _iter_checks(self):
        for attribute, rules in self.rules.items():
            value = self.data.get(attribute)
            for name, params in rules:
                rule = self.engine.get_rule(name)
                if not rule.implicit and _is_empty(value):
                    continue
                yield attribute, rule, params, value

    # ==================== Helpers for rules ====================

    def lookup(self, attribute: str, other: str) -> Any:
        """Value of another attribute: full path first, then sibling path."""
        if other in self.data:
            return self.data[other]
        parent = attribute.rpartition('.')[0]
        if parent:
            return self.data.get(f"{parent}.{other}")
        return None

    def rule_names(self, attribute: str) -> set[str]:
        return {name for name, _ in self.rules.get(attribute, [])}

    def _numeric_attribute(self, attribute: str) -> bool:
        return bool(self.rule_names(attribute) & {'numeric', 'integer'})

    def size_of(self, attribute: str, value: Any) -> float | None:
        """Measure a value: numbers by value, strings and lists by length."""
        if _is_number(value):
            return value
        if isinstance(value, str):
            if self._numeric_attribute(attribute) and _is_numeric(value):
                return float(value)
            return len(value)
        if isinstance(value, (list, tuple, dict)):
            return len(value)
        return None

    def _kind(self, attribute: str) -> str:
        value = self.data.get(attribute)
        if _is_number(value) or (self._numeric_attribute(attribute) and _is_numeric(value)):
            return 'numeric'
        if isinstance(value, (list, tuple)):
            return 'array'
        return 'string'

    def display_name(self, attribute: str) -> str:
        if attribute in self.attribute_names:
            return self.attribute_names[attribute]
        return attribute.rpartition('.')[2].replace('_', ' ')

    def message(self, rule: Rule, attribute: str, params: list[str]) -> str:
        template = self.engine.messages.get(rule.name, rule.message)
        if isinstance(template, dict):
            template = template.get(self._kind(attribute)) or next(iter(template.values()))
        text = template.replace(':attribute', self.display_name(attribute))
        for placeholder, param in zip(PARAM_NAMES.get(rule.name, ()), params):
            if placeholder in _ATTRIBUTE_PARAMS:
                param = self.display_name(param)
            text = text.replace(f':{placeholder}', param)
        return text


# ==================== Engine ====================

class RuleEngine:
    """Registry of rules and factory of Validation objects.

    Example:
        >>> engine = RuleEngine()
        >>> engine.register('even', lambda value, params, attribute: value % 2 == 0,
        ...                 'The :attribute must be even.')
        >>> engine.make({'n': 3}, {'n': 'even'}).passes()
        False
    """

    def __init__(self, messages: Mapping[str, str | dict[str, str]] | None = None) -> None:
        """Initialize a RuleEngine.

        Args:
            messages: Optional message templates replacing the built-in
                ones, keyed by rule name.
        """
        self._rules: dict[str, Rule] = _builtin_rules()
        self.messages: dict[str, str | dict[str, str]] = dict(messages or {})

    def __contains__(self, name: str) -> bool:
        return name in self._rules

    def get_rule(self, name: str) -> Rule:
        """Return the rule registered as ``name``.

        Raises:
            RuleError: If no such rule exists.
        """
        try:
            return self._rules[name]
        except KeyError:
            raise RuleError(f"Unknown validation rule '{name}'") from None

    def is_async(self, name: str) -> bool:
        rule = self._rules.get(name)
        return rule is not None and rule.is_async

    def register(
        self,
        name: str,
        check: Callable[[Any, list[str], str], bool],
        message: str | None = None,
    ) -> None:
        """Register a synchronous rule.

        Args:
            name: Rule name.
            check: ``check(value, params, attribute) -> bool``.
            message: Message template (``:attribute`` is replaced).
        """
        self._rules[name] = Rule(
            name,
            lambda value, params, attribute, validation: check(value, params, attribute),
            message or DEFAULT_MESSAGE,
        )

    def register_async(
        self,
        name: str,
        check: Callable[[Any, list[str], str], Any],
        message: str | None = None,
    ) -> None:
        """Register an asynchronous rule.

        Args:
            name: Rule name.
            check: ``check(value, params, attribute)`` returning a bool or
                an awaitable resolving to a bool (coroutine functions work).
            message: Message template (``:attribute`` is replaced).
        """
        self._rules[name] = Rule(
            name,
            lambda value, params, attribute, validation: check(value, params, attribute),
            message or DEFAULT_MESSAGE,
            is_async=True,
        )

    def make(self, data: Mapping[str, Any], rules: Mapping[str, RuleSpec]) -> Validation:
        """Create a Validation of ``data`` against ``rules``."""
        return Validation(self, data, rules)
