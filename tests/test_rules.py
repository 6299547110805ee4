# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""Tests for the rule engine."""

import pytest

from genro_formtree import RuleEngine, RuleError
from genro_formtree.validation import ErrorBag, parse_rule, split_rules


def check(data, rules):
    validation = RuleEngine().make(data, rules)
    validation.passes()
    return validation


class TestRuleParsing:
    """Tests for rule spec parsing."""

    def test_split_string(self):
        """Test splitting a pipe-delimited spec."""
        assert split_rules('required|min:3') == ['required', 'min:3']

    def test_split_list(self):
        """Test a list spec is stripped and filtered."""
        assert split_rules(['required', ' min:3 ', '']) == ['required', 'min:3']

    def test_split_none(self):
        """Test a missing spec has no rules."""
        assert split_rules(None) == []

    def test_parse_params(self):
        """Test rule parameters are comma-separated."""
        assert parse_rule('between:1, 10') == ('between', ['1', '10'])
        assert parse_rule('required') == ('required', [])

    def test_parse_regex_keeps_pattern(self):
        """Test regex patterns are not split on commas."""
        assert parse_rule('regex:/^a{1,3}$/') == ('regex', ['/^a{1,3}$/'])


class TestErrorBag:
    """Tests for ErrorBag."""

    def test_collects_messages(self):
        """Test messages are grouped by attribute."""
        bag = ErrorBag()
        assert not bag
        bag.add('a', 'first')
        bag.add('a', 'second')
        assert bag
        assert len(bag) == 2
        assert 'a' in bag
        assert bag.first('a') == 'first'
        assert bag.get('a') == ['first', 'second']
        assert bag.first('b') is None
        assert bag.all() == {'a': ['first', 'second']}


class TestBuiltinRules:
    """Tests for the built-in rules and their messages."""

    def test_required(self):
        """Test required fails on blank values."""
        validation = check({'name': '  '}, {'name': 'required'})
        assert validation.errors.first('name') == 'The name field is required.'

    def test_min_string(self):
        """Test min on strings counts characters."""
        validation = check({'user.name': 'ab'}, {'user.name': 'required|min:3'})
        assert validation.errors.first('user.name') == 'The name must be at least 3 characters.'

    def test_min_numeric_string(self):
        """Test numeric strings are sized as numbers under 'numeric'."""
        validation = check({'n': '5'}, {'n': 'numeric|min:10'})
        assert validation.errors.first('n') == 'The n must be at least 10.'

    def test_min_array(self):
        """Test min on lists counts items."""
        validation = check({'tags': ['a']}, {'tags': 'min:2'})
        assert validation.errors.first('tags') == 'The tags must have at least 2 items.'

    def test_max(self):
        """Test max on numbers."""
        assert check({'n': 5}, {'n': 'max:5'}).errors.first('n') is None
        assert check({'n': 6}, {'n': 'max:5'}).errors.first('n') == (
            'The n may not be greater than 5.'
        )

    def test_between(self):
        """Test between on numbers."""
        validation = check({'age': 15}, {'age': 'between:18,65'})
        assert validation.errors.first('age') == 'The age field must be between 18 and 65.'
        assert not check({'age': 30}, {'age': 'between:18,65'}).errors

    def test_size(self):
        """Test size on strings."""
        assert not check({'code': 'abc'}, {'code': 'size:3'}).errors
        assert check({'code': 'ab'}, {'code': 'size:3'}).errors

    def test_email_and_url(self):
        """Test email and url formats."""
        assert not check({'e': 'ada@example.com'}, {'e': 'email'}).errors
        assert check({'e': 'ada@'}, {'e': 'email'}).errors.first('e') == (
            'The e format is invalid.'
        )
        assert not check({'u': 'https://example.com/x'}, {'u': 'url'}).errors
        assert check({'u': 'example'}, {'u': 'url'}).errors

    def test_in_and_not_in(self):
        """Test membership rules."""
        assert not check({'c': 'red'}, {'c': 'in:red,green'}).errors
        assert check({'c': 'blue'}, {'c': 'in:red,green'}).errors.first('c') == (
            'The selected c is invalid.'
        )
        assert check({'c': 'red'}, {'c': 'not_in:red'}).errors

    def test_integer_and_numeric(self):
        """Test integer and numeric rules."""
        assert not check({'n': '12'}, {'n': 'integer'}).errors
        assert check({'n': '1.5'}, {'n': 'integer'}).errors
        assert not check({'n': '1.5'}, {'n': 'numeric'}).errors
        assert check({'n': True}, {'n': 'integer'}).errors

    def test_alpha_family(self):
        """Test alpha, alpha_num and alpha_dash."""
        assert not check({'a': 'abc'}, {'a': 'alpha'}).errors
        assert check({'a': 'ab1'}, {'a': 'alpha'}).errors
        assert not check({'a': 'ab1'}, {'a': 'alpha_num'}).errors
        assert not check({'a': 'a-b_1'}, {'a': 'alpha_dash'}).errors
        assert check({'a': 'a b'}, {'a': 'alpha_dash'}).errors

    def test_digits(self):
        """Test digits requires an exact digit count."""
        assert not check({'zip': '20100'}, {'zip': 'digits:5'}).errors
        assert check({'zip': '2010'}, {'zip': 'digits:5'}).errors.first('zip') == (
            'The zip must be 5 digits.'
        )

    def test_regex(self):
        """Test regex with flags."""
        assert not check({'s': 'ABC'}, {'s': 'regex:/^[a-z]+$/i'}).errors
        assert check({'s': 'ABC'}, {'s': 'regex:/^[a-z]+$/'}).errors

    def test_confirmed(self):
        """Test confirmed looks up the _confirmation attribute."""
        data = {'password': 'a', 'password_confirmation': 'b'}
        validation = check(data, {'password': 'confirmed'})
        assert validation.errors.first('password') == (
            'The password confirmation does not match.'
        )

    def test_same_sibling_lookup(self):
        """Test same resolves a sibling path."""
        data = {'user.pw': 'x', 'user.pw2': 'x'}
        assert not check(data, {'user.pw2': 'same:pw'}).errors
        data['user.pw2'] = 'y'
        assert check(data, {'user.pw2': 'same:pw'}).errors.first('user.pw2') == (
            'The pw2 and pw fields must match.'
        )

    def test_different(self):
        """Test different fails on equal values."""
        assert check({'a': 1, 'b': 1}, {'b': 'different:a'}).errors

    def test_required_if(self):
        """Test required_if depends on the other attribute."""
        rules = {'vat': 'required_if:kind,company'}
        assert check({'kind': 'company', 'vat': ''}, rules).errors.first('vat') == (
            'The vat field is required when kind is company.'
        )
        assert not check({'kind': 'person', 'vat': ''}, rules).errors

    def test_accepted_and_boolean(self):
        """Test accepted and boolean."""
        assert not check({'t': True}, {'t': 'accepted'}).errors
        assert check({'t': False}, {'t': 'accepted'}).errors
        assert not check({'b': False}, {'b': 'boolean'}).errors
        assert check({'b': 'maybe'}, {'b': 'boolean'}).errors

    def test_array_and_string(self):
        """Test type rules."""
        assert not check({'l': ['x']}, {'l': 'array'}).errors
        assert check({'s': 5}, {'s': 'string'}).errors

    def test_empty_skips_non_implicit(self):
        """Test non-implicit rules do not run on empty values."""
        assert not check({'e': ''}, {'e': 'email|min:3'}).errors


class TestRuleEngine:
    """Tests for RuleEngine registration and messages."""

    def test_unknown_rule_raises(self):
        """Test unknown rules raise RuleError."""
        with pytest.raises(RuleError, match="Unknown validation rule 'bogus'"):
            RuleEngine().make({'a': 'x'}, {'a': 'bogus'}).passes()

    def test_register(self):
        """Test registering a custom synchronous rule."""
        engine = RuleEngine()
        engine.register('even', lambda value, params, attribute: value % 2 == 0,
                        'The :attribute must be even.')
        assert 'even' in engine
        validation = engine.make({'n': 3}, {'n': 'even'})
        assert validation.fails()
        assert validation.errors.first('n') == 'The n must be even.'

    def test_custom_messages(self):
        """Test message templates can be replaced."""
        engine = RuleEngine(messages={'required': 'Please fill :attribute.'})
        validation = engine.make({'city': ''}, {'city': 'required'})
        validation.passes()
        assert validation.errors.first('city') == 'Please fill city.'

    def test_attribute_names(self):
        """Test display names replace attribute paths in messages."""
        validation = RuleEngine().make({'user.email': ''}, {'user.email': 'required'})
        validation.set_attribute_names({'user.email': 'E-mail'})
        validation.passes()
        assert validation.errors.first('user.email') == 'The E-mail field is required.'

    def test_underscores_in_display_name(self):
        """Test underscores become spaces in default display names."""
        validation = check({'first_name': ''}, {'first_name': 'required'})
        assert validation.errors.first('first_name') == 'The first name field is required.'

    def test_async_rule_needs_passes_async(self):
        """Test async rules refuse the synchronous check."""
        engine = RuleEngine()

        async def available(value, params, attribute):
            return True

        engine.register_async('available', available)
        assert engine.is_async('available')
        with pytest.raises(RuleError, match="asynchronous"):
            engine.make({'u': 'x'}, {'u': 'available'}).passes()

    @pytest.mark.asyncio
    async def test_passes_async(self):
        """Test passes_async awaits async rules and runs sync ones."""
        engine = RuleEngine()

        async def available(value, params, attribute):
            return value not in params

        engine.register_async('available', available, 'The :attribute is taken.')
        validation = engine.make({'u': 'ada'}, {'u': 'required|available:ada,bob'})
        assert await validation.passes_async() is False
        assert validation.errors.first('u') == 'The u is taken.'

        validation = engine.make({'u': 'eve'}, {'u': 'available:ada,bob'})
        assert await validation.passes_async() is True
