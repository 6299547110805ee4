# Copyright 2025 Softwell S.r.l. - Genropy Team
# SPDX-License-Identifier: Apache-2.0

"""Tests for the reactive cells (Cell, Computed, Reaction, batch)."""

import pytest

from genro_formtree import Cell, Computed, Reaction, action, autorun, batch, computed, untracked


class TestCell:
    """Tests for Cell."""

    def test_get_and_set(self):
        """Test reading and writing a cell."""
        cell = Cell(1)
        assert cell.get() == 1
        cell.set(2)
        assert cell.get() == 2
        assert cell.peek() == 2

    def test_default_value(self):
        """Test a cell defaults to None."""
        assert Cell().get() is None

    def test_equal_scalar_does_not_notify(self):
        """Test writing an equal scalar leaves dependents alone."""
        cell = Cell('a')
        seen = []
        dispose = autorun(lambda: seen.append(cell.get()))
        cell.set('a')
        assert seen == ['a']
        dispose()

    def test_new_list_notifies(self):
        """Test writing a different list object notifies."""
        cell = Cell([1])
        seen = []
        dispose = autorun(lambda: seen.append(cell.get()))
        cell.set([1])
        assert len(seen) == 2
        dispose()

    def test_bool_and_int_are_different(self):
        """Test True and 1 are not treated as the same value."""
        cell = Cell(1)
        seen = []
        dispose = autorun(lambda: seen.append(cell.get()))
        cell.set(True)
        assert seen == [1, True]
        dispose()

    def test_touch_notifies(self):
        """Test touch() notifies without changing the value."""
        items = [1]
        cell = Cell(items)
        seen = []
        dispose = autorun(lambda: seen.append(len(cell.get())))
        items.append(2)
        cell.touch()
        assert seen == [1, 2]
        dispose()

    def test_observed(self):
        """Test observed reflects tracked dependents."""
        cell = Cell(1)
        assert cell.observed is False
        dispose = autorun(lambda: cell.get())
        assert cell.observed is True
        dispose()
        assert cell.observed is False


class TestComputed:
    """Tests for Computed."""

    def test_lazy_and_cached(self):
        """Test a computed runs on first read and caches its value."""
        calls = []
        cell = Cell(2)

        def double():
            calls.append(1)
            return cell.get() * 2

        value = Computed(double)
        assert calls == []
        assert value.get() == 4
        assert value.get() == 4
        assert len(calls) == 1

    def test_recomputes_after_change(self):
        """Test a computed recomputes after a source changed."""
        cell = Cell(2)
        value = Computed(lambda: cell.get() * 2)
        assert value.get() == 4
        cell.set(5)
        assert value.get() == 10

    def test_chained(self):
        """Test computeds depending on computeds."""
        cell = Cell(1)
        plus_one = Computed(lambda: cell.get() + 1)
        times_ten = Computed(lambda: plus_one.get() * 10)
        assert times_ten.get() == 20
        cell.set(4)
        assert times_ten.get() == 50

    def test_dynamic_dependencies(self):
        """Test dependencies are rebuilt on every run."""
        switch = Cell(True)
        left = Cell('L')
        right = Cell('R')
        value = Computed(lambda: left.get() if switch.get() else right.get())
        assert value.get() == 'L'
        switch.set(False)
        assert value.get() == 'R'
        assert left.observed is False


class TestReaction:
    """Tests for Reaction and autorun."""

    def test_autorun_batch(self):
        """Test a batch delivers several writes in one run."""
        first = Cell('Ada')
        last = Cell('Lovelace')
        full = Computed(lambda: f"{first.get()} {last.get()}")
        seen = []
        dispose = autorun(lambda: seen.append(full.get()))
        with batch():
            first.set('Grace')
            last.set('Hopper')
        assert seen == ['Ada Lovelace', 'Grace Hopper']
        dispose()

    def test_dispose_stops_reacting(self):
        """Test a disposed reaction no longer runs."""
        cell = Cell(0)
        seen = []
        reaction = Reaction(lambda: seen.append(cell.get()))
        reaction.run()
        reaction.dispose()
        assert reaction.disposed is True
        cell.set(1)
        assert seen == [0]

    def test_nested_batches_flush_once(self):
        """Test only the outermost batch flushes."""
        cell = Cell(0)
        seen = []
        dispose = autorun(lambda: seen.append(cell.get()))
        with batch():
            cell.set(1)
            with batch():
                cell.set(2)
            assert seen == [0]
        assert seen == [0, 2]
        dispose()

    def test_action_batches(self):
        """Test the action decorator wraps calls in a batch."""
        a = Cell(0)
        b = Cell(0)
        seen = []
        dispose = autorun(lambda: seen.append(a.get() + b.get()))

        @action
        def write():
            a.set(1)
            b.set(2)
            return 'done'

        assert write() == 'done'
        assert seen == [0, 3]
        dispose()

    def test_untracked_reads(self):
        """Test untracked reads do not become dependencies."""
        tracked = Cell(1)
        hidden = Cell(1)
        seen = []

        def effect():
            with untracked():
                extra = hidden.get()
            seen.append(tracked.get() + extra)

        dispose = autorun(effect)
        hidden.set(5)
        assert seen == [2]
        tracked.set(2)
        assert seen == [2, 7]
        dispose()

    def test_cycle_detected(self):
        """Test a reaction writing its own source is stopped."""
        cell = Cell(0)
        with pytest.raises(RuntimeError, match="cycle"):
            autorun(lambda: cell.set(cell.get() + 1))


class TestComputedDescriptor:
    """Tests for the computed descriptor."""

    def _make(self):
        class Item:
            def __init__(self):
                self._computeds = {}
                self._price = Cell(10)

            @computed
            def doubled(self):
                """Twice the price."""
                return self._price.get() * 2

        return Item

    def test_per_instance(self):
        """Test each instance gets its own computed."""
        item_class = self._make()
        first, second = item_class(), item_class()
        second._price.set(1)
        assert first.doubled == 20
        assert second.doubled == 2

    def test_follows_changes(self):
        """Test the property follows its cells."""
        item = self._make()()
        assert item.doubled == 20
        item._price.set(3)
        assert item.doubled == 6

    def test_read_only(self):
        """Test assigning a computed without setter raises."""
        item = self._make()()
        with pytest.raises(AttributeError):
            item.doubled = 5

    def test_class_access_and_doc(self):
        """Test class access returns the descriptor with its docstring."""
        item_class = self._make()
        assert isinstance(item_class.doubled, computed)
        assert item_class.doubled.__doc__ == 'Twice the price.'
