"""
Tests for stability predicates
"""

import logging

from label_counts.stability import has_terminal_label, non_empty, predicate_from_names


class TestNonEmpty:

    def test_empty_label_list_is_not_stable(self):
        assert non_empty([]) is False

    def test_any_non_empty_label_list_is_stable(self):
        assert non_empty(['INBOX']) is True
        assert non_empty(['L_A', 'UNREAD']) is True


class TestTerminalLabels:

    def test_thread_with_terminal_label_is_stable(self):
        is_stable = has_terminal_label(['L_P', 'L_Q'])
        assert is_stable(['INBOX', 'L_Q']) is True

    def test_thread_without_terminal_label_is_not_stable(self):
        is_stable = has_terminal_label(['L_P', 'L_Q'])
        assert is_stable(['INBOX', 'L_A']) is False
        assert is_stable([]) is False

    def test_predicate_from_names_resolves_ids(self, directory):
        is_stable = predicate_from_names(['=P', '=Q'], directory)

        assert is_stable(['INBOX', 'L_P']) is True
        assert is_stable(['INBOX', 'L_A']) is False

    def test_predicate_from_names_ignores_unknown_names(self, directory, caplog):
        with caplog.at_level(logging.WARNING):
            is_stable = predicate_from_names(['=P', '=IT'], directory)

        assert is_stable(['L_P']) is True
        assert "'=IT'" in caplog.text
