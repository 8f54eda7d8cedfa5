"""
Stability predicates - decide whether a cached label set can be trusted
without fetching the thread again
"""

import logging
from typing import TYPE_CHECKING, Callable, Iterable, Sequence

if TYPE_CHECKING:
    from label_counts.models import LabelDirectory


logger = logging.getLogger(__name__)

StabilityPredicate = Callable[[Sequence[str]], bool]


def non_empty(label_ids: Sequence[str]) -> bool:
    """Default predicate: any non-empty cached label set is trusted"""
    return len(label_ids) > 0


def has_terminal_label(terminal_ids: Iterable[str]) -> StabilityPredicate:
    """Predicate trusting only threads that carry one of the given (triaged) label ids"""
    terminal = frozenset(terminal_ids)

    def is_stable(label_ids: Sequence[str]) -> bool:
        return any(label_id in terminal for label_id in label_ids)

    return is_stable


def predicate_from_names(names: Iterable[str], directory: 'LabelDirectory') -> StabilityPredicate:
    """Resolve label names to ids and build a terminal-label predicate

    Names the account does not know are logged and ignored.
    """
    terminal_ids = []
    for name in names:
        label_id = directory.id_for(name)
        if label_id is None:
            logger.warning(f"Stable label '{name}' does not exist in this account, ignoring it")
            continue
        terminal_ids.append(label_id)

    logger.info(f"Treating threads labelled {sorted(terminal_ids)} as stable")
    return has_terminal_label(terminal_ids)
