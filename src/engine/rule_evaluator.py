"""
Rule evaluation.

Evaluates ordered condition-node lists against indicator values at a bar.
AND binds tighter than OR: the list is split at every OR join into AND
groups, and the rule holds when any group holds entirely.
"""

from collections.abc import Sequence
from typing import assert_never

from src.core.constants import EQUALITY_TOLERANCE
from src.core.enums import Comparator, CrossDirection, JoinOperator
from src.core.models.strategy import (
    ComparisonCondition,
    Condition,
    ConditionNode,
    CrossoverCondition,
    IndicatorRef,
    Operand,
)
from src.infrastructure.data.technical_indicators import IndicatorEvaluator


def compare(left: float, comparator: Comparator, right: float) -> bool:
    """Apply a point-in-time comparator."""
    match comparator:
        case Comparator.GT:
            return left > right
        case Comparator.LT:
            return left < right
        case Comparator.GE:
            return left >= right
        case Comparator.LE:
            return left <= right
        case Comparator.EQ:
            return abs(left - right) < EQUALITY_TOLERANCE
        case _:
            assert_never(comparator)


def split_and_groups(nodes: Sequence[ConditionNode]) -> list[list[ConditionNode]]:
    """Split a node list into AND groups at every OR join."""
    groups: list[list[ConditionNode]] = []
    for position, node in enumerate(nodes):
        if position == 0 or node.join == JoinOperator.OR:
            groups.append([node])
        else:
            groups[-1].append(node)
    return groups


class RuleEvaluator:
    """Evaluates strategy rules bar by bar.

    Evaluation is pure: it only reads indicator values, so evaluating the
    same rule at the same bar twice gives the same answer.
    """

    def __init__(self, indicators: IndicatorEvaluator) -> None:
        self.indicators = indicators

    def evaluate(self, nodes: Sequence[ConditionNode], index: int) -> bool:
        """Evaluate a rule at bar ``index``; an empty rule is false."""
        if not nodes:
            return False
        return any(
            all(self.evaluate_condition(node.condition, index) for node in group)
            for group in split_and_groups(nodes)
        )

    def snapshot(self, refs: Sequence[IndicatorRef], index: int) -> dict[str, float | None]:
        """Values of ``refs`` at bar ``index`` keyed by label."""
        return {ref.label: self.indicators.value_at(ref, index) for ref in refs}

    def evaluate_condition(self, condition: Condition, index: int) -> bool:
        """Evaluate one condition; any undefined operand makes it false."""
        match condition:
            case ComparisonCondition(left=left, comparator=comparator, right=right):
                left_value = self._resolve(left, index)
                right_value = self._resolve(right, index)
                if left_value is None or right_value is None:
                    return False
                return compare(left_value, comparator, right_value)
            case CrossoverCondition(left=left, direction=direction, right=right):
                return self._crossed(left, direction, right, index)
            case _:
                assert_never(condition)

    def _crossed(
        self, left: IndicatorRef, direction: CrossDirection, right: Operand, index: int
    ) -> bool:
        """Check a crossover between the previous and the current bar."""
        if index < 1:
            return False

        values = (
            self._resolve(left, index - 1),
            self._resolve(right, index - 1),
            self._resolve(left, index),
            self._resolve(right, index),
        )
        if any(value is None for value in values):
            return False
        prev_left, prev_right, current_left, current_right = values

        match direction:
            case CrossDirection.ABOVE:
                return prev_left <= prev_right and current_left > current_right
            case CrossDirection.BELOW:
                return prev_left >= prev_right and current_left < current_right
            case _:
                assert_never(direction)

    def _resolve(self, operand: Operand, index: int) -> float | None:
        if isinstance(operand, IndicatorRef):
            return self.indicators.value_at(operand, index)
        return operand
