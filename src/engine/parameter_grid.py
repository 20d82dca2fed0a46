"""
Parameter grid generation for walk-forward training searches.
"""

import itertools
import math
from collections.abc import Iterator, Sequence

from loguru import logger

from src.core.constants import MAX_PARAMETER_COMBINATIONS
from src.core.exceptions.backtest import ValidationError
from src.core.models.optimization import ParameterRange

_RANGE_EPSILON = 1e-9
_VALUE_DECIMALS = 10


def range_values(parameter: ParameterRange) -> list[float]:
    """Values ``min + k * step`` up to and including ``max``.

    Integral ranges yield ints so bar-count parameters stay whole numbers.

    Raises:
        ValidationError: If the step is not positive or min exceeds max
    """
    if not parameter.is_valid():
        raise ValidationError(
            f"Invalid range for {parameter.name!r}: min={parameter.min_value} "
            f"max={parameter.max_value} step={parameter.step}"
        )

    span = parameter.max_value - parameter.min_value
    count = math.floor(span / parameter.step + _RANGE_EPSILON)
    values = [
        round(parameter.min_value + k * parameter.step, _VALUE_DECIMALS) for k in range(count + 1)
    ]
    if parameter.is_integral:
        return [int(value) for value in values]
    return values


class ParameterGrid:
    """Cartesian product of parameter ranges, first range outermost.

    The product is capped at ``max_combinations``; ``truncated`` reports
    whether combinations were dropped.
    """

    def __init__(
        self,
        ranges: Sequence[ParameterRange],
        max_combinations: int = MAX_PARAMETER_COMBINATIONS,
    ) -> None:
        if max_combinations < 1:
            raise ValidationError(f"max_combinations must be at least 1, got {max_combinations}")

        names = [parameter.name for parameter in ranges]
        if len(names) != len(set(names)):
            raise ValidationError(f"Duplicate parameter names in ranges: {names}")

        self.ranges = list(ranges)
        self.max_combinations = max_combinations
        self._values = [range_values(parameter) for parameter in self.ranges]
        self.total_combinations = math.prod(len(values) for values in self._values)
        self.truncated = self.total_combinations > max_combinations

        if self.truncated:
            logger.warning(
                f"Parameter grid has {self.total_combinations} combinations; "
                f"truncating to the first {max_combinations}"
            )

    @property
    def names(self) -> list[str]:
        return [parameter.name for parameter in self.ranges]

    def __len__(self) -> int:
        return min(self.total_combinations, self.max_combinations)

    def __iter__(self) -> Iterator[dict[str, float]]:
        """Yield combinations in generation order; no ranges yield one empty combination."""
        product = itertools.product(*self._values)
        for combination in itertools.islice(product, self.max_combinations):
            yield dict(zip(self.names, combination, strict=True))

    def combinations(self) -> list[dict[str, float]]:
        return list(self)
