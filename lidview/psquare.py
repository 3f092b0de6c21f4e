"""Streaming quantile estimation with the P-square algorithm."""

from __future__ import annotations

_MARKERS = 5


class PSquare:
    """Estimate one quantile of a data stream without storing the stream.

    Five markers track the minimum, the maximum and three heights around
    the requested quantile. Until five values have been seen the estimate
    is 0.0.
    """

    def __init__(self, quantile: float) -> None:
        self._q = float(quantile)
        self._count = 0
        self._initial: list[float] = []
        self._positions = list(range(1, _MARKERS + 1))
        self._desired = [1 + 2 * i * self._q for i in range(_MARKERS)]
        self._increments = [self._q] * _MARKERS
        self._heights = [0.0] * _MARKERS

    @property
    def count(self) -> int:
        """Number of values seen so far."""
        return self._count

    def add(self, x: float) -> None:
        """Feed one value to the estimator."""
        x = float(x)
        if self._count < _MARKERS:
            self._initial.append(x)
            self._count += 1
            if self._count == _MARKERS:
                self._heights = sorted(self._initial)
            return

        self._count += 1
        heights = self._heights
        positions = self._positions

        if x < heights[0]:
            k = 0
            heights[0] = x
        elif x >= heights[4]:
            k = 3
            heights[4] = x
        else:
            k = next((j for j in range(1, 4) if x < heights[j]), 4) - 1

        for i in range(k + 1, _MARKERS):
            positions[i] += 1

        self._desired = [d + inc for d, inc in zip(self._desired, self._increments)]

        for i in range(1, 4):
            d = self._desired[i] - positions[i]
            right_gap = positions[i + 1] - positions[i]
            left_gap = positions[i - 1] - positions[i]
            if not ((d >= 1 and right_gap > 1) or (d <= -1 and left_gap < -1)):
                continue

            step = 1 if d >= 1 else -1
            parabolic = heights[i] + step / (positions[i + 1] - positions[i - 1]) * (
                (positions[i] - positions[i - 1] + step)
                * (heights[i + 1] - heights[i])
                / (positions[i + 1] - positions[i])
                + (positions[i + 1] - positions[i] - step)
                * (heights[i] - heights[i - 1])
                / (positions[i] - positions[i - 1])
            )

            if heights[i - 1] < parabolic < heights[i + 1]:
                heights[i] = parabolic
            else:
                heights[i] = heights[i] + step * (heights[i + step] - heights[i]) / (
                    positions[i + step] - positions[i]
                )
            positions[i] += step

    def quantile(self) -> float:
        """Current estimate of the quantile."""
        return self._heights[2]