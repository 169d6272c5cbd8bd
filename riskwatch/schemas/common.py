"""Shared enums."""

from enum import StrEnum


class RiskLevel(StrEnum):
    GREEN = "Green"
    YELLOW = "Yellow"
    RED = "Red"

    @property
    def rank(self) -> int:
        return _RANK[self]


_RANK = {RiskLevel.GREEN: 0, RiskLevel.YELLOW: 1, RiskLevel.RED: 2}
