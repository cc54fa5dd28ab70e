"""
Grant ledger data model.

OptionPool holds the company-wide counters, GrantRecord holds one
beneficiary's grant and schedule, and BeneficiaryRegistry remembers the
order in which beneficiaries were granted so the vesting sweep can walk
them deterministically.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Iterator, List


@dataclass
class OptionPool:
    """Remaining ungranted allocation and cumulative vested total."""

    total_options: int
    total_vested: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"total_options": self.total_options, "total_vested": self.total_vested}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OptionPool":
        return cls(
            total_options=int(data["total_options"]),
            total_vested=int(data.get("total_vested", 0)),
        )


@dataclass
class GrantRecord:
    """
    One beneficiary's grant.

    ``start_time`` is None until a schedule is assigned and never changes
    afterwards. In single-exercise mode ``vested_options`` also absorbs the
    exercised amount; ``exercised_options`` always tracks exercises alone.
    """

    beneficiary: str
    options_granted: int
    vesting_period: int = 0
    cliff_period: int = 0
    start_time: int | None = None
    vested_options: int = 0
    exercised_options: int = 0
    exercised: bool = False

    @property
    def has_schedule(self) -> bool:
        return self.start_time is not None

    @property
    def cliff_end(self) -> int | None:
        if not self.has_schedule:
            return None
        return self.start_time + self.cliff_period

    @property
    def vesting_end(self) -> int | None:
        if not self.has_schedule:
            return None
        return self.start_time + self.cliff_period + self.vesting_period

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GrantRecord":
        start_time = data.get("start_time")
        return cls(
            beneficiary=data["beneficiary"],
            options_granted=int(data["options_granted"]),
            vesting_period=int(data.get("vesting_period", 0)),
            cliff_period=int(data.get("cliff_period", 0)),
            start_time=None if start_time is None else int(start_time),
            vested_options=int(data.get("vested_options", 0)),
            exercised_options=int(data.get("exercised_options", 0)),
            exercised=bool(data.get("exercised", False)),
        )


@dataclass
class BeneficiaryRegistry:
    """
    Ordered list of granted beneficiaries (duplicates kept).

    Grants only append; entries are removed only when a failed operation
    is rolled back.
    """

    entries: List[str] = field(default_factory=list)

    def append(self, beneficiary: str) -> None:
        self.entries.append(beneficiary)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self.entries))

    def __len__(self) -> int:
        return len(self.entries)

    def truncate(self, length: int) -> None:
        """Drop entries appended after the registry had ``length`` entries."""
        del self.entries[length:]
