"""Typed representations of subscription caps and admission decisions."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from ..errors import CapExceeded


@dataclass(frozen=True)
class TierCaps:
    """Numeric ceilings drawn from the account's subscription product."""

    max_properties: int
    max_contacts: int
    max_viewers: int
    max_team_members: int

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "TierCaps":
        return cls(
            max_properties=int(row["max_properties"]),
            max_contacts=int(row["max_contacts"]),
            max_viewers=int(row["max_viewers"]),
            max_team_members=int(row["max_team_members"]),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "maxProperties": self.max_properties,
            "maxContacts": self.max_contacts,
            "maxViewers": self.max_viewers,
            "maxTeamMembers": self.max_team_members,
        }


DEFAULT_CAPS = TierCaps(
    max_properties=3,
    max_contacts=50,
    max_viewers=5,
    max_team_members=10,
)


@dataclass(frozen=True)
class AdmissionResult:
    """Outcome of a cap check. At the cap, further adds are denied."""

    current: int
    max: int

    @property
    def allowed(self) -> bool:
        return self.current < self.max

    def to_dict(self) -> dict[str, int | bool]:
        return {"allowed": self.allowed, "current": self.current, "max": self.max}

    def require(self, label: str) -> "AdmissionResult":
        """Raise :class:`CapExceeded` when the check denies admission."""

        if not self.allowed:
            raise CapExceeded(
                f"{label} limit reached ({self.current}/{self.max}). Upgrade your plan.",
                detail={"current": self.current, "max": self.max},
            )
        return self
