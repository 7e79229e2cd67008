from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class RoleInfo:
    id: str
    name: str
    position: int
    managed: bool = False


@dataclass(frozen=True, slots=True)
class MemberSnapshot:
    id: str
    is_bot: bool
    role_ids: frozenset[str]
    display_name: str = ""


@dataclass(frozen=True, slots=True)
class GuildSnapshot:
    guild_id: str
    members: tuple[MemberSnapshot, ...]
    roles: Mapping[str, RoleInfo]
    fetched_at: datetime


@dataclass(frozen=True, slots=True)
class ResolutionPolicy:
    """Which roles are passed over when the highest role is the ignored one."""

    skip_ignored: bool = True
    skip_managed: bool = True


DEFAULT_POLICY = ResolutionPolicy()


@dataclass(frozen=True, slots=True)
class RoleCount:
    role_id: str
    name: str
    count: int
    percentage: float


@dataclass(frozen=True, slots=True)
class AggregationResult:
    total_members: int
    unverified_members: int
    per_role: tuple[RoleCount, ...] = ()
    skipped_role_ids: tuple[str, ...] = ()
    unaccounted_member_ids: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return self.total_members == 0

    @property
    def counted_members(self) -> int:
        return sum(r.count for r in self.per_role)

    @property
    def unaccounted_members(self) -> int:
        return len(self.unaccounted_member_ids)

    @property
    def unverified_percentage(self) -> float:
        if self.total_members == 0:
            return 0.0
        return (self.unverified_members / self.total_members) * 100

    def reconciles(self) -> bool:
        accounted = self.unverified_members + self.counted_members + self.unaccounted_members
        return accounted == self.total_members
