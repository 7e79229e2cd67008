from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from rolecount.models import (
    DEFAULT_POLICY,
    AggregationResult,
    MemberSnapshot,
    ResolutionPolicy,
    RoleCount,
    RoleInfo,
)
from rolecount.resolver import resolve_effective_role_id


def percentage(count: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return (count / total) * 100


def is_verified(member: MemberSnapshot, verified_role_id: str | None) -> bool:
    # No verified role configured means verification is switched off.
    if not verified_role_id:
        return True
    return verified_role_id in member.role_ids


def aggregate(
    members: Iterable[MemberSnapshot],
    roles: Mapping[str, RoleInfo],
    tracked_role_ids: Sequence[str],
    ignored_role_id: str | None,
    verified_role_id: str | None,
    policy: ResolutionPolicy = DEFAULT_POLICY,
) -> AggregationResult:
    """Count non-bot members by verification status and effective role.

    Only verified members are credited to a tracked role, and each member to
    at most one of them. Tracked ids missing from ``roles`` are reported in
    ``skipped_role_ids`` instead of ``per_role``.
    """
    humans = list({m.id: m for m in members if not m.is_bot}.values())
    total = len(humans)

    unverified = 0
    effective: dict[str, str | None] = {}
    for member in humans:
        if not is_verified(member, verified_role_id):
            unverified += 1
            continue
        effective[member.id] = resolve_effective_role_id(member, roles, ignored_role_id, policy)

    claimed: set[str] = set()
    per_role: list[RoleCount] = []
    skipped: list[str] = []
    for role_id in tracked_role_ids:
        role = roles.get(role_id)
        if role is None:
            skipped.append(role_id)
            continue

        count = 0
        for member_id, effective_id in effective.items():
            if effective_id != role_id or member_id in claimed:
                continue
            claimed.add(member_id)
            count += 1
        per_role.append(
            RoleCount(
                role_id=role.id,
                name=role.name,
                count=count,
                percentage=percentage(count, total),
            )
        )

    unaccounted = tuple(mid for mid in effective if mid not in claimed)
    return AggregationResult(
        total_members=total,
        unverified_members=unverified,
        per_role=tuple(per_role),
        skipped_role_ids=tuple(skipped),
        unaccounted_member_ids=unaccounted,
    )
