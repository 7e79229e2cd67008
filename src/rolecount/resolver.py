from __future__ import annotations

from collections.abc import Iterable, Mapping

from rolecount.models import DEFAULT_POLICY, MemberSnapshot, ResolutionPolicy, RoleInfo


def _id_key(role_id: str) -> tuple[int, int, str]:
    if role_id.isdigit():
        return (0, int(role_id), "")
    return (1, 0, role_id)


def _rank_key(role: RoleInfo) -> tuple[int, tuple[int, int, str]]:
    # Highest position first; equal positions fall back to the lowest id.
    return (-role.position, _id_key(role.id))


def highest_role(candidates: Iterable[RoleInfo]) -> RoleInfo | None:
    return min(candidates, key=_rank_key, default=None)


def resolve_effective_role(
    member: MemberSnapshot,
    roles: Mapping[str, RoleInfo],
    ignored_role_id: str | None,
    policy: ResolutionPolicy = DEFAULT_POLICY,
) -> RoleInfo | None:
    """Return the role credited to ``member`` for counting.

    This is normally the member's highest role. When that role is the ignored
    role the next highest role is credited instead, leaving out managed roles
    if the policy asks for it. Role ids missing from ``roles`` are disregarded.
    """
    member_roles = [roles[rid] for rid in member.role_ids if rid in roles]
    top = highest_role(member_roles)
    if top is None:
        return None

    if not ignored_role_id or not policy.skip_ignored or top.id != ignored_role_id:
        return top

    remaining = [
        r
        for r in member_roles
        if r.id != ignored_role_id and not (policy.skip_managed and r.managed)
    ]
    return highest_role(remaining)


def resolve_effective_role_id(
    member: MemberSnapshot,
    roles: Mapping[str, RoleInfo],
    ignored_role_id: str | None,
    policy: ResolutionPolicy = DEFAULT_POLICY,
) -> str | None:
    role = resolve_effective_role(member, roles, ignored_role_id, policy)
    return role.id if role is not None else None
