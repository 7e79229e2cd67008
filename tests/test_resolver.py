from rolecount.models import MemberSnapshot, ResolutionPolicy, RoleInfo
from rolecount.resolver import highest_role, resolve_effective_role, resolve_effective_role_id

ROLES = {
    "10": RoleInfo(id="10", name="Admin", position=10),
    "5": RoleInfo(id="5", name="Holder", position=5),
    "3": RoleInfo(id="3", name="Member", position=3),
    "99": RoleInfo(id="99", name="Ignored", position=20),
    "77": RoleInfo(id="77", name="Helper Bot", position=8, managed=True),
}


def _member(*role_ids: str) -> MemberSnapshot:
    return MemberSnapshot(id="1", is_bot=False, role_ids=frozenset(role_ids))


def test_no_roles_resolves_to_none() -> None:
    assert resolve_effective_role(_member(), ROLES, "99") is None


def test_highest_position_wins() -> None:
    role = resolve_effective_role(_member("3", "10", "5"), ROLES, "99")
    assert role is not None and role.name == "Admin"


def test_ignored_role_falls_through_to_next_highest() -> None:
    roles = {
        "a": RoleInfo(id="a", name="A", position=5),
        "ign": RoleInfo(id="ign", name="Ignored", position=10),
        "b": RoleInfo(id="b", name="B", position=3),
    }
    member = MemberSnapshot(id="1", is_bot=False, role_ids=frozenset({"a", "ign", "b"}))
    assert resolve_effective_role_id(member, roles, "ign") == "a"


def test_ignored_role_as_only_role_resolves_to_none() -> None:
    assert resolve_effective_role(_member("99"), ROLES, "99") is None


def test_managed_role_skipped_after_ignored_role() -> None:
    member = _member("99", "77", "5")
    assert resolve_effective_role_id(member, ROLES, "99") == "5"


def test_managed_role_kept_when_policy_allows_it() -> None:
    member = _member("99", "77", "5")
    policy = ResolutionPolicy(skip_ignored=True, skip_managed=False)
    assert resolve_effective_role_id(member, ROLES, "99", policy) == "77"


def test_managed_role_counts_when_it_is_the_plain_highest() -> None:
    assert resolve_effective_role_id(_member("77", "5"), ROLES, "99") == "77"


def test_empty_ignored_id_never_matches() -> None:
    assert resolve_effective_role_id(_member("99", "5"), ROLES, "") == "99"
    assert resolve_effective_role_id(_member("99", "5"), ROLES, None) == "99"


def test_skip_ignored_disabled_keeps_ignored_role() -> None:
    policy = ResolutionPolicy(skip_ignored=False, skip_managed=True)
    assert resolve_effective_role_id(_member("99", "5"), ROLES, "99", policy) == "99"


def test_unknown_role_ids_are_disregarded() -> None:
    assert resolve_effective_role_id(_member("404", "3"), ROLES, "99") == "3"


def test_tie_on_position_lowest_id_wins() -> None:
    roles = [
        RoleInfo(id="300", name="C", position=4),
        RoleInfo(id="20", name="B", position=4),
        RoleInfo(id="1000", name="A", position=4),
    ]
    assert highest_role(roles).id == "20"
    assert highest_role(list(reversed(roles))).id == "20"
    assert highest_role([]) is None
