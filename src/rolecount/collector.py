from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from nonebot.adapters.discord import Bot

from rolecount.models import GuildSnapshot, MemberSnapshot, RoleInfo

MEMBER_PAGE_SIZE = 1000


def _display_name(user: Any, nick: Any) -> str:
    if isinstance(nick, str) and nick:
        return nick
    for attr in ("global_name", "username"):
        value = getattr(user, attr, None)
        if isinstance(value, str) and value:
            return value
    return ""


def to_member_snapshot(member: Any) -> MemberSnapshot | None:
    user = getattr(member, "user", None)
    user_id = getattr(user, "id", None)
    if user_id is None:
        return None
    return MemberSnapshot(
        id=str(user_id),
        # Unset flags come back as a sentinel, only a literal True marks a bot.
        is_bot=getattr(user, "bot", None) is True,
        role_ids=frozenset(str(r) for r in (getattr(member, "roles", None) or [])),
        display_name=_display_name(user, getattr(member, "nick", None)),
    )


def to_role_info(role: Any) -> RoleInfo:
    return RoleInfo(
        id=str(role.id),
        name=str(role.name),
        position=int(role.position),
        managed=getattr(role, "managed", None) is True,
    )


async def get_guild_members(
    bot: Bot, guild_id: str, page_size: int = MEMBER_PAGE_SIZE
) -> list[Any]:
    members: list[Any] = []
    after: str | None = None
    while True:
        params: dict[str, Any] = {"guild_id": int(guild_id), "limit": page_size}
        if after is not None:
            params["after"] = int(after)
        page = await bot.list_guild_members(**params)
        if not page:
            break
        members.extend(page)
        if len(page) < page_size:
            break
        last_user = getattr(page[-1], "user", None)
        last_id = getattr(last_user, "id", None)
        if last_id is None:
            break
        after = str(last_id)
    return members


async def get_guild_roles(bot: Bot, guild_id: str) -> dict[str, RoleInfo]:
    data = await bot.get_guild_roles(guild_id=int(guild_id))
    roles: dict[str, RoleInfo] = {}
    for raw in data or []:
        role = to_role_info(raw)
        if role.id == str(guild_id):
            # @everyone shares the guild id and is never listed on members.
            continue
        roles[role.id] = role
    return roles


async def fetch_guild_snapshot(
    bot: Bot, guild_id: str, page_size: int = MEMBER_PAGE_SIZE
) -> GuildSnapshot:
    raw_members = await get_guild_members(bot, guild_id, page_size=page_size)
    roles = await get_guild_roles(bot, guild_id)
    members = tuple(m for m in map(to_member_snapshot, raw_members) if m is not None)
    return GuildSnapshot(
        guild_id=str(guild_id),
        members=members,
        roles=roles,
        fetched_at=datetime.now(UTC),
    )
