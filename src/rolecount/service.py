from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field

from nonebot import logger
from nonebot.adapters.discord import Bot
from nonebot.exception import ActionFailed, NetworkError

from rolecount.access import CommandCooldown, has_allowed_role
from rolecount.aggregator import aggregate
from rolecount.collector import fetch_guild_snapshot
from rolecount.config import Settings
from rolecount.models import AggregationResult, GuildSnapshot, ResolutionPolicy
from rolecount.report import (
    CountEmbed,
    build_count_embed,
    build_count_text,
    reconciliation_lines,
    render_channel_name,
)
from rolecount.snapshot import SnapshotCache, SnapshotFetchError

COUNT_ERROR_TEXT = "An error occurred while counting members."
COOLDOWN_TEXT = "Please wait a moment before counting again."

COUNT_HELP_TEXT = (
    "Usage: `!count`\n"
    "Shows total and unverified members, then members per tracked role.\n"
    "Each member is credited to their highest role only; "
    "the ignored role is skipped in favour of the next one.\n"
    "Unverified members are not credited to any role."
)


@dataclass(slots=True)
class CountReport:
    result: AggregationResult
    text: str
    embed: CountEmbed


@dataclass(slots=True)
class CountReply:
    text: str
    report: CountReport | None = None


@dataclass(slots=True)
class ChannelUpdateResult:
    renamed: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped_roles: list[str] = field(default_factory=list)


class MemberCountService:
    def __init__(self, settings: Settings, cache: SnapshotCache | None = None) -> None:
        self.settings = settings
        self.cache = cache or SnapshotCache(
            ttl_seconds=settings.snapshot_ttl_seconds,
            fetch_timeout=settings.fetch_timeout_seconds,
        )
        self.policy = ResolutionPolicy(
            skip_ignored=True,
            skip_managed=settings.skip_managed_roles,
        )
        self.cooldown = CommandCooldown(settings.command_cooldown_seconds)
        self._applied_names: dict[str, str] = {}

    async def snapshot(self, bot: Bot, force: bool = False) -> GuildSnapshot:
        guild_id = self.settings.guild_id
        return await self.cache.get(lambda: fetch_guild_snapshot(bot, guild_id), force=force)

    def count(self, snapshot: GuildSnapshot, tracked_role_ids: list[str]) -> AggregationResult:
        result = aggregate(
            snapshot.members,
            snapshot.roles,
            tracked_role_ids,
            ignored_role_id=self.settings.ignored_role_id,
            verified_role_id=self.settings.verified_role_id,
            policy=self.policy,
        )
        for role_id in result.skipped_role_ids:
            logger.warning("Tracked role {} not found in guild {}, skipped", role_id, snapshot.guild_id)
        for line in reconciliation_lines(result):
            logger.debug(line)
        if result.unaccounted_member_ids:
            members = {m.id: m for m in snapshot.members}
            for member_id in result.unaccounted_member_ids:
                member = members[member_id]
                names = sorted(
                    snapshot.roles[r].name
                    for r in member.role_ids
                    if r in snapshot.roles and not snapshot.roles[r].managed
                )
                logger.debug(
                    "Unaccounted member {} ({}) roles: {}",
                    member.display_name or member_id,
                    member_id,
                    ", ".join(names),
                )
        return result

    async def count_report(self, bot: Bot) -> CountReport:
        snapshot = await self.snapshot(bot)
        result = self.count(snapshot, self.settings.count_roles)
        precision = self.settings.percent_precision
        return CountReport(
            result=result,
            text=build_count_text(result, precision),
            embed=build_count_embed(result, precision, self.settings.embed_footer_text),
        )

    async def answer_count_command(
        self, bot: Bot, action: str, channel_id: object, member_role_ids: Iterable[object]
    ) -> CountReply | None:
        """Decide the reply to ``!count``; ``None`` means stay silent."""
        try:
            snapshot = await self.snapshot(bot)
        except SnapshotFetchError:
            logger.exception("Count command failed to load members")
            return CountReply(COUNT_ERROR_TEXT)

        if not has_allowed_role(member_role_ids, snapshot.roles, self.settings.allowed_roles):
            logger.info("Count command refused in channel {}: no allowed role", channel_id)
            return None
        if action == "help":
            return CountReply(COUNT_HELP_TEXT)
        if not self.cooldown.try_acquire(channel_id):
            return CountReply(COOLDOWN_TEXT)

        try:
            report = await self.count_report(bot)
        except Exception:
            logger.exception("Count command failed in guild {}", self.settings.guild_id)
            return CountReply(COUNT_ERROR_TEXT)
        return CountReply(report.text, report)

    async def _current_name(self, bot: Bot, channel_id: str) -> str | None:
        try:
            channel = await bot.get_channel(channel_id=int(channel_id))
        except (ActionFailed, NetworkError) as exc:
            logger.warning("Reading channel {} failed: {}", channel_id, exc)
            return self._applied_names.get(channel_id)
        name = getattr(channel, "name", None)
        return name if isinstance(name, str) else None

    async def _rename(
        self, bot: Bot, channel_id: str, name: str, outcome: ChannelUpdateResult
    ) -> bool:
        # Compare with the live name so manual edits get corrected.
        if await self._current_name(bot, channel_id) == name:
            self._applied_names[channel_id] = name
            outcome.unchanged.append(channel_id)
            return False
        try:
            await bot.modify_channel(channel_id=int(channel_id), name=name)
        except (ActionFailed, NetworkError) as exc:
            logger.warning("Rename of channel {} to {!r} failed: {}", channel_id, name, exc)
            outcome.failed.append(channel_id)
            return True
        self._applied_names[channel_id] = name
        outcome.renamed.append(channel_id)
        logger.info("Channel {} renamed to {!r}", channel_id, name)
        return True

    async def update_channels(self, bot: Bot) -> ChannelUpdateResult:
        snapshot = await self.snapshot(bot, force=True)
        counters = self.settings.channel_counters
        result = self.count(snapshot, [c.role_id for c in counters])
        counts: dict[str, int] = {}
        for role_count in result.per_role:
            counts.setdefault(role_count.role_id, role_count.count)

        planned: list[tuple[str, str]] = []
        if self.settings.total_member_channel_id:
            planned.append(
                (
                    self.settings.total_member_channel_id,
                    render_channel_name(
                        self.settings.total_member_name_format, result.total_members
                    ),
                )
            )
        for counter in counters:
            if counter.role_id not in counts:
                continue
            planned.append(
                (counter.channel_id, render_channel_name(counter.name_format, counts[counter.role_id]))
            )

        outcome = ChannelUpdateResult(skipped_roles=list(result.skipped_role_ids))
        called = False
        for channel_id, name in planned:
            if called and self.settings.rename_delay_seconds > 0:
                await asyncio.sleep(self.settings.rename_delay_seconds)
            called = await self._rename(bot, channel_id, name, outcome) or called

        logger.info(
            "Channel update for guild {}: renamed={} unchanged={} failed={}",
            snapshot.guild_id,
            len(outcome.renamed),
            len(outcome.unchanged),
            len(outcome.failed),
        )
        return outcome

    async def run_channel_update(self, bot: Bot) -> bool:
        try:
            await self.update_channels(bot)
        except SnapshotFetchError:
            logger.exception("Channel update skipped, snapshot unavailable")
            return False
        except Exception:
            logger.exception("Channel update for guild {} failed", self.settings.guild_id)
            return False
        return True
