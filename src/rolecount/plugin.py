from __future__ import annotations

import asyncio

from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from nonebot import get_driver, logger, on_message
from nonebot.adapters.discord import Bot, GuildMessageCreateEvent, MessageSegment
from nonebot.adapters.discord.api import UNSET, Embed, EmbedField, EmbedFooter
from nonebot.exception import ActionFailed
from nonebot.plugin import require

from rolecount.access import is_channel_allowed, parse_count_command
from rolecount.config import settings
from rolecount.report import CountEmbed
from rolecount.service import MemberCountService

require("nonebot_plugin_apscheduler")
from nonebot_plugin_apscheduler import scheduler


driver = get_driver()
service = MemberCountService(settings)

_update_lock = asyncio.Lock()


def _first_bot() -> Bot | None:
    for bot in get_driver().bots.values():
        if isinstance(bot, Bot):
            return bot
    return None


def _to_discord_embed(embed: CountEmbed) -> Embed:
    return Embed(
        title=embed.title,
        description=embed.description,
        fields=[EmbedField(name=name, value=value, inline=True) for name, value in embed.fields],
        footer=EmbedFooter(text=embed.footer) if embed.footer else UNSET,
    )


async def _update_channels(bot: Bot) -> bool:
    async with _update_lock:
        logger.info("Start channel update for guild {}", settings.guild_id)
        return await service.run_channel_update(bot)


async def _scheduled_update() -> None:
    bot = _first_bot()
    if bot is None:
        logger.warning("No active Discord bot found for scheduled channel update")
        return
    await _update_channels(bot)


def _build_trigger() -> CronTrigger | IntervalTrigger:
    if settings.cron_schedule:
        return CronTrigger.from_crontab(settings.cron_schedule)
    return IntervalTrigger(minutes=settings.interval_minutes)


@driver.on_startup
async def _on_startup() -> None:
    if not settings.guild_id:
        logger.warning("ROLECOUNT_GUILD_ID is not set, member counting is disabled")
        return
    logger.info("rolecount guild: {}", settings.guild_id)
    logger.info(
        "rolecount tracking {} count roles and {} channel counters",
        len(settings.count_roles),
        len(settings.channel_counters),
    )
    trigger = _build_trigger()
    scheduler.add_job(
        _scheduled_update,
        trigger,
        id="rolecount_channel_update",
        replace_existing=True,
    )
    logger.info("Scheduled channel updates with {}", trigger)


@driver.on_bot_connect
async def _on_bot_connect(bot: Bot) -> None:
    if settings.guild_id:
        await _update_channels(bot)


count_msg = on_message(priority=10, block=False)


@count_msg.handle()
async def _handle_count(bot: Bot, event: GuildMessageCreateEvent) -> None:
    if str(event.guild_id) != settings.guild_id:
        return
    action = parse_count_command(event.get_plaintext())
    if action is None:
        return

    logger.info(
        "Received count {} from user {} in channel {}",
        action,
        event.get_user_id(),
        event.channel_id,
    )
    if not is_channel_allowed(event.channel_id, settings.allowed_channels):
        logger.info("Count command used in unauthorized channel {}", event.channel_id)
        return

    member_roles = event.member.roles if event.member else []
    reply = await service.answer_count_command(bot, action, event.channel_id, member_roles)
    if reply is None:
        return

    try:
        if reply.report is not None and settings.reply_style == "embed":
            await bot.send_to(
                channel_id=event.channel_id,
                message=MessageSegment.embed(_to_discord_embed(reply.report.embed)),
            )
        else:
            await bot.send_to(channel_id=event.channel_id, message=reply.text)
    except ActionFailed as exc:
        logger.warning("Count reply in channel {} failed: {}", event.channel_id, exc)
        return
    if reply.report is not None:
        logger.info("Count command completed: {} members", reply.report.result.total_members)
