from __future__ import annotations

from dataclasses import dataclass, field

from rolecount.models import AggregationResult

COUNT_TOKEN = "{count}"
CHANNEL_NAME_MAX_LENGTH = 100


@dataclass(slots=True)
class CountEmbed:
    title: str
    description: str
    fields: list[tuple[str, str]] = field(default_factory=list)
    footer: str | None = None


def render_channel_name(template: str, count: int) -> str:
    name = template.replace(COUNT_TOKEN, str(count))
    return name[:CHANNEL_NAME_MAX_LENGTH]


def format_percentage(value: float, precision: int) -> str:
    return f"{value:.{precision}f}"


def build_count_text(result: AggregationResult, precision: int) -> str:
    unverified_pct = format_percentage(result.unverified_percentage, precision)
    lines = [
        f"Total Members: **{result.total_members}** members.",
        f"Unverified: **{result.unverified_members}** members ({unverified_pct}%) "
        "without the verified role.",
        "",
    ]
    for role in result.per_role:
        pct = format_percentage(role.percentage, precision)
        lines.append(
            f"{role.name}: **{role.count}** members ({pct}%) with it as their highest role."
        )
    if result.is_empty:
        lines.append("No members to count yet.")
    return "\n".join(lines).rstrip()


def build_count_embed(
    result: AggregationResult, precision: int, footer_text: str | None = None
) -> CountEmbed:
    unverified_pct = format_percentage(result.unverified_percentage, precision)
    embed = CountEmbed(
        title=f"Total members: {result.total_members}",
        description=f"Unverified members: {result.unverified_members} ({unverified_pct}%)",
        footer=footer_text or None,
    )
    for role in result.per_role:
        pct = format_percentage(role.percentage, precision)
        embed.fields.append((role.name, f"{role.count} ({pct}%)"))
    return embed


def reconciliation_lines(result: AggregationResult) -> list[str]:
    return [
        f"Total members: {result.total_members}",
        f"Unverified members: {result.unverified_members}",
        f"Role-counted members: {result.counted_members}",
        f"Unaccounted verified members: {result.unaccounted_members}",
        f"Reconciles: {'yes' if result.reconciles() else 'no'}",
    ]
