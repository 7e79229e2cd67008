from __future__ import annotations

import re
import unicodedata
from collections.abc import Callable, Collection, Iterable, Mapping
from time import monotonic

from rolecount.models import RoleInfo

_COMMAND_RE = re.compile(r"^[!/]\s*count(?:\s+(help))?\s*$")
_INVISIBLE = ("\u200b", "\u200c", "\u200d", "\ufeff")


def parse_count_command(raw_text: str) -> str | None:
    """Return ``"run"`` or ``"help"`` for a count command, else ``None``."""
    # NFKC folds full-width "！" and letters typed through IMEs.
    normalized = unicodedata.normalize("NFKC", raw_text or "")
    for ch in _INVISIBLE:
        normalized = normalized.replace(ch, "")
    m = _COMMAND_RE.match(normalized.strip().lower())
    if not m:
        return None
    return m.group(1) or "run"


def is_channel_allowed(channel_id: object, allowed_channels: Collection[str]) -> bool:
    if not allowed_channels:
        return True
    return str(channel_id) in set(allowed_channels)


def has_allowed_role(
    member_role_ids: Iterable[object],
    roles: Mapping[str, RoleInfo],
    allowed_role_names: Collection[str],
) -> bool:
    if not allowed_role_names:
        return True
    allowed = {name.strip().lower() for name in allowed_role_names}
    for role_id in member_role_ids:
        role = roles.get(str(role_id))
        if role is not None and role.name.strip().lower() in allowed:
            return True
    return False


class CommandCooldown:
    """Refuses a key that was accepted less than ``seconds`` ago."""

    def __init__(self, seconds: float, clock: Callable[[], float] = monotonic) -> None:
        self.seconds = seconds
        self._clock = clock
        self._last: dict[str, float] = {}

    def try_acquire(self, key: object) -> bool:
        now = self._clock()
        last = self._last.get(str(key))
        if last is not None and now - last < self.seconds:
            return False
        self._last[str(key)] = now
        return True
