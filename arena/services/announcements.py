"""
Broadcast sink for arena state transitions.

Every component announces through ``AnnouncementService.announce``. The
service fans each announcement out to its sinks (the log, Discord channels);
a failing sink is logged and skipped, so announcing never raises into the
operation that triggered it.
"""

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional

from arena.utils.embeds import build_announcement_embed
from arena.utils.logger import setup_logger

logger = setup_logger(__name__)

RECENT_ANNOUNCEMENTS = 50


@dataclass
class Announcement:
    event: str
    message: str
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = 0.0


class LoggingSink:
    """Writes announcements to the arena log"""

    async def send(self, announcement: Announcement):
        logger.info(f"[{announcement.event}] {announcement.message}")


class DiscordSink:
    """Posts announcements as embeds to the configured channels of every network"""

    def __init__(self, bot, channel_ids: Iterable[int]):
        self.bot = bot
        self.channel_ids = list(channel_ids)

    async def send(self, announcement: Announcement):
        embed = build_announcement_embed(announcement)
        for channel_id in self.channel_ids:
            channel = self.bot.get_channel(channel_id)
            if channel is None:
                logger.warning(f"Announcement channel {channel_id} not found")
                continue
            try:
                await channel.send(embed=embed)
            except Exception as e:
                logger.error(f"Failed to announce to channel {channel_id}: {e}")


class AnnouncementService:
    """Fire-and-forget fan-out of announcements to every registered sink"""

    def __init__(self, sinks: Optional[List] = None, clock: Callable[[], float] = time.time):
        self.sinks = list(sinks) if sinks is not None else [LoggingSink()]
        self.clock = clock
        self.recent: Deque[Announcement] = deque(maxlen=RECENT_ANNOUNCEMENTS)

    async def announce(self, event: str, message: str, **payload) -> Announcement:
        announcement = Announcement(event=event, message=message, payload=payload, timestamp=self.clock())
        self.recent.append(announcement)

        for sink in self.sinks:
            try:
                await sink.send(announcement)
            except Exception as e:
                logger.error(f"Announcement sink {type(sink).__name__} failed for '{event}': {e}",
                             exc_info=True)
        return announcement
