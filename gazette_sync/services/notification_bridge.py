"""Post-run signal for the notification subsystem"""
import logging
from dataclasses import dataclass, field
from typing import List, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewCommunicationsSignal:
    """Emitted once per attorney whose run inserted new communications"""
    attorney_name: str
    new_count: int
    process_numbers: List[str] = field(default_factory=list)


class NotificationBridge(Protocol):
    async def publish(self, signal: NewCommunicationsSignal) -> None:
        ...


class LoggingNotificationBridge:
    """Default bridge: records the signal in the log and nothing else"""

    async def publish(self, signal: NewCommunicationsSignal) -> None:
        logger.info(
            f"{signal.new_count} new communication(s) for {signal.attorney_name}: "
            f"{', '.join(signal.process_numbers)}"
        )
