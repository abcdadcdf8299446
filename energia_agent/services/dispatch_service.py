"""Humanized delivery of reply segments.

Segments go out one at a time, in order, with a pause before each one that
grows with the length of the segment just sent so the conversation reads like
someone typing.
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Optional

from energia_agent.config import settings
from energia_agent.logging_config import get_logger

logger = get_logger("dispatch_service")


@dataclass
class DispatchReport:
    sent: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def all_sent(self) -> bool:
        return not self.failed


def typing_delay_ms(
    previous_segment: str,
    *,
    ms_per_char: int,
    min_delay_ms: int,
    max_delay_ms: int,
    jitter_ms: int,
    rng=random,
) -> float:
    base = min(max(len(previous_segment) * ms_per_char, min_delay_ms), max_delay_ms)
    return base + rng.uniform(0, jitter_ms)


class DispatchScheduler:
    def __init__(
        self,
        transport,
        store,
        *,
        sleep=asyncio.sleep,
        rng=random,
        ms_per_char: Optional[int] = None,
        min_delay_ms: Optional[int] = None,
        max_delay_ms: Optional[int] = None,
        jitter_ms: Optional[int] = None,
        first_segment_delay_ms: Optional[int] = None,
    ):
        self.transport = transport
        self.store = store
        self.sleep = sleep
        self.rng = rng
        self.ms_per_char = settings.dispatch_ms_per_char if ms_per_char is None else ms_per_char
        self.min_delay_ms = settings.dispatch_min_delay_ms if min_delay_ms is None else min_delay_ms
        self.max_delay_ms = settings.dispatch_max_delay_ms if max_delay_ms is None else max_delay_ms
        self.jitter_ms = settings.dispatch_jitter_ms if jitter_ms is None else jitter_ms
        self.first_segment_delay_ms = (
            settings.dispatch_first_segment_delay_ms if first_segment_delay_ms is None else first_segment_delay_ms
        )

    def delay_before(self, index: int, previous_segment: Optional[str]) -> float:
        if index == 0 or previous_segment is None:
            return float(self.first_segment_delay_ms)
        return typing_delay_ms(
            previous_segment,
            ms_per_char=self.ms_per_char,
            min_delay_ms=self.min_delay_ms,
            max_delay_ms=self.max_delay_ms,
            jitter_ms=self.jitter_ms,
            rng=self.rng,
        )

    async def deliver(self, contact_id: str, segments: list[str]) -> DispatchReport:
        """Send segments in order. A failed send is logged and skipped, never retried."""
        report = DispatchReport()
        previous: Optional[str] = None

        for index, segment in enumerate(segments):
            delay_ms = self.delay_before(index, previous)
            if delay_ms > 0:
                await self.sleep(delay_ms / 1000)
            previous = segment

            try:
                ok = await self.transport.send_text(contact_id, segment)
            except Exception as e:
                logger.error(
                    f"Send raised: {e}",
                    extra={"context": {"contact_id": contact_id, "segment_index": index}},
                )
                ok = False

            if not ok:
                logger.warning(
                    "Segment not delivered",
                    extra={"context": {"contact_id": contact_id, "segment_index": index}},
                )
                report.failed.append(segment)
                continue

            self.store.append_message(contact_id, "agent", segment)
            report.sent.append(segment)

        logger.info(
            "Dispatch finished",
            extra={"context": {"contact_id": contact_id, "sent": len(report.sent), "failed": len(report.failed)}},
        )
        return report
