# orderbridge/tracking.py
"""Tracking id generation.

Two strategies:

* random: ``SPL`` + uppercase hex from ``secrets``. No ledger read, so
  concurrent requests never race; collisions are possible in theory and are
  not checked.
* sequential: ``SPL`` + 3-digit batch + 3-digit sequence, derived from the
  last id in the ledger. The read and the append that follows must not
  interleave with another request, so the whole sequence runs under
  ``reservation()``. The lock is per process: run a single worker when this
  strategy is enabled.
"""
import asyncio
import contextlib
import logging
import re
import secrets
from typing import Optional

from .config import Settings

logger = logging.getLogger(__name__)

MAX_SEQUENCE = 999


def random_tracking_id(prefix: str = "SPL", length: int = 8) -> str:
    # token_hex yields two chars per byte
    return prefix + secrets.token_hex((length + 1) // 2)[:length].upper()


def next_sequential_id(last_id: Optional[str], prefix: str = "SPL", start_batch: int = 351) -> str:
    batch, sequence = start_batch, 1
    if last_id:
        m = re.fullmatch(rf"{re.escape(prefix)}(\d{{3}})(\d{{3}})", last_id.strip())
        if m:
            batch = int(m.group(1))
            sequence = int(m.group(2)) + 1
            if sequence > MAX_SEQUENCE:
                batch += 1
                sequence = 1
    return f"{prefix}{batch}{sequence:03d}"


class RandomTrackingIds:
    def __init__(self, prefix: str = "SPL", length: int = 8):
        self.prefix = prefix
        self.length = length

    def reservation(self):
        return contextlib.nullcontext()

    async def next_id(self, ledger) -> str:
        return random_tracking_id(self.prefix, self.length)


class SequentialTrackingIds:
    def __init__(self, prefix: str = "SPL", start_batch: int = 351):
        self.prefix = prefix
        self.start_batch = start_batch
        self._lock = asyncio.Lock()

    def reservation(self):
        return self._lock

    async def next_id(self, ledger) -> str:
        ids = await ledger.read_tracking_ids()
        # first row is the sheet header
        last_id = next((v for v in reversed(ids[1:]) if v), None)
        new_id = next_sequential_id(last_id, self.prefix, self.start_batch)
        logger.debug("Sequential tracking id %s (last was %s)", new_id, last_id)
        return new_id


def build_tracking_ids(settings: Settings):
    if settings.tracking_id_strategy == "sequential":
        return SequentialTrackingIds(settings.tracking_id_prefix, settings.tracking_id_start_batch)
    return RandomTrackingIds(settings.tracking_id_prefix, settings.tracking_id_random_length)
