"""
Rolling cost ledger.

One entry per completed run, kept in a fixed-capacity FIFO shared by every
run in the process. Appends and snapshots are lock-guarded.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

# Nominal cost per agent_path entry, keyed by node tag
NODE_COSTS: dict[str, float] = {
    "master_agent": 0.001,
    "cost_optimizer": 0.0005,
    "failure_recovery": 0.0005,
    "quality_analyst": 0.001,
}
DEFAULT_NODE_COST = 0.0001

# Cost reported for a run that ended in the fatal fallback
FALLBACK_RUN_COST = 0.001


def calculate_total_cost(agent_path: list[str], prompt_cost: float = 0.0) -> float:
    """prompt_cost plus the nominal cost of every node on the path."""
    total = prompt_cost or 0.0
    for node in agent_path:
        total += NODE_COSTS.get(node, DEFAULT_NODE_COST)
    return total


@dataclass
class CostLedgerEntry:
    cost: float
    chat_mode: str
    cache_hit: bool
    agent_path: list[str]
    user_id: str | None = None
    timestamp: float = field(default_factory=time.time)


class CostLedger:
    """Fixed-capacity FIFO of CostLedgerEntry; oldest entries drop first."""

    def __init__(self, capacity: int = 1000):
        self.capacity = capacity
        self._entries: deque[CostLedgerEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def record(
        self,
        cost: float,
        chat_mode: str,
        cache_hit: bool,
        agent_path: list[str],
        user_id: str | None = None,
        timestamp: float | None = None,
    ) -> CostLedgerEntry:
        entry = CostLedgerEntry(
            cost=cost,
            chat_mode=chat_mode,
            cache_hit=cache_hit,
            agent_path=list(agent_path),
            user_id=user_id,
        )
        if timestamp is not None:
            entry.timestamp = timestamp

        with self._lock:
            self._entries.append(entry)

        logger.debug(f"[LEDGER] Recorded cost={cost:.6f} mode={chat_mode} cache_hit={cache_hit}")
        return entry

    def entries(self, last: int | None = None) -> list[CostLedgerEntry]:
        """Snapshot of the ledger, oldest first; `last` limits to the newest N."""
        with self._lock:
            snapshot = list(self._entries)
        if last is not None:
            return snapshot[-last:] if last > 0 else []
        return snapshot

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
