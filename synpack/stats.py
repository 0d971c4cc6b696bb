"""
RTT Statistics

Collects per-probe outcomes and derives ping-style statistics.
Statistics are always recomputed from the full history.
"""

from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class Statistics:
    transmitted: int
    received: int
    loss_percent: float
    min: float      # seconds
    avg: float
    max: float


class RttAggregator:

    def __init__(self):
        self._outcomes = []

    def record(self, outcome) -> None:
        if outcome.cancelled:
            raise ValueError("Abandoned probes are not part of the statistics")
        self._outcomes.append(outcome)

    @property
    def outcomes(self) -> List:
        return list(self._outcomes)

    def summary(self) -> Statistics:
        """
        Computes transmitted / received / loss and min/avg/max RTT.

        Only matched probes contribute to min/avg/max; with no match
        they are reported as 0.
        """
        transmitted = len(self._outcomes)
        rtts = [o.elapsed for o in self._outcomes if o.matched]
        received = len(rtts)

        loss = 0.0
        if transmitted > 0:
            loss = (transmitted - received) / transmitted * 100

        if not rtts:
            return Statistics(transmitted, received, loss, 0.0, 0.0, 0.0)

        return Statistics(transmitted, received, loss, min(rtts),
                          sum(rtts) / received, max(rtts))


def format_summary(host: str, stats: Statistics) -> str:
    return "\n".join([
        f"--- {host} synpack statistics ---",
        f"{stats.transmitted} packets transmitted, "
        f"{stats.received} packets received, "
        f"{stats.loss_percent:.2f}% packet loss",
        f"round-trip min/avg/max = {stats.min * 1000:.2f}/"
        f"{stats.avg * 1000:.2f}/{stats.max * 1000:.2f} ms",
    ])
