"""Aggregation windows and wall-clock cadence helpers.

Two strategies, chosen by storage resolution:
- 60s: CoalescingWindow merges each cycle into index-aligned accumulators
- 1s:  RawBatchWindow keeps every cycle's records as they are
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Sequence, Union

from ..errors import ConfigError
from .records import MAX_METRIC_DATA, AggregatedRecord, MeasurementRecord

Record = Union[MeasurementRecord, AggregatedRecord]


@dataclass
class FlushBatch:
    """Records handed to the sink; each inner list is one PutMetricData request"""
    resolution: int
    requests: List[List[Record]] = field(default_factory=list)

    def records(self) -> List[Record]:
        return [r for request in self.requests for r in request]

    def __len__(self) -> int:
        return len(self.requests)


class Window(ABC):
    def __init__(self, resolution: int):
        self.resolution = resolution

    @abstractmethod
    def add(self, records: Sequence[MeasurementRecord]) -> None:
        """Fold one cycle's records into the open window"""

    @abstractmethod
    def take(self) -> FlushBatch:
        """Return the open window as a batch and start a fresh one"""

    @abstractmethod
    def is_empty(self) -> bool:
        pass


class CoalescingWindow(Window):
    """Index-aligned accumulators, one per record position in a cycle"""

    def __init__(self, resolution: int = 60, slots: int = 3, tolerance: float = 0.0):
        super().__init__(resolution)
        self.initial_slots = slots
        self.tolerance = tolerance
        self.slots = self._fresh_slots()

    def _fresh_slots(self) -> List[AggregatedRecord]:
        return [AggregatedRecord() for _ in range(self.initial_slots)]

    def add(self, records: Sequence[MeasurementRecord]) -> None:
        # extra devices get their own slots
        while len(self.slots) < len(records):
            self.slots.append(AggregatedRecord())
        for slot, record in zip(self.slots, records):
            slot.merge(record, self.tolerance)

    def take(self) -> FlushBatch:
        slots, self.slots = self.slots, self._fresh_slots()
        # long periods can exceed the per-datum value limit
        records = [piece for s in slots if not s.is_empty() for piece in s.split()]
        requests = [records[i:i + MAX_METRIC_DATA] for i in range(0, len(records), MAX_METRIC_DATA)]
        return FlushBatch(self.resolution, requests or [[]])

    def is_empty(self) -> bool:
        return all(s.is_empty() for s in self.slots)


class RawBatchWindow(Window):
    """Keeps each cycle's records as a separate request"""

    def __init__(self, resolution: int = 1):
        super().__init__(resolution)
        self.cycles: List[List[MeasurementRecord]] = []

    def add(self, records: Sequence[MeasurementRecord]) -> None:
        self.cycles.append(list(records))

    def take(self) -> FlushBatch:
        cycles, self.cycles = self.cycles, []
        return FlushBatch(self.resolution, cycles)

    def is_empty(self) -> bool:
        return not self.cycles


def create_window(resolution: int, tolerance: float = 0.0) -> Window:
    if resolution == 60:
        return CoalescingWindow(resolution, tolerance=tolerance)
    if resolution == 1:
        return RawBatchWindow(resolution)
    raise ConfigError(f"Resolution must be 1 or 60, got {resolution}")


# ---------- cadence ----------

def truncate_to_second(moment: datetime) -> datetime:
    return moment.replace(microsecond=0)


def next_tick(now: datetime, resolution: int) -> datetime:
    """Next cycle boundary: the current whole second plus one resolution step"""
    return truncate_to_second(now) + timedelta(seconds=resolution)


def elapsed_seconds(now: datetime, since: datetime) -> int:
    """Whole seconds between two truncated wall-clock instants"""
    delta = truncate_to_second(now) - truncate_to_second(since)
    return math.floor(delta.total_seconds())
