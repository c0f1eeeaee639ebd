"""CloudWatch metric records: single measurements and per-window aggregates."""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..errors import ValidationError

# PutMetricData limits
MAX_DIMENSIONS = 30
MAX_DIMENSION_LENGTH = 255
MAX_DISTINCT_VALUES = 150
MAX_METRIC_DATA = 1000
LEGAL_STORAGE_RESOLUTIONS = (1, 60)

Dimensions = Tuple[Tuple[str, str], ...]


class MetricName(str, Enum):
    GPU_UTILIZATION = "GPUUtilization"
    MEMORY_USED = "MemoryUsed"
    MEMORY_FREE = "MemoryFree"


class Unit(str, Enum):
    PERCENT = "Percent"
    MEGABYTES = "Megabytes"
    BYTES = "Bytes"


def _label(name) -> str:
    return name.value if isinstance(name, Enum) else str(name)


def _validate_metadata(name, dimensions, unit, timestamp, storage_resolution) -> None:
    if name is None:
        raise ValidationError("metric name is required")
    label = _label(name)
    if unit is None:
        raise ValidationError(f"{label}: unit is required")
    if timestamp is None:
        raise ValidationError(f"{label}: timestamp is required")
    if storage_resolution not in LEGAL_STORAGE_RESOLUTIONS:
        raise ValidationError(f"{label}: storage resolution must be 1 or 60, got {storage_resolution}")
    if not dimensions or len(dimensions) > MAX_DIMENSIONS:
        raise ValidationError(f"{label}: between 1 and {MAX_DIMENSIONS} dimensions required")
    for dim_name, dim_value in dimensions:
        for part in (dim_name, dim_value):
            if not part or len(part) > MAX_DIMENSION_LENGTH:
                raise ValidationError(f"{label}: invalid dimension {dim_name}={dim_value!r}")


def _datum(name, dimensions, unit, timestamp, storage_resolution) -> Dict[str, Any]:
    return {
        "MetricName": MetricName(name).value,
        "Dimensions": [{"Name": n, "Value": v} for n, v in dimensions],
        "Timestamp": timestamp,
        "Unit": Unit(unit).value,
        "StorageResolution": storage_resolution,
    }


@dataclass(frozen=True)
class MeasurementRecord:
    """One observation of one metric for one device"""
    name: MetricName
    dimensions: Dimensions
    unit: Unit
    timestamp: datetime
    storage_resolution: int
    value: float

    def validate(self) -> None:
        _validate_metadata(self.name, self.dimensions, self.unit, self.timestamp, self.storage_resolution)
        if self.value is None or not math.isfinite(self.value):
            raise ValidationError(f"{_label(self.name)}: value must be finite, got {self.value}")

    def to_metric_datum(self) -> Dict[str, Any]:
        datum = _datum(self.name, self.dimensions, self.unit, self.timestamp, self.storage_resolution)
        datum["Value"] = float(self.value)
        return datum


@dataclass
class AggregatedRecord:
    """Accumulator for one metric across an open window.

    Metadata is last-write-wins; values/counts form a histogram of the
    merged measurement values in first-seen order.
    """
    name: Optional[MetricName] = None
    dimensions: Optional[Dimensions] = None
    unit: Optional[Unit] = None
    timestamp: Optional[datetime] = None
    storage_resolution: Optional[int] = None
    values: List[float] = field(default_factory=list)
    counts: List[float] = field(default_factory=list)

    def merge(self, record: MeasurementRecord, tolerance: float = 0.0) -> "AggregatedRecord":
        self.name = record.name
        self.dimensions = record.dimensions
        self.unit = record.unit
        self.timestamp = record.timestamp
        self.storage_resolution = record.storage_resolution

        index = self._find(record.value, tolerance)
        if index is None:
            self.values.append(record.value)
            self.counts.append(1.0)
        else:
            self.counts[index] += 1.0
        return self

    def _find(self, value: float, tolerance: float) -> Optional[int]:
        for i, existing in enumerate(self.values):
            if tolerance > 0:
                if math.isclose(existing, value, rel_tol=0.0, abs_tol=tolerance):
                    return i
            elif existing == value:
                return i
        return None

    def split(self, max_values: int = MAX_DISTINCT_VALUES) -> List["AggregatedRecord"]:
        """Cut the histogram into records of at most max_values distinct values each.

        Every piece carries the same metadata, so CloudWatch sums them back
        into one statistic set for the period.
        """
        if len(self.values) <= max_values:
            return [self]
        return [
            replace(self, values=self.values[i:i + max_values], counts=self.counts[i:i + max_values])
            for i in range(0, len(self.values), max_values)
        ]

    @property
    def sample_count(self) -> float:
        return sum(self.counts)

    def is_empty(self) -> bool:
        return not self.values

    def validate(self) -> None:
        _validate_metadata(self.name, self.dimensions, self.unit, self.timestamp, self.storage_resolution)
        label = _label(self.name)
        if not self.values:
            raise ValidationError(f"{label}: aggregate has no values")
        if len(self.values) != len(self.counts):
            raise ValidationError(f"{label}: {len(self.values)} values but {len(self.counts)} counts")
        if len(self.values) > MAX_DISTINCT_VALUES:
            raise ValidationError(f"{label}: more than {MAX_DISTINCT_VALUES} distinct values")
        if not all(math.isfinite(v) for v in self.values):
            raise ValidationError(f"{label}: values must be finite")
        if not all(c > 0 for c in self.counts):
            raise ValidationError(f"{label}: counts must be positive")

    def to_metric_datum(self) -> Dict[str, Any]:
        datum = _datum(self.name, self.dimensions, self.unit, self.timestamp, self.storage_resolution)
        datum["Values"] = [float(v) for v in self.values]
        datum["Counts"] = [float(c) for c in self.counts]
        return datum
