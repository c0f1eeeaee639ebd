from datetime import datetime, timezone
from typing import List, Optional, Sequence

from ..devices import DeviceSnapshot
from .records import MeasurementRecord, MetricName, Unit

INSTANCE_DIMENSION = "Instance"
GPU_DIMENSION = "GPU"


def build_samples(
    devices: Sequence[DeviceSnapshot],
    instance: str,
    resolution: int,
    timestamp: Optional[datetime] = None,
    memory_unit: Unit = Unit.MEGABYTES,
) -> List[MeasurementRecord]:
    """
    Turn one snapshot of all devices into measurement records.

    Emits exactly three records per device, consecutively and in device order:
    GPUUtilization, MemoryUsed, MemoryFree. The window aggregator relies on
    this order to line up record k of one cycle with record k of the next.

    Memory goes out in whole MiB for Megabytes and as the exact byte count
    for Bytes.
    """
    timestamp = timestamp or datetime.now(timezone.utc)
    memory_unit = Unit(memory_unit)
    in_bytes = memory_unit is Unit.BYTES

    records: List[MeasurementRecord] = []
    for device in devices:
        dimensions = ((INSTANCE_DIMENSION, instance), (GPU_DIMENSION, device.uuid))
        records.extend([
            MeasurementRecord(MetricName.GPU_UTILIZATION, dimensions, Unit.PERCENT,
                              timestamp, resolution, float(device.gpu_utilization)),
            MeasurementRecord(MetricName.MEMORY_USED, dimensions, memory_unit,
                              timestamp, resolution, float(device.used_memory if in_bytes else device.used_mib)),
            MeasurementRecord(MetricName.MEMORY_FREE, dimensions, memory_unit,
                              timestamp, resolution, float(device.free_memory if in_bytes else device.free_mib)),
        ])
    return records
