"""NVIDIA GPU snapshot provider backed by NVML (pynvml bindings)."""

from typing import List

import pynvml

from ..errors import ProviderError
from .base import DeviceProvider, DeviceSnapshot


def _text(value) -> str:
    # older bindings return bytes
    return value.decode() if isinstance(value, bytes) else value


class NvmlDeviceProvider(DeviceProvider):
    """Reads memory and utilization of every device through NVML."""

    def __init__(self):
        super().__init__("nvml")

    def init(self) -> None:
        try:
            pynvml.nvmlInit()
        except pynvml.NVMLError as e:
            raise ProviderError(f"nvml init failed: {e}") from e
        super().init()

    def shutdown(self) -> None:
        if not self.initialized:
            return
        try:
            pynvml.nvmlShutdown()
        except pynvml.NVMLError as e:
            self.logger.warning(f"nvml shutdown failed: {e}")
        super().shutdown()

    def query_devices(self) -> List[DeviceSnapshot]:
        try:
            count = pynvml.nvmlDeviceGetCount()
        except pynvml.NVMLError as e:
            raise ProviderError(f"Error getting device count: {e}") from e

        devices: List[DeviceSnapshot] = []
        for index in range(count):
            try:
                handle = pynvml.nvmlDeviceGetHandleByIndex(index)
                memory = pynvml.nvmlDeviceGetMemoryInfo(handle)
                utilization = pynvml.nvmlDeviceGetUtilizationRates(handle)
                devices.append(DeviceSnapshot(
                    uuid=_text(pynvml.nvmlDeviceGetUUID(handle)),
                    model=_text(pynvml.nvmlDeviceGetName(handle)),
                    total_memory=int(memory.total),
                    used_memory=int(memory.used),
                    free_memory=int(memory.free),
                    gpu_utilization=int(utilization.gpu),
                ))
            except pynvml.NVMLError as e:
                raise ProviderError(f"Error getting device {index}: {e}") from e

        return devices
