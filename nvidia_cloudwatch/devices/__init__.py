"""GPU snapshot providers"""

from .base import DeviceProvider, DeviceSnapshot
from .nvml import NvmlDeviceProvider
from .nvsmi import NvsmiDeviceProvider

PROVIDER_REGISTRY = {
    "nvml": NvmlDeviceProvider,
    "nvsmi": NvsmiDeviceProvider,
}


def create_provider(name: str) -> DeviceProvider:
    return PROVIDER_REGISTRY[name]()


__all__ = [
    'DeviceProvider',
    'DeviceSnapshot',
    'NvmlDeviceProvider',
    'NvsmiDeviceProvider',
    'PROVIDER_REGISTRY',
    'create_provider',
]
