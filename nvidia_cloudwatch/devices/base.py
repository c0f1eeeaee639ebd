import json
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import List

from ..errors import ProviderError

MIB = 1024 * 1024


@dataclass(frozen=True)
class DeviceSnapshot:
    """Instantaneous metrics of one GPU. Memory values are in bytes."""
    uuid: str
    model: str
    total_memory: int
    used_memory: int
    free_memory: int
    gpu_utilization: int

    @property
    def total_mib(self) -> int:
        return self.total_memory // MIB

    @property
    def used_mib(self) -> int:
        return self.used_memory // MIB

    @property
    def free_mib(self) -> int:
        return self.free_memory // MIB

    def __str__(self) -> str:
        return json.dumps(asdict(self))


class DeviceProvider(ABC):
    """Base class for GPU snapshot providers.

    A provider is a scoped resource: init() before the first query and
    shutdown() at exit. Use it as a context manager to bracket both.
    """

    def __init__(self, name: str, logger: logging.Logger = None):
        self.name = name
        self.logger = logger or logging.getLogger(f"nvidia_cloudwatch.devices.{name}")
        self.initialized = False

    def init(self) -> None:
        self.initialized = True
        self.logger.info(f"{self.name} initialized")

    def shutdown(self) -> None:
        self.initialized = False
        self.logger.info(f"{self.name} shutdown")

    def get_devices(self) -> List[DeviceSnapshot]:
        """Return one snapshot per visible device, in index order"""
        if not self.initialized:
            raise ProviderError(f"{self.name} provider used before init()")
        return self.query_devices()

    @abstractmethod
    def query_devices(self) -> List[DeviceSnapshot]:
        """Query the underlying machinery. Raise ProviderError on failure."""

    def __enter__(self) -> "DeviceProvider":
        self.init()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
