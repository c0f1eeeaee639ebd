"""NVIDIA GPU snapshot provider backed by the nvidia-smi CLI.

Used on hosts where the NVML bindings cannot be loaded but the driver's
nvidia-smi binary is on PATH.
"""

import subprocess
from typing import List

from ..errors import ProviderError
from .base import MIB, DeviceProvider, DeviceSnapshot

QUERY_FIELDS = [
    "uuid",
    "name",
    "memory.total",
    "memory.used",
    "memory.free",
    "utilization.gpu",
]


class NvsmiDeviceProvider(DeviceProvider):
    def __init__(self, binary: str = "nvidia-smi", timeout: int = 10):
        super().__init__("nvsmi")
        self.binary = binary
        self.timeout = timeout

    def query_devices(self) -> List[DeviceSnapshot]:
        cmd = [
            self.binary,
            f"--query-gpu={','.join(QUERY_FIELDS)}",
            "--format=csv,noheader,nounits",
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            raise ProviderError(f"nvidia-smi failed: {e}") from e

        if result.returncode != 0:
            raise ProviderError(f"nvidia-smi failed: {result.stderr.strip()}")

        return parse_csv(result.stdout)


def parse_csv(output: str) -> List[DeviceSnapshot]:
    """Parse `--format=csv,noheader,nounits` output, one line per GPU"""
    devices: List[DeviceSnapshot] = []
    for line in output.strip().splitlines():
        if not line.strip():
            continue
        parts = [p.strip() for p in line.split(",")]
        if len(parts) != len(QUERY_FIELDS):
            raise ProviderError(f"unexpected nvidia-smi line: {line!r}")
        uuid, name, mem_total, mem_used, mem_free, util_gpu = parts
        try:
            devices.append(DeviceSnapshot(
                uuid=uuid,
                model=name,
                total_memory=int(float(mem_total)) * MIB,
                used_memory=int(float(mem_used)) * MIB,
                free_memory=int(float(mem_free)) * MIB,
                gpu_utilization=int(float(util_gpu)),
            ))
        except ValueError as e:
            # e.g. "[N/A]" on unsupported boards
            raise ProviderError(f"unparsable nvidia-smi line: {line!r}") from e
    return devices
