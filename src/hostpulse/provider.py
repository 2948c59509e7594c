"""Telemetry provider adapter for hostpulse."""

import logging
import os
import platform
import subprocess
import sys
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import psutil

from hostpulse.config import Settings
from hostpulse.models import (
    CpuInfo,
    DiskInfo,
    GpuController,
    GpuInfo,
    MemoryInfo,
    NetworkInterface,
    OsInfo,
    ProcessEntry,
    ProcessInfo,
    UptimeInfo,
)

logger = logging.getLogger(__name__)

PCI_DEVICES = Path("/sys/bus/pci/devices")

_PCI_VENDORS = {
    "0x8086": "Intel",
    "0x10de": "NVIDIA",
    "0x1002": "AMD",
    "0x1a03": "ASPEED",
    "0x15ad": "VMware",
    "0x1234": "QEMU/Bochs",
}

_DISPLAY_CLASSES = ("vga compatible controller", "3d controller", "display controller")


class Category(Enum):
    """Telemetry categories, one independent fetch each."""

    CPU = "cpu"
    MEMORY = "memory"
    DISKS = "disks"
    GPU = "gpu"
    NETWORK = "network"
    OS = "os"
    UPTIME = "uptime"
    PROCESSES = "processes"


@dataclass(slots=True, frozen=True)
class FetchResult:
    """Outcome of one category fetch: either a value or the error that prevented it."""

    category: Category
    value: Any = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class TelemetryProvider:
    """
    Reads host telemetry using psutil and the platform module.

    Every fetch_* method is blocking and may raise (OSError, psutil.Error,
    RuntimeError on unsupported platforms). Callers that must not fail use
    fetch_result(), which turns an exception into a FetchResult error marker.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or Settings()
        self._fetchers = {
            Category.CPU: self.fetch_cpu,
            Category.MEMORY: self.fetch_memory,
            Category.DISKS: self.fetch_disks,
            Category.GPU: self.fetch_gpu,
            Category.NETWORK: self.fetch_network,
            Category.OS: self.fetch_os,
            Category.UPTIME: self.fetch_uptime,
            Category.PROCESSES: self.fetch_processes,
        }

    @property
    def sample_interval(self) -> float:
        return self._settings.sample_interval

    def fetch(self, category: Category) -> Any:
        """Fetch a single category, raising on failure."""
        return self._fetchers[category]()

    def fetch_result(self, category: Category) -> FetchResult:
        """Fetch a single category, never raising."""
        try:
            return FetchResult(category=category, value=self.fetch(category))
        except Exception as e:
            return FetchResult(category=category, error=e)

    def fetch_cpu(self) -> CpuInfo:
        """Measure per-core load over the sample interval."""
        per_core = psutil.cpu_percent(interval=self.sample_interval, percpu=True)
        if not per_core:
            raise RuntimeError("CPU load is not available on this platform")
        return CpuInfo(
            current_load=sum(per_core) / len(per_core),
            per_core_loads=tuple(per_core),
        )

    def fetch_memory(self) -> MemoryInfo:
        mem = psutil.virtual_memory()
        return MemoryInfo(used_bytes=mem.used, total_bytes=mem.total)

    def fetch_disks(self) -> tuple[DiskInfo, ...]:
        """
        Collect usage for every mounted physical filesystem.

        Partitions that cannot be read (permission denied, stale mounts) are
        skipped. The root filesystem sorts first so that it is the "main" disk.
        """
        disks: list[DiskInfo] = []
        for part in psutil.disk_partitions(all=False):
            # Skip unmapped entries (e.g. empty CD drives) except on Windows
            if os.name != "nt" and not part.fstype:
                continue
            try:
                usage = psutil.disk_usage(part.mountpoint)
            except OSError:
                continue
            disks.append(
                DiskInfo(
                    mount=part.mountpoint,
                    used_bytes=usage.used,
                    size_bytes=usage.total,
                    use_percent=usage.percent,
                )
            )

        root = os.path.abspath(os.sep)
        disks.sort(key=lambda d: d.mount != root)
        return tuple(disks)

    def fetch_gpu(self) -> GpuInfo:
        """
        Detect display controllers via lspci, falling back to PCI sysfs.

        An empty controller list is a valid answer (headless host).
        """
        controllers = self._gpu_from_lspci()
        if controllers is None:
            controllers = self._gpu_from_sysfs()
        return GpuInfo(controllers=tuple(controllers))

    def _gpu_from_lspci(self) -> list[GpuController] | None:
        """Parse `lspci -vmm` records; None when lspci is unavailable."""
        try:
            result = subprocess.run(
                ["lspci", "-vmm"],
                capture_output=True,
                text=True,
                timeout=3,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug("lspci unavailable, falling back to sysfs: %s", e)
            return None
        if result.returncode != 0:
            logger.debug("lspci exited with status %d", result.returncode)
            return None

        controllers: list[GpuController] = []
        for record in result.stdout.split("\n\n"):
            fields: dict[str, str] = {}
            for line in record.splitlines():
                key, sep, value = line.partition(":")
                if sep:
                    fields[key.strip()] = value.strip()
            if fields.get("Class", "").lower() not in _DISPLAY_CLASSES:
                continue
            controllers.append(
                GpuController(
                    vendor=fields.get("Vendor") or None,
                    model=fields.get("Device") or None,
                )
            )
        return controllers

    def _gpu_from_sysfs(self) -> list[GpuController]:
        if not PCI_DEVICES.exists():
            if sys.platform.startswith("linux"):
                return []
            raise RuntimeError(f"GPU detection is not supported on {sys.platform}")

        controllers: list[GpuController] = []
        for dev in sorted(PCI_DEVICES.iterdir()):
            try:
                pci_class = int((dev / "class").read_text().strip(), 16)
                if (pci_class >> 16) != 0x03:  # not a display class
                    continue
                vendor_hex = (dev / "vendor").read_text().strip().lower()
                device_hex = (dev / "device").read_text().strip().lower()
            except (OSError, ValueError):
                continue
            controllers.append(
                GpuController(
                    vendor=_PCI_VENDORS.get(vendor_hex, vendor_hex),
                    model=f"device {device_hex}",
                )
            )
        return controllers

    def fetch_network(self) -> tuple[NetworkInterface, ...]:
        """
        Measure per-interface throughput from two counter samples.

        Loopback interfaces are excluded; the busiest interface comes first.
        """
        before = psutil.net_io_counters(pernic=True)
        start = time.monotonic()
        time.sleep(self.sample_interval)
        after = psutil.net_io_counters(pernic=True)
        elapsed = max(time.monotonic() - start, 1e-6)

        interfaces: list[tuple[int, NetworkInterface]] = []
        for name, counters in after.items():
            if name.startswith("lo"):
                continue
            prev = before.get(name)
            if prev is None:
                continue
            rx = max(counters.bytes_recv - prev.bytes_recv, 0) / elapsed
            tx = max(counters.bytes_sent - prev.bytes_sent, 0) / elapsed
            activity = counters.bytes_recv + counters.bytes_sent
            interfaces.append(
                (activity, NetworkInterface(iface=name, rx_bytes_per_sec=rx, tx_bytes_per_sec=tx))
            )

        interfaces.sort(key=lambda item: item[0], reverse=True)
        return tuple(iface for _, iface in interfaces)

    def fetch_os(self) -> OsInfo:
        distro = None
        try:
            distro = platform.freedesktop_os_release().get("PRETTY_NAME")
        except OSError:
            pass  # Not a freedesktop system
        if not distro:
            distro = f"{platform.system()} {platform.release()}".strip() or None
        return OsInfo(distro=distro, platform=sys.platform)

    def fetch_uptime(self) -> UptimeInfo:
        return UptimeInfo(seconds=max(0.0, time.time() - psutil.boot_time()))

    def fetch_processes(self) -> ProcessInfo:
        """
        Collect running processes ordered by CPU usage, busiest first.

        psutil reports 0.0 on the first cpu_percent() call for a process, so
        the process table is primed, then sampled again after the interval.
        Handles AccessDenied, NoSuchProcess and ZombieProcess errors gracefully.
        """
        for proc in psutil.process_iter():
            try:
                proc.cpu_percent(interval=None)
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue

        time.sleep(self.sample_interval)

        entries: list[ProcessEntry] = []
        # process_iter skips processes that died mid-poll and fills attributes
        # it is denied access to with None
        for proc in psutil.process_iter(attrs=["name", "cpu_percent"]):
            info = proc.info
            entries.append(
                ProcessEntry(
                    name=info.get("name") or None,
                    cpu_percent=info.get("cpu_percent") or 0.0,
                )
            )

        if not entries:
            raise RuntimeError("no processes could be read")

        entries.sort(key=lambda p: p.cpu_percent or 0.0, reverse=True)
        return ProcessInfo(total=len(entries), entries=tuple(entries))
