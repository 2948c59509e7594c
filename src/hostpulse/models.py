"""Data models for hostpulse."""

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any


def _number(value: Any) -> float | None:
    """Return value if it is a finite real number (bool excluded), else None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _text(value: Any) -> str | None:
    """Return value if it is a non-empty string, else None."""
    return value if isinstance(value, str) and value else None


def _mapping(value: Any) -> Mapping[str, Any] | None:
    return value if isinstance(value, Mapping) else None


def _sequence(value: Any) -> list[Any] | None:
    return value if isinstance(value, list) else None


@dataclass(slots=True, frozen=True)
class CpuInfo:
    """CPU load, overall and per core."""

    current_load: float  # 0.0 - 100.0
    per_core_loads: tuple[float, ...] = ()

    @property
    def core_count(self) -> int:
        return len(self.per_core_loads)


@dataclass(slots=True, frozen=True)
class MemoryInfo:
    """Physical memory usage."""

    used_bytes: int
    total_bytes: int


@dataclass(slots=True, frozen=True)
class DiskInfo:
    """Usage of one mounted filesystem."""

    mount: str
    used_bytes: int | None
    size_bytes: int | None
    use_percent: float | None = None


@dataclass(slots=True, frozen=True)
class GpuController:
    vendor: str | None
    model: str | None


@dataclass(slots=True, frozen=True)
class GpuInfo:
    controllers: tuple[GpuController, ...] = ()


@dataclass(slots=True, frozen=True)
class NetworkInterface:
    """Throughput of one network interface."""

    iface: str
    rx_bytes_per_sec: float | None
    tx_bytes_per_sec: float | None


@dataclass(slots=True, frozen=True)
class OsInfo:
    distro: str | None
    platform: str | None  # 'linux', 'darwin', 'win32', etc.


@dataclass(slots=True, frozen=True)
class UptimeInfo:
    seconds: float


@dataclass(slots=True, frozen=True)
class ProcessEntry:
    name: str | None
    cpu_percent: float | None


@dataclass(slots=True, frozen=True)
class ProcessInfo:
    """Process count and list, most CPU-active process first."""

    total: int | float | None  # reported count, kept as sent by the client
    entries: tuple[ProcessEntry, ...] = ()


@dataclass(slots=True, frozen=True)
class Snapshot:
    """
    Immutable bundle of every telemetry category captured at one point in time.

    Any category may be None when it could not be read. The same model backs
    the /stats body and the payload chat clients send back with a question:
    to_payload() renders it in the systeminformation-compatible shape and
    from_payload() parses that shape, validating each field once.
    """

    cpu: CpuInfo | None = None
    memory: MemoryInfo | None = None
    disks: tuple[DiskInfo, ...] | None = None
    gpu: GpuInfo | None = None
    network: tuple[NetworkInterface, ...] | None = None
    os: OsInfo | None = None
    uptime: UptimeInfo | None = None
    processes: ProcessInfo | None = None
    # Payload keys a client sent that yielded no readable category
    unreadable: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        """True when nothing at all was supplied, readable or not."""
        return not self.unreadable and all(
            value is None
            for value in (
                self.cpu,
                self.memory,
                self.disks,
                self.gpu,
                self.network,
                self.os,
                self.uptime,
                self.processes,
            )
        )

    def to_payload(self) -> dict[str, Any]:
        """Render the snapshot as the JSON body served by GET /stats."""
        payload: dict[str, Any] = dict.fromkeys(
            ("cpu", "memory", "gpu", "processes", "disks", "network", "os", "uptime")
        )

        if self.cpu is not None:
            payload["cpu"] = {
                "currentLoad": self.cpu.current_load,
                "cpus": [{"load": load} for load in self.cpu.per_core_loads],
            }
        if self.memory is not None:
            payload["memory"] = {
                "used": self.memory.used_bytes,
                "total": self.memory.total_bytes,
            }
        if self.gpu is not None:
            payload["gpu"] = {
                "controllers": [
                    {"vendor": c.vendor, "model": c.model} for c in self.gpu.controllers
                ]
            }
        if self.processes is not None:
            payload["processes"] = {
                "all": self.processes.total,
                "list": [
                    {"name": p.name, "cpu": p.cpu_percent} for p in self.processes.entries
                ],
            }
        if self.disks is not None:
            payload["disks"] = [
                {"fs": d.mount, "used": d.used_bytes, "size": d.size_bytes, "use": d.use_percent}
                for d in self.disks
            ]
        if self.network is not None:
            payload["network"] = [
                {"iface": n.iface, "rx_sec": n.rx_bytes_per_sec, "tx_sec": n.tx_bytes_per_sec}
                for n in self.network
            ]
        if self.os is not None:
            payload["os"] = {"distro": self.os.distro, "platform": self.os.platform}
        if self.uptime is not None:
            payload["uptime"] = {"uptime": self.uptime.seconds}

        return payload

    @classmethod
    def from_payload(cls, payload: Any) -> "Snapshot | None":
        """
        Parse a client-supplied stats object.

        Returns None when the payload is not a mapping at all. Missing or
        mistyped categories become None instead of raising; keys that were
        sent but could not be read are listed in `unreadable`, so that a
        non-empty payload is never mistaken for no data.
        """
        data = _mapping(payload)
        if data is None:
            return None

        categories = {
            "cpu": _parse_cpu(data.get("cpu")),
            "memory": _parse_memory(data.get("memory")),
            "disks": _parse_disks(data.get("disks")),
            "gpu": _parse_gpu(data.get("gpu")),
            "network": _parse_network(data.get("network")),
            "os": _parse_os(data.get("os")),
            "uptime": _parse_uptime(data.get("uptime")),
            "processes": _parse_processes(data.get("processes")),
        }
        unreadable = tuple(
            sorted(str(key) for key in data if categories.get(key) is None)
        )
        return cls(**categories, unreadable=unreadable)


def _parse_cpu(raw: Any) -> CpuInfo | None:
    cpu = _mapping(raw)
    if cpu is None:
        return None
    load = _number(cpu.get("currentLoad"))
    if load is None:
        return None
    cores = _sequence(cpu.get("cpus")) or []
    per_core = []
    for core in cores:
        core_load = _number(core.get("load")) if isinstance(core, Mapping) else None
        per_core.append(float(core_load) if core_load is not None else 0.0)
    return CpuInfo(current_load=float(load), per_core_loads=tuple(per_core))


def _parse_memory(raw: Any) -> MemoryInfo | None:
    memory = _mapping(raw)
    if memory is None:
        return None
    used = _number(memory.get("used"))
    total = _number(memory.get("total"))
    if used is None or total is None:
        return None
    return MemoryInfo(used_bytes=int(used), total_bytes=int(total))


def _parse_disks(raw: Any) -> tuple[DiskInfo, ...] | None:
    disks = _sequence(raw)
    if disks is None:
        return None
    parsed = []
    for disk in disks:
        if not isinstance(disk, Mapping):
            parsed.append(DiskInfo(mount="", used_bytes=None, size_bytes=None))
            continue
        used = _number(disk.get("used"))
        size = _number(disk.get("size"))
        use = _number(disk.get("use"))
        parsed.append(
            DiskInfo(
                mount=_text(disk.get("fs")) or _text(disk.get("mount")) or "",
                used_bytes=int(used) if used is not None else None,
                size_bytes=int(size) if size is not None else None,
                use_percent=float(use) if use is not None else None,
            )
        )
    return tuple(parsed)


def _parse_gpu(raw: Any) -> GpuInfo | None:
    gpu = _mapping(raw)
    if gpu is None:
        return None
    controllers = _sequence(gpu.get("controllers"))
    if controllers is None:
        return None
    parsed = []
    for controller in controllers:
        if not isinstance(controller, Mapping):
            controller = {}
        parsed.append(
            GpuController(
                vendor=_text(controller.get("vendor")), model=_text(controller.get("model"))
            )
        )
    return GpuInfo(controllers=tuple(parsed))


def _parse_network(raw: Any) -> tuple[NetworkInterface, ...] | None:
    interfaces = _sequence(raw)
    if interfaces is None:
        return None
    parsed = []
    for iface in interfaces:
        if not isinstance(iface, Mapping):
            parsed.append(NetworkInterface(iface="", rx_bytes_per_sec=None, tx_bytes_per_sec=None))
            continue
        rx = _number(iface.get("rx_sec"))
        tx = _number(iface.get("tx_sec"))
        parsed.append(
            NetworkInterface(
                iface=_text(iface.get("iface")) or "",
                rx_bytes_per_sec=float(rx) if rx is not None else None,
                tx_bytes_per_sec=float(tx) if tx is not None else None,
            )
        )
    return tuple(parsed)


def _parse_os(raw: Any) -> OsInfo | None:
    os_info = _mapping(raw)
    if os_info is None:
        return None
    return OsInfo(distro=_text(os_info.get("distro")), platform=_text(os_info.get("platform")))


def _parse_uptime(raw: Any) -> UptimeInfo | None:
    uptime = _mapping(raw)
    if uptime is None:
        return None
    seconds = _number(uptime.get("uptime"))
    if seconds is None:
        return None
    return UptimeInfo(seconds=float(seconds))


def _parse_processes(raw: Any) -> ProcessInfo | None:
    processes = _mapping(raw)
    if processes is None:
        return None
    entries = _sequence(processes.get("list"))
    if entries is None:
        return None
    total = _number(processes.get("all"))
    parsed = []
    for entry in entries:
        if not isinstance(entry, Mapping):
            parsed.append(ProcessEntry(name=None, cpu_percent=None))
            continue
        cpu = _number(entry.get("cpu"))
        parsed.append(
            ProcessEntry(
                name=_text(entry.get("name")),
                cpu_percent=float(cpu) if cpu is not None else None,
            )
        )
    if isinstance(total, float) and total.is_integer():
        total = int(total)
    return ProcessInfo(total=total, entries=tuple(parsed))
