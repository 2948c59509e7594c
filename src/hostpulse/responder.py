"""Rule-based responder that answers questions about a telemetry snapshot."""

import logging
from collections.abc import Callable

from hostpulse.models import Snapshot

logger = logging.getLogger(__name__)

WAITING_MESSAGE = (
    "I'm still waiting for the first batch of system data. Please try again in a moment."
)
HELP_MESSAGE = (
    "I can answer questions about CPU, memory, disk, GPU, network, OS, and processes. "
    "How can I assist you?"
)
ERROR_MESSAGE = "I ran into an issue interpreting the data. Please try again."

CPU_FALLBACK = "I couldn't read the current CPU load."
MEMORY_FALLBACK = "I couldn't read memory usage data."
DISK_FALLBACK = "I couldn't retrieve any disk storage information from the system."
GPU_FALLBACK = "I couldn't retrieve specific GPU details from the system."
NETWORK_FALLBACK = "I couldn't retrieve any network activity information."
PROCESS_FALLBACK = "I was unable to retrieve details about running processes."

GIB = 1024**3


def format_gib(size: int) -> str:
    """Format bytes as gibibytes with two decimals."""
    return f"{size / GIB:.2f}"


def format_kib_rate(rate: float | None) -> str:
    """Format bytes/sec as KiB/s with one decimal, '0.0' when unknown."""
    if rate is None:
        return "0.0"
    return f"{rate / 1024:.1f}"


def _cpu_reply(snapshot: Snapshot) -> str:
    cpu = snapshot.cpu
    if cpu is None:
        return CPU_FALLBACK
    cores = f"{cpu.core_count} cores" if cpu.core_count else "multiple cores"
    return (
        f"✅ CPU load is currently at {cpu.current_load:.1f}%. "
        f"The system is running on {cores}."
    )


def _memory_reply(snapshot: Snapshot) -> str:
    memory = snapshot.memory
    if memory is None or memory.total_bytes <= 0:
        return MEMORY_FALLBACK
    return (
        f"✅ Memory usage is at {format_gib(memory.used_bytes)} GB "
        f"out of {format_gib(memory.total_bytes)} GB total."
    )


def _disk_reply(snapshot: Snapshot) -> str:
    if not snapshot.disks:
        return DISK_FALLBACK
    disk = snapshot.disks[0]
    if disk.used_bytes is None or disk.size_bytes is None:
        return DISK_FALLBACK
    percent = f" ({disk.use_percent:.1f}%)" if disk.use_percent is not None else ""
    return (
        f"✅ The main disk has used {format_gib(disk.used_bytes)} GB "
        f"of {format_gib(disk.size_bytes)} GB{percent}."
    )


def _gpu_reply(snapshot: Snapshot) -> str:
    if snapshot.gpu is None or not snapshot.gpu.controllers:
        return GPU_FALLBACK
    controller = snapshot.gpu.controllers[0]
    vendor = controller.vendor or "Unknown vendor"
    model = controller.model or "Unknown model"
    return f"✅ The graphics card is a {vendor} {model}."


def _network_reply(snapshot: Snapshot) -> str:
    if not snapshot.network:
        return NETWORK_FALLBACK
    iface = snapshot.network[0]
    down = format_kib_rate(iface.rx_bytes_per_sec)
    up = format_kib_rate(iface.tx_bytes_per_sec)
    return f"✅ Current network speed is {down} KB/s download and {up} KB/s upload."


def _os_reply(snapshot: Snapshot) -> str:
    os_info = snapshot.os
    distro = (os_info and os_info.distro) or "Unknown OS"
    platform = (os_info and os_info.platform) or "unknown platform"
    hours = f"{snapshot.uptime.seconds / 3600:.2f}" if snapshot.uptime is not None else "unknown"
    return (
        f"✅ The OS is {distro} on the {platform} platform. "
        f"The system has been running for {hours} hours."
    )


def _process_reply(snapshot: Snapshot) -> str:
    processes = snapshot.processes
    if processes is None or not processes.entries:
        return PROCESS_FALLBACK
    top = processes.entries[0]
    name = top.name or "unknown process"
    cpu = f"{top.cpu_percent:.1f}" if top.cpu_percent is not None else "0.0"
    total = processes.total or len(processes.entries)
    return (
        f"✅ There are {total} processes running. "
        f'The most active is "{name}" using {cpu}% of the CPU.'
    )


# Checked in order; the first topic with a keyword contained in the query wins.
TOPICS: tuple[tuple[tuple[str, ...], Callable[[Snapshot], str]], ...] = (
    (("cpu",), _cpu_reply),
    (("memory", "ram"), _memory_reply),
    (("disk", "storage"), _disk_reply),
    (("gpu", "graphics"), _gpu_reply),
    (("network",), _network_reply),
    (("os", "system"), _os_reply),
    (("process",), _process_reply),
)


def respond(query: str | None, snapshot: Snapshot | None) -> str:
    """
    Answer a free-text question about the given snapshot.

    Never raises: missing data degrades to a per-topic fallback message and
    any unexpected fault is reported as ERROR_MESSAGE.
    """
    try:
        text = query.lower() if isinstance(query, str) else ""

        if snapshot is None or snapshot.is_empty:
            return WAITING_MESSAGE

        for keywords, reply in TOPICS:
            if any(keyword in text for keyword in keywords):
                return reply(snapshot)

        return HELP_MESSAGE
    except Exception:
        logger.exception("Error generating response for query %r", query)
        return ERROR_MESSAGE
