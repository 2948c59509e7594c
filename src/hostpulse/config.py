"""Runtime settings for hostpulse."""

from dataclasses import dataclass

MIN_SAMPLE_INTERVAL = 0.1


@dataclass(slots=True, frozen=True)
class Settings:
    """
    Settings shared by the provider, the aggregator and the server.

    Args:
        host: Interface the server binds to.
        port: Listening port.
        reply_delay: Seconds to wait before a chat reply is delivered.
        fetch_timeout: Upper bound (seconds) for a single category fetch.
        sample_interval: Window (seconds) over which rates such as CPU load
            and network throughput are measured.
    """

    host: str = "0.0.0.0"
    port: int = 3000
    reply_delay: float = 1.0
    fetch_timeout: float = 5.0
    sample_interval: float = 0.5

    def __post_init__(self) -> None:
        # Clamp like a property setter would; frozen, so go through object.__setattr__
        object.__setattr__(self, "reply_delay", max(0.0, self.reply_delay))
        object.__setattr__(self, "fetch_timeout", max(MIN_SAMPLE_INTERVAL, self.fetch_timeout))
        object.__setattr__(self, "sample_interval", max(MIN_SAMPLE_INTERVAL, self.sample_interval))
