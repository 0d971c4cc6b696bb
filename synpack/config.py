from dataclasses import dataclass
from typing import Optional

MODES = ("auto", "syn", "connect")


@dataclass
class ProbeSettings:
    mode: str = "auto"
    count: int = 0                  # 0 = run until interrupted
    timeout: float = 1.0            # per-probe deadline (seconds)
    interval: float = 1.0           # pause between probes (seconds)
    poll_interval: float = 0.1      # receive slice, bounds cancellation latency
    send_reset: bool = False
    source_port: Optional[int] = None

    # ephemeral source port allocation
    port_attempts: int = 10
    port_range: tuple[int, int] = (49152, 65535)
