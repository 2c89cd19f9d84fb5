"""
Thread resolver - decides how many worker threads the engine should use

Responsibilities:
- Honour an explicit thread count verbatim
- Otherwise probe the host for its performance core count, falling back
  to the physical core count, and finally to a single thread

Fallback chain (first positive answer wins):
    PerformanceCoreProbe  (heterogeneous-core hosts, e.g. Apple Silicon)
    PhysicalCoreProbe     (psutil physical core count)
    1
"""

import logging
import platform
import subprocess
from typing import List, Optional, Protocol, Sequence

import psutil

logger = logging.getLogger(__name__)

SYSCTL_TIMEOUT_S = 2.0


class CoreProbe(Protocol):
    """Capability that reports a core count, or None when it can't tell"""

    name: str

    def probe(self) -> Optional[int]:
        ...


def _is_apple_silicon() -> bool:
    return platform.system().lower() == "darwin" and platform.machine().lower() in {"arm64", "aarch64"}


class PerformanceCoreProbe:
    """
    Count of physical performance cores

    Apple Silicon exposes performance cores as perflevel0 through sysctl.
    Other platforms have no equivalent query here and report None.
    """

    name = "performance-cores"

    def __init__(self, supported: Optional[bool] = None):
        self.supported = _is_apple_silicon() if supported is None else supported

    def probe(self) -> Optional[int]:
        if not self.supported:
            return None
        try:
            result = subprocess.run(
                ["sysctl", "-n", "hw.perflevel0.physicalcpu"],
                capture_output=True,
                text=True,
                timeout=SYSCTL_TIMEOUT_S,
                check=False,
            )
        except (OSError, subprocess.SubprocessError, ValueError) as exc:
            logger.debug("sysctl probe failed: %s", exc)
            return None

        if result.returncode != 0:
            return None
        try:
            count = int(result.stdout.strip())
        except ValueError:
            return None
        return count if count > 0 else None


class PhysicalCoreProbe:
    """Total physical core count as reported by psutil"""

    name = "physical-cores"

    def probe(self) -> Optional[int]:
        count = psutil.cpu_count(logical=False)
        return count if count and count > 0 else None


def default_probe_chain() -> List[CoreProbe]:
    """Probes tried, in order, when no explicit thread count is given"""
    return [PerformanceCoreProbe(), PhysicalCoreProbe()]


def autodetect_thread_count(probes: Optional[Sequence[CoreProbe]] = None) -> int:
    """
    Probe the host for a thread count

    Args:
        probes: Probes to try in order (defaults to default_probe_chain())

    Returns:
        First positive probe result, or 1 if every probe fails
    """
    for probe in probes if probes is not None else default_probe_chain():
        count = probe.probe()
        if count is not None and count > 0:
            logger.debug("Detected %d threads via %s", count, probe.name)
            return count

    logger.debug("All core probes failed, using a single thread")
    return 1


def resolve_thread_count(
    explicit: Optional[int] = None, probes: Optional[Sequence[CoreProbe]] = None
) -> int:
    """
    Resolve the worker thread count

    Args:
        explicit: User supplied count, returned unmodified when set
        probes: Probe chain for autodetection

    Returns:
        Thread count for the generation engine
    """
    if explicit is not None:
        return explicit
    return autodetect_thread_count(probes)
