"""Probe layer — environment signals referenced by condition leaves.

Quick start::

    from conditioner.probes import Probe, ProbeRegistry

    class OnlineProbe(Probe):
        PROBE_ID = "online"

        def check(self, expected, context):
            return expected == "yes"

    registry = ProbeRegistry()
    registry.register(OnlineProbe)
"""

from conditioner.probes.base import ChangeCallback, LiveTest, Probe, UnavailableProbe
from conditioner.probes.builtin import (
    EnvProbe,
    FlagProbe,
    PlatformProbe,
    ResourceProbe,
    register_builtin_probes,
)
from conditioner.probes.registry import ProbeReadyCallback, ProbeRegistry

__all__ = [
    "ChangeCallback",
    "EnvProbe",
    "FlagProbe",
    "LiveTest",
    "PlatformProbe",
    "Probe",
    "ProbeReadyCallback",
    "ProbeRegistry",
    "ResourceProbe",
    "UnavailableProbe",
    "register_builtin_probes",
]
