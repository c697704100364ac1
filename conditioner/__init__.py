"""Conditioner — conditional activation of behaviors on managed targets.

Each target declares candidate implementations gated by condition
expressions over live environment probes.  The engine keeps at most one
candidate active per target and swaps it as conditions change.
"""

__version__ = "0.8.5"

from conditioner.activation import (
    ActivationGroup,
    BaseBehavior,
    CandidateBinding,
    CandidateDeclaration,
    ExecutionResult,
    SuitabilityEvaluator,
    TargetDeclaration,
)
from conditioner.engine import Conditioner, create_engine
from conditioner.events import EventBus
from conditioner.exceptions import ConditionerError
from conditioner.probes import Probe, ProbeRegistry

__all__ = [
    "ActivationGroup",
    "BaseBehavior",
    "CandidateBinding",
    "CandidateDeclaration",
    "Conditioner",
    "ConditionerError",
    "EventBus",
    "ExecutionResult",
    "Probe",
    "ProbeRegistry",
    "SuitabilityEvaluator",
    "TargetDeclaration",
    "create_engine",
    "__version__",
]
