"""Activation layer — suitability, candidate bindings and per-target arbitration."""

from conditioner.activation.behavior import BaseBehavior
from conditioner.activation.binding import (
    STATUS_NOT_AVAILABLE,
    STATUS_OK,
    CandidateBinding,
    ExecutionResult,
)
from conditioner.activation.declarations import (
    CandidateDeclaration,
    TargetDeclaration,
    coerce_declaration,
    parse_declaration,
    parse_options,
)
from conditioner.activation.group import ActivationGroup
from conditioner.activation.implementations import (
    ImplementationFactory,
    ImplementationRegistry,
    ImplementationResolver,
)
from conditioner.activation.suitability import SuitabilityEvaluator, SuitabilityState

__all__ = [
    "ActivationGroup",
    "BaseBehavior",
    "CandidateBinding",
    "CandidateDeclaration",
    "ExecutionResult",
    "ImplementationFactory",
    "ImplementationRegistry",
    "ImplementationResolver",
    "STATUS_NOT_AVAILABLE",
    "STATUS_OK",
    "SuitabilityEvaluator",
    "SuitabilityState",
    "TargetDeclaration",
    "coerce_declaration",
    "parse_declaration",
    "parse_options",
]
