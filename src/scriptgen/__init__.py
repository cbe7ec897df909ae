"""Composition of SQL Server provisioning and validation scripts."""

from scriptgen.composer import (
    Pipeline,
    compose,
    interaction_permission_pipeline,
    order_fragments,
    provisioning_permission_pipeline,
    structural_validation_pipeline,
    verify_order,
)
from scriptgen.errors import CompositionError, PreconditionError
from scriptgen.namespace import NamespaceAllocator
from scriptgen.outcome import ErrorCategory, Outcome, SuccessToken, parse_outcome_token
from scriptgen.provisioning import build_create_database_script

__all__ = [
    "CompositionError",
    "ErrorCategory",
    "NamespaceAllocator",
    "Outcome",
    "Pipeline",
    "PreconditionError",
    "SuccessToken",
    "build_create_database_script",
    "compose",
    "interaction_permission_pipeline",
    "order_fragments",
    "parse_outcome_token",
    "provisioning_permission_pipeline",
    "structural_validation_pipeline",
    "verify_order",
]
