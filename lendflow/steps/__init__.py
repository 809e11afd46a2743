"""Transaction step functions."""

from .base import StepContext, StepScope, StepSpec, step_scope, submit

__all__ = ["StepContext", "StepScope", "StepSpec", "step_scope", "submit"]
