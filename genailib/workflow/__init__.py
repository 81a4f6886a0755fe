"""
Workflow Module
===============

The step-execution engine: workflow models, variable interpolation, the
step dispatcher and the workflow runner.
"""

from .models import FunctionType, ValueKind, StepValue, WorkflowStep, Workflow
from .interpolate import interpolate
from .guard import PromptGuard
from .dispatcher import StepDispatcher
from .runner import WorkflowService, WorkflowRun

__all__ = [
    "FunctionType",
    "ValueKind",
    "StepValue",
    "WorkflowStep",
    "Workflow",
    "interpolate",
    "PromptGuard",
    "StepDispatcher",
    "WorkflowService",
    "WorkflowRun",
]
