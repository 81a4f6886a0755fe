"""
Workflow Runner
===============

Main orchestration class: walks a workflow's steps in order, feeds each one
through the step dispatcher and accumulates results keyed by step id.

The first failing step aborts the run with a ``StepError`` carrying the step
id, the underlying cause and the results produced so far.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Tuple

from ..core.config import Config, get_config
from ..core.exceptions import NilWorkflowError, StepError
from .dispatcher import StepDispatcher
from .models import StepValue, Workflow

logger = logging.getLogger(__name__)


@dataclass
class WorkflowRun:
    """Record of a completed workflow execution."""

    workflow_name: str
    output: str
    results: Dict[str, StepValue] = field(default_factory=dict)
    final: Optional[StepValue] = None
    step_durations: Dict[str, float] = field(default_factory=dict)
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    @property
    def final_value(self) -> Any:
        """Raw value of the last step's result (None for an empty workflow)."""
        return self.final.value if self.final is not None else None

    @property
    def duration(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflow": self.workflow_name,
            "output": self.output,
            "final": self.final.describe() if self.final is not None else None,
            "results": {k: v.describe() for k, v in self.results.items()},
            "step_durations": self.step_durations,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": round(self.duration, 3),
        }


class WorkflowService:
    """
    Executes workflows.

    Usage:
        async with WorkflowService() as service:
            result, output = await service.generate(workflow, {"topic": "cats"})

    Args:
        config: Library configuration (process default when omitted)
        dispatcher: Pre-built step dispatcher
        **dispatcher_kwargs: Collaborators for a new dispatcher
            (provider_factory, combiner, downloader, storage, guard)
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        dispatcher: Optional[StepDispatcher] = None,
        **dispatcher_kwargs: Any,
    ):
        self.config = config or get_config()
        self.dispatcher = dispatcher or StepDispatcher(self.config, **dispatcher_kwargs)

    async def generate(
        self,
        workflow: Optional[Workflow],
        inputs: Optional[Mapping[str, Any]] = None,
    ) -> Tuple[Any, str]:
        """
        Execute a workflow.

        Args:
            workflow: Workflow to run
            inputs: Values available to ``${name}`` references

        Returns:
            Tuple of (raw value of the last step's result, workflow output label)

        Raises:
            NilWorkflowError: If no workflow is given
            InvalidWorkflowError: On empty or duplicate step ids
            StepError: If a step fails
        """
        run = await self.run(workflow, inputs)
        return run.final_value, run.output

    async def run(
        self,
        workflow: Optional[Workflow],
        inputs: Optional[Mapping[str, Any]] = None,
    ) -> WorkflowRun:
        """Execute a workflow and return every intermediate result."""
        if workflow is None:
            raise NilWorkflowError()
        workflow.validate()

        inputs = inputs if inputs is not None else {}
        run = WorkflowRun(workflow_name=workflow.name, output=workflow.output)
        total = len(workflow.steps)
        logger.info(f"Running workflow '{workflow.name}' ({total} steps)")

        for index, step in enumerate(workflow.steps, 1):
            logger.info(f"[{index}/{total}] Step {step.id} ({step.function_type})")
            started = time.monotonic()
            try:
                value = await self.dispatcher.dispatch(step, inputs, run.results)
            except Exception as e:
                logger.error(f"Step {step.id} failed: {e}")
                raise StepError(step.id, e, run.results) from e

            run.results[step.id] = value
            run.step_durations[step.id] = round(time.monotonic() - started, 3)

        if workflow.steps:
            run.final = run.results[workflow.steps[-1].id]
        run.completed_at = datetime.now()

        logger.info(f"Workflow '{workflow.name}' completed in {run.duration:.1f}s")
        return run

    async def close(self) -> None:
        await self.dispatcher.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
