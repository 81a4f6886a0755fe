"""
HTTP Job API
============

FastAPI application that queues workflow runs as background jobs.

Usage:
    uvicorn genailib.server:app --reload --port 8000
"""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional, Dict, Any

from fastapi import FastAPI, BackgroundTasks, HTTPException, Request
from pydantic import BaseModel, Field

from . import __version__
from .api.base import Capability
from .api.factory import list_providers
from .core.exceptions import GenAILibError, StepError
from .workflow.models import Workflow
from .workflow.runner import WorkflowService

logger = logging.getLogger(__name__)


class RunRequest(BaseModel):
    """Request model for a workflow run."""
    workflow: Dict[str, Any]
    inputs: Dict[str, Any] = Field(default_factory=dict)


class JobStatus(BaseModel):
    """Job status response."""
    job_id: str
    status: str
    workflow: Optional[str] = None
    output: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[Dict[str, Any]] = None
    created_at: str
    completed_at: Optional[str] = None


def _get_service(app: FastAPI) -> WorkflowService:
    if app.state.service is None:
        app.state.service = WorkflowService()
        app.state.owns_service = True
    return app.state.service


def _update_job(app: FastAPI, job_id: str, **fields: Any) -> None:
    job = app.state.jobs.get(job_id)
    if job is None:
        logger.info(f"Job {job_id} was deleted, dropping update")
        return
    job.update(fields)


async def run_job(app: FastAPI, job_id: str, workflow: Workflow, inputs: Dict[str, Any]) -> None:
    """Background task executing one workflow run."""
    if job_id not in app.state.jobs:
        logger.info(f"Job {job_id} was deleted before it started")
        return
    _update_job(app, job_id, status="processing")

    try:
        service = _get_service(app)
        run = await service.run(workflow, inputs)
        final = run.final
        result = final.describe() if final is not None else None

        # Publish byte results when storage is configured
        storage = service.dispatcher.storage
        if final is not None and final.is_bytes and storage is not None:
            result["url"] = await storage.upload(final.value, content_type=final.media_type)

        _update_job(
            app, job_id,
            status="completed",
            output=run.output,
            result=result,
            completed_at=datetime.now().isoformat(),
        )

    except StepError as e:
        logger.error(f"Job {job_id} failed at step {e.step_id}: {e.cause}")
        _update_job(app, job_id, status="failed", error=e.to_dict(), completed_at=datetime.now().isoformat())

    except GenAILibError as e:
        logger.error(f"Job {job_id} failed: {e}")
        _update_job(app, job_id, status="failed", error=e.to_dict(), completed_at=datetime.now().isoformat())


def create_app(service: Optional[WorkflowService] = None) -> FastAPI:
    """
    Create the API application.

    Args:
        service: Workflow service to run jobs with (created on first use otherwise)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if app.state.owns_service and app.state.service is not None:
            await app.state.service.close()

    app = FastAPI(
        title="genailib API",
        description="REST API for running generative-media workflows",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.service = service
    app.state.owns_service = False
    app.state.jobs = {}

    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "genailib API",
            "version": __version__,
            "endpoints": {
                "run": "POST /workflows/run",
                "status": "GET /status/{job_id}",
                "delete": "DELETE /job/{job_id}",
                "providers": "GET /providers",
            },
        }

    @app.get("/health")
    async def health(request: Request):
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service_ready": request.app.state.service is not None,
            "jobs": len(request.app.state.jobs),
        }

    @app.get("/providers")
    async def providers():
        """List registered provider identifiers by capability."""
        return {"providers": {cap.value: list_providers(cap) for cap in Capability}}

    @app.post("/workflows/run")
    async def run_workflow(request: RunRequest, background_tasks: BackgroundTasks):
        """
        Queue a workflow run.

        The run executes in the background. Use /status/{job_id} to check progress.
        """
        try:
            workflow = Workflow.from_dict(request.workflow)
            workflow.validate(check_function_types=True)
        except GenAILibError as e:
            raise HTTPException(status_code=422, detail=e.to_dict())

        job_id = f"job_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}"
        app.state.jobs[job_id] = {
            "job_id": job_id,
            "status": "queued",
            "workflow": workflow.name,
            "created_at": datetime.now().isoformat(),
        }

        background_tasks.add_task(run_job, app, job_id, workflow, dict(request.inputs))

        return {
            "job_id": job_id,
            "status": "queued",
            "message": "Workflow queued. Check /status/{job_id} for progress.",
        }

    @app.get("/status/{job_id}", response_model=JobStatus)
    async def get_status(job_id: str):
        """Get the status of a job."""
        if job_id not in app.state.jobs:
            raise HTTPException(status_code=404, detail="Job not found")
        return app.state.jobs[job_id]

    @app.delete("/job/{job_id}")
    async def delete_job(job_id: str):
        """Delete a job from tracking (does not cancel running jobs)."""
        if job_id not in app.state.jobs:
            raise HTTPException(status_code=404, detail="Job not found")

        del app.state.jobs[job_id]
        return {"message": f"Job {job_id} deleted"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000)
