"""HTTP interface: CI validation, on-demand analysis, test alerts and health."""

import dataclasses
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Union

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..alerting.dispatcher import AlertDispatcher
from ..ci.validation_gate import DeploymentGate
from ..models import AlertChannelConfig, AnalyzeRequest
from ..pipeline.orchestrator import PipelineOrchestrator
from ..storage.sqlite_store import SQLiteStore
from ..utils.config import load_config
from ..utils.error_handling import ValidationError

logger = logging.getLogger(__name__)


class ValidateBody(BaseModel):
    projectId: Optional[str] = None
    newSchema: Optional[Union[Dict[str, Any], str]] = None
    environment: Optional[str] = None


class AnalyzeBody(BaseModel):
    sourceId: Optional[str] = None
    projectId: Optional[str] = None
    rawContent: Optional[Union[Dict[str, Any], str]] = None
    commitRef: Optional[str] = None
    sourcePath: Optional[str] = None


class TestAlertBody(BaseModel):
    type: Optional[str] = None
    parameters: Dict[str, Any] = {}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message})


def create_app(config: Optional[Dict[str, Any]] = None,
               store: Optional[SQLiteStore] = None,
               dispatcher: Optional[AlertDispatcher] = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Configuration from ``load_config()`` (loaded when None)
        store: Store to use instead of the configured database
        dispatcher: Alert dispatcher to use instead of one built from config

    Returns:
        Configured FastAPI app
    """
    config = config if config is not None else load_config()
    store = store or SQLiteStore.from_config(config)
    dispatcher = dispatcher or AlertDispatcher.from_config(config, store=store)
    orchestrator = PipelineOrchestrator(store, dispatcher=dispatcher)
    gate = DeploymentGate(store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        stopped = orchestrator.registry.cancel_all()
        if stopped:
            logger.info(f"Stopped {stopped} monitoring timer(s)")

    app = FastAPI(
        title="API Sentinel",
        version="1.0.0",
        description="Breaking-change detection and alerting for OpenAPI/Swagger documents",
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.orchestrator = orchestrator
    app.state.gate = gate

    @app.post("/api/ci/validate")
    def validate_deployment(body: ValidateBody):
        """Approve or block a deployment based on breaking changes."""
        if not body.projectId or body.newSchema is None or body.newSchema == "":
            return _error(400, "Project ID and new schema are required")
        try:
            return gate.evaluate(body.projectId, body.newSchema, body.environment)
        except ValidationError as e:
            logger.warning(f"Rejected invalid schema for project {body.projectId}: {e}")
            return _error(422, str(e))
        except Exception:
            logger.exception("Error validating CI/CD")
            return _error(500, "Failed to validate deployment")

    @app.post("/api/analyze")
    async def analyze_source(body: AnalyzeBody):
        """Run the detection pipeline for one source."""
        if not body.sourceId or not body.projectId or body.rawContent is None:
            return _error(400, "Source ID, project ID and raw content are required")
        run = await orchestrator.analyze(AnalyzeRequest(
            source_id=body.sourceId,
            project_id=body.projectId,
            raw_content=body.rawContent,
            commit_ref=body.commitRef,
            source_path=body.sourcePath,
        ))
        return run.to_dict()

    @app.post("/api/alerts/test")
    async def test_alert(body: TestAlertBody):
        """Send a test message through a channel configuration."""
        if not body.type:
            return _error(400, "Channel type is required")
        result = await dispatcher.send_test(AlertChannelConfig(type=body.type, parameters=body.parameters))
        return dataclasses.asdict(result)

    @app.get("/api/sources/{source_id}/health")
    def source_health(source_id: str):
        health = store.get_source_health(source_id)
        if health is None:
            raise HTTPException(status_code=404, detail="Source not found")
        return {
            "sourceId": health.source_id,
            "state": health.state.value,
            "lastError": health.last_error,
            "lastErrorAt": health.last_error_at,
        }

    return app
