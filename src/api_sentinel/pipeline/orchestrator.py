"""Per-source pipeline: detect, diff, classify, persist, alert."""

import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from ..alerting.dispatcher import AlertDispatcher
from ..alerting.renderer import AlertContext
from ..classification.severity_classifier import SeverityClassifier
from ..detection.change_detector import ChangeDetector
from ..diffing.document_loader import load_document, looks_like_api_document
from ..diffing.schema_differ import SchemaDiffer
from ..models import AlertDispatchOutcome, AnalysisResult, AnalyzeRequest, HealthState
from ..storage.sqlite_store import SQLiteStore
from ..utils.error_handling import PersistenceError
from .monitor_registry import MonitorRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineRun:
    """Outcome of one orchestrated run for a single source.

    ``status`` is one of ``unchanged``, ``baseline``, ``analyzed`` or ``error``.
    """
    source_id: str
    status: str
    analysis: Optional[AnalysisResult] = None
    analysis_id: Optional[int] = None
    alerts: List[AlertDispatchOutcome] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status != "error"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sourceId": self.source_id,
            "status": self.status,
            "analysis": self.analysis.to_dict() if self.analysis else None,
            "analysisId": self.analysis_id,
            "alerts": [dataclasses.asdict(outcome) for outcome in self.alerts],
            "error": self.error,
        }


class PipelineOrchestrator:
    """Coordinates the pipeline for each source and isolates its failures.

    This is the only place where per-source exceptions are caught: a
    failing source records its error and leaves every other source
    untouched.
    """

    def __init__(self, store: SQLiteStore,
                 dispatcher: Optional[AlertDispatcher] = None,
                 detector: Optional[ChangeDetector] = None,
                 differ: Optional[SchemaDiffer] = None,
                 classifier: Optional[SeverityClassifier] = None,
                 registry: Optional[MonitorRegistry] = None):
        self.store = store
        self.dispatcher = dispatcher or AlertDispatcher(store=store)
        self.detector = detector or ChangeDetector(store)
        self.differ = differ or SchemaDiffer()
        self.classifier = classifier or SeverityClassifier()
        self.registry = registry or MonitorRegistry()
        self._states: Dict[str, HealthState] = {}

    def state_of(self, source_id: str) -> HealthState:
        return self._states.get(source_id, HealthState.IDLE)

    async def analyze(self, request: AnalyzeRequest) -> PipelineRun:
        """Run the full pipeline for one source.

        Args:
            request: Source identity and raw document content

        Returns:
            PipelineRun describing what happened; never raises for
            per-source failures
        """
        source_id = request.source_id
        self._states[source_id] = HealthState.RUNNING
        logger.info(f"Analyzing source {source_id} (project {request.project_id})")

        try:
            run = await self._analyze(request)
        except asyncio.CancelledError:
            self._states[source_id] = HealthState.IDLE
            raise
        except Exception as e:
            logger.error(f"Analysis failed for source {source_id}: {e}")
            await self._record_failure(request, e)
            self._states[source_id] = HealthState.ERROR
            return PipelineRun(source_id=source_id, status="error", error=str(e))

        self._states[source_id] = HealthState.HEALTHY
        return run

    async def _analyze(self, request: AnalyzeRequest) -> PipelineRun:
        content = load_document(request.raw_content, request.source_path)
        if content and not looks_like_api_document(content):
            logger.warning(
                f"Source {request.source_id} lacks an openapi/swagger marker, info or paths; "
                f"comparing it structurally anyway"
            )
        detection = await self.detector.detect(
            request.source_id, request.project_id, content, request.commit_ref
        )

        if not detection.is_new:
            logger.info(f"No changes for source {request.source_id}")
            await self._mark_healthy(request)
            return PipelineRun(source_id=request.source_id, status="unchanged")

        previous = detection.previous
        created = detection.created
        comparison = self.differ.compare(previous.content if previous else {}, created.content)
        result = dataclasses.replace(
            self.classifier.classify(comparison),
            new_version_id=created.id,
            old_version_id=previous.id if previous else None,
        )

        analysis_id = await asyncio.to_thread(
            self.store.create_change_analysis, request.project_id, request.source_id, result
        )
        await self._mark_healthy(request)

        if previous is None:
            logger.info(f"Baseline version {created.id} recorded for source {request.source_id}")
            return PipelineRun(request.source_id, "baseline", result, analysis_id)

        outcomes: List[AlertDispatchOutcome] = []
        if result.has_breaking_changes:
            outcomes = await self._send_alerts(request, result, analysis_id)
        return PipelineRun(request.source_id, "analyzed", result, analysis_id, outcomes)

    async def _send_alerts(self, request: AnalyzeRequest, result: AnalysisResult,
                           analysis_id: int) -> List[AlertDispatchOutcome]:
        configs = await asyncio.to_thread(self.store.get_alert_configs, request.project_id)
        project = await asyncio.to_thread(self.store.get_project, request.project_id)
        context = AlertContext(
            project_name=(project or {}).get("name") or request.project_id,
            source_path=request.source_path,
            commit_ref=request.commit_ref,
        )
        logger.warning(
            f"{len(result.breaking_changes)} breaking change(s) in source {request.source_id}, "
            f"alerting {len(configs)} channel(s)"
        )
        return await self.dispatcher.dispatch(
            result, configs, context, project_id=request.project_id, analysis_id=analysis_id
        )

    async def _mark_healthy(self, request: AnalyzeRequest):
        await asyncio.to_thread(self.store.clear_source_error, request.source_id)
        await self._refresh_project_health(request.project_id)

    async def _record_failure(self, request: AnalyzeRequest, error: Exception):
        try:
            await asyncio.to_thread(
                self.store.update_source_error, request.source_id, str(error), request.project_id
            )
            await self._refresh_project_health(request.project_id)
        except PersistenceError as store_error:
            logger.error(f"Could not record failure for source {request.source_id}: {store_error}")

    async def _refresh_project_health(self, project_id: str):
        sources = await asyncio.to_thread(self.store.get_project_sources, project_id)
        healthy = all(source["health"] != HealthState.ERROR.value for source in sources)
        await asyncio.to_thread(
            self.store.update_project_health,
            project_id,
            HealthState.HEALTHY if healthy else HealthState.ERROR,
        )

    async def run_batch(self, requests: Sequence[AnalyzeRequest]) -> List[PipelineRun]:
        """Analyze several sources concurrently; failures stay per source."""
        runs = await asyncio.gather(*(self.analyze(request) for request in requests))
        failed = sum(1 for run in runs if not run.succeeded)
        logger.info(f"Batch completed: {len(runs) - failed}/{len(runs)} sources succeeded")
        return list(runs)

    def watch(self, source_id: str, project_id: str,
              fetch: Callable[[], Awaitable[Union[str, bytes, Dict[str, Any]]]],
              frequency: Union[str, int, float, None] = "daily",
              source_path: Optional[str] = None) -> float:
        """Periodically fetch a source's content and analyze it.

        Args:
            source_id: Source identifier
            project_id: Owning project identifier
            fetch: Coroutine factory returning the raw document
            frequency: Monitoring frequency, see ``interval_for``
            source_path: Path used for parser selection and alert messages

        Returns:
            The monitoring interval in seconds
        """
        async def poll():
            try:
                raw = await fetch()
            except Exception as e:
                logger.error(f"Fetching source {source_id} failed: {e}")
                request = AnalyzeRequest(source_id, project_id, None, source_path=source_path)
                await self._record_failure(request, e)
                self._states[source_id] = HealthState.ERROR
                return
            await self.analyze(AnalyzeRequest(source_id, project_id, raw, source_path=source_path))

        return self.registry.schedule(source_id, frequency, poll)
