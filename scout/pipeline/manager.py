"""
Pipeline Manager - scout run orchestration.

Runs one mission through the funnel:
  DISCOVERY → INVESTIGATION → ENRICHMENT → STORAGE → PERSISTENCE

Stages run strictly in sequence; each feeds the next. Platform-specific
stages are looked up in the adapter registries by the mission's platform.
Whatever happens, the RunContext ends finalized exactly once; run-level
failures are recorded on it and then re-raised to the caller.
"""
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type

from scout.config import RUN_JOB_TIMEOUT, SUPPORTED_PLATFORMS
from scout.models.run import RunContext
from scout.pipeline import discovery as discovery_mod
from scout.pipeline import enrichment as enrichment_mod
from scout.pipeline.base import PlatformAdapter, get_adapter, get_pipeline_info as base_get_pipeline_info
from scout.pipeline.funnel_config import load_funnel_config
from scout.pipeline.investigation import InvestigationGate
from scout.pipeline.persistence import PersistenceWriter, WriteResult
from scout.pipeline.storage import StorageGate
from scout.services.circuit_breaker import build_breakers
from scout.services.clock import SystemClock
from scout.services.db import (
    MissionNotFoundError,
    RunRecorder,
    load_mission,
    mark_mission_run,
    record_decisions,
)

logger = logging.getLogger('pipeline.manager')


# ── Stage registry ────────────────────────────────────────────────────────────
# Maps platform-specific stage name → dict of platform → adapter class

STAGE_REGISTRY: Dict[str, Dict[str, Type[PlatformAdapter]]] = {
    'discovery': discovery_mod.ADAPTERS,
    'enrichment': enrichment_mod.ADAPTERS,
}

# Pipeline stage → run status while it executes
STATUS_MAP = {
    'discovery': 'searching',
    'investigation': 'analyzing',
    'enrichment': 'analyzing',
    'storage': 'analyzing',
    'persistence': 'storing',
}


@dataclass
class RunSummary:
    run_id: str
    mission_id: str
    status: str
    found: int = 0
    investigated: int = 0
    enriched: int = 0
    approved: int = 0
    stored: int = 0
    failed_writes: int = 0
    error_count: int = 0
    stage_timings: Dict[str, float] = field(default_factory=dict)
    execution_seconds: float = 0.0
    summary: str = ''


class ScoutPipeline:
    """
    Usage:
        clients = build_clients()
        pipeline = ScoutPipeline(clients.fetcher, clients.scoring, clients.session_factory,
                                 redis_client=clients.redis_client)
        summary = pipeline.run(mission_id)
    """

    def __init__(self, fetcher, scoring, session_factory, redis_client=None,
                 clock=None, config: Dict[str, Any] = None):
        self.fetcher = fetcher
        self.scoring = scoring
        self.session_factory = session_factory
        self.recorder = RunRecorder(session_factory, redis_client)
        self.clock = clock or SystemClock()
        self.config = config or load_funnel_config()

    @contextmanager
    def _stage(self, run: RunContext, stage: str):
        """Advance status for the stage and record how long it took."""
        run.advance_to(STATUS_MAP[stage], stage=stage)
        started = self.clock.monotonic()
        try:
            yield
        finally:
            run.record_timing(stage, self.clock.monotonic() - started)

    def run(self, mission_id: str) -> RunSummary:
        started = self.clock.monotonic()
        run = RunContext(mission_id=mission_id, platform='unknown', store=self.recorder)
        run.save()
        failed_writes = 0

        try:
            mission = load_mission(self.session_factory, mission_id)
            if mission.platform not in SUPPORTED_PLATFORMS:
                raise ValueError(f"Unsupported platform: {mission.platform}. Available: {SUPPORTED_PLATFORMS}")
            run.platform = mission.platform
            logger.info("Starting run %s for scout %s (platform=%s, max_results=%d, threshold=%.2f)",
                        run.id, mission.id, mission.platform, mission.max_results, mission.quality_threshold)

            result = self._execute(run, mission)
            if result is not None:
                failed_writes = len(result.failed)

        except Exception as e:
            if isinstance(e, MissionNotFoundError):
                logger.error("Run %s aborted: %s", run.id, e)
            else:
                logger.error("Run %s failed during '%s': %s", run.id, run.current_stage or 'setup', e,
                             exc_info=True)
            if not run.is_finalized:
                run.fail(f"Stage '{run.current_stage or 'setup'}' failed: {e}")
            run.summary = _generate_run_summary(run, failed=True)
            run.save()
            raise

        run.summary = _generate_run_summary(run)
        run.save()
        mark_mission_run(self.session_factory, mission_id)
        logger.info("Run %s %s: found=%d investigated=%d enriched=%d approved=%d stored=%d",
                    run.id, run.status, run.found, run.investigated, run.enriched, run.approved, run.stored)
        return _to_summary(run, failed_writes, self.clock.monotonic() - started)

    def _execute(self, run: RunContext, mission) -> Optional[WriteResult]:
        """Run the five stages. Returns None when a stage leaves nothing to do."""
        scanner = get_adapter(STAGE_REGISTRY['discovery'], mission.platform,
                              fetcher=self.fetcher, classifier=self.scoring, config=self.config)
        with self._stage(run, 'discovery'):
            listings = scanner.scan(mission)
        run.found = len(listings)
        for err in scanner.page_errors:
            run.add_error('discovery', err)
        run.save()
        if not listings:
            return self._finish_early(run, 'discovery')

        gate = InvestigationGate(self.scoring, self.config)
        with self._stage(run, 'investigation'):
            decisions = gate.select_for_enrichment(mission, listings)
        self._record(run, decisions, {l.key: l.to_dict() for l in listings})

        by_key = {l.key: l for l in listings}
        selected = [by_key[d.item_key] for d in decisions if d.advanced]
        urls = [l.url for l in selected if l.url]
        if len(urls) < len(selected):
            logger.warning("%d selected listings have no URL and cannot be enriched", len(selected) - len(urls))
        run.investigated = len(urls)
        run.save()
        if not urls:
            return self._finish_early(run, 'investigation')

        detail = get_adapter(STAGE_REGISTRY['enrichment'], mission.platform,
                             fetcher=self.fetcher, config=self.config)
        with self._stage(run, 'enrichment'):
            items = detail.enrich(urls, listings=selected)
        run.enriched = len(items)
        for url in detail.failed_urls:
            run.add_error('enrichment', 'detail extraction failed', url)
        run.save()
        if not items:
            return self._finish_early(run, 'enrichment')

        storage_gate = StorageGate(self.scoring, self.config)
        with self._stage(run, 'storage'):
            storage_decisions = storage_gate.decide_storage(mission, items)
        run.processed = len(items)
        self._record(run, storage_decisions, {i.key: i.to_dict() for i in items})

        approved_keys = {d.item_key for d in storage_decisions if d.advanced}
        approved = [i for i in items if i.key in approved_keys]
        run.approved = len(approved)
        run.save()

        writer = PersistenceWriter(self.session_factory, mission, self.config)
        with self._stage(run, 'persistence'):
            return writer.persist(run, approved, storage_decisions)

    def _record(self, run: RunContext, decisions: List[Any], items_by_key: Dict[str, Dict]):
        run.record_decisions(decisions)
        record_decisions(self.session_factory, run, decisions, items_by_key)

    def _finish_early(self, run: RunContext, stage: str):
        logger.warning("Nothing left after '%s', stopping early", stage)
        run.complete()
        return None


def _to_summary(run: RunContext, failed_writes: int, seconds: float) -> RunSummary:
    return RunSummary(
        run_id=run.id,
        mission_id=run.mission_id,
        status=run.status,
        found=run.found,
        investigated=run.investigated,
        enriched=run.enriched,
        approved=run.approved,
        stored=run.stored,
        failed_writes=failed_writes,
        error_count=run.error_count,
        stage_timings=dict(run.stage_timings),
        execution_seconds=round(seconds, 3),
        summary=run.summary,
    )


# ── Background execution (RQ) ────────────────────────────────────────────────

def launch_run(mission_id: str, queue=None):
    """Enqueue a scout run as a background RQ job and return the job."""
    if queue is None:
        import redis
        from rq import Queue
        from scout.config import REDIS_URL
        queue = Queue('scout', connection=redis.from_url(REDIS_URL))
    job = queue.enqueue(run_scout_job, mission_id, job_timeout=RUN_JOB_TIMEOUT)
    logger.info("Enqueued scout %s as job %s", mission_id, job.id)
    return job


def run_scout_job(mission_id: str) -> Dict[str, Any]:
    """RQ entry point: wire clients for this worker and run the mission."""
    from scout.extensions import build_clients
    from scout.logging_config import configure_logging

    configure_logging()
    clients = build_clients()
    pipeline = ScoutPipeline(
        clients.fetcher, clients.scoring, clients.session_factory,
        redis_client=clients.redis_client,
    )
    summary = pipeline.run(mission_id)
    return summary.__dict__


# ── Read-side helpers ────────────────────────────────────────────────────────

def get_run_status(run_id: str, session_factory, redis_client=None) -> Optional[Dict[str, Any]]:
    """Latest snapshot of a run, or None if it was never recorded."""
    return RunRecorder(session_factory, redis_client).load_snapshot(run_id)


def get_service_health(redis_client) -> Dict[str, Dict]:
    return {name: breaker.get_health() for name, breaker in build_breakers(redis_client).items()}


def get_pipeline_info() -> Dict[str, Any]:
    """Stage adapters available per platform."""
    return base_get_pipeline_info(STAGE_REGISTRY)


# ── Run summary generator ────────────────────────────────────────────────────

def _generate_run_summary(run: RunContext, failed: bool = False) -> str:
    """Human-readable narrative of the run. Pure Python, no API calls."""
    platform = {'itchio': 'itch.io', 'steam': 'Steam'}.get(run.platform, run.platform or 'unknown')

    if failed:
        return _generate_failed_summary(run, platform)

    if run.found == 0:
        return f"No {platform} listings found. Check the mission instructions and try again."

    lines = [f"Scanned {run.found} {platform} listings."]
    if run.investigated:
        lines.append(f"{run.investigated} selected for a closer look.")
    if run.enriched:
        if run.enriched < run.investigated:
            lines.append(f"{run.enriched} of {run.investigated} enriched successfully.")
        else:
            lines.append(f"{run.enriched} enriched.")
    if run.processed:
        lines.append(f"{run.approved} of {run.processed} passed the quality bar, {run.stored} stored.")

    warnings = _collect_warnings(run)
    if warnings:
        lines.append('Warning: ' + ' '.join(warnings))
    return ' '.join(lines)


def _generate_failed_summary(run: RunContext, platform: str) -> str:
    stage = (run.current_stage or 'setup').replace('_', ' ')
    parts = [f"{platform} run failed during {stage}."]

    progress = []
    if run.found:
        progress.append(f"scanned {run.found}")
    if run.investigated:
        progress.append(f"{run.investigated} selected")
    if run.enriched:
        progress.append(f"{run.enriched} enriched")
    if run.stored:
        progress.append(f"{run.stored} stored")
    if progress:
        parts.append("Before failure: " + ', '.join(progress) + '.')

    if run.error_message:
        parts.append(f"Error: {run.error_message}")
    return ' '.join(parts)


def _collect_warnings(run: RunContext) -> List[str]:
    warnings = []

    if run.investigated and run.enriched < run.investigated * 0.8:
        fail_pct = round((1 - run.enriched / run.investigated) * 100)
        warnings.append(f"{fail_pct}% of selected games failed enrichment.")

    if any(getattr(d, 'fallback', False) for d in run.decisions):
        warnings.append("Scoring service unavailable for some items; fallback heuristics used.")

    write_errors = sum(1 for e in run.errors if e.get('stage') == 'persistence')
    if write_errors:
        warnings.append(f"{write_errors} approved items failed to save.")

    if run.processed and run.approved == 0:
        warnings.append("No games met the quality threshold.")
    elif not run.processed and run.current_stage:
        warnings.append(f"Pipeline stopped after {run.current_stage}; nothing advanced further.")

    return warnings
