"""
Postgres persistence helpers - called from the pipeline manager and writer.

Run bookkeeping never blocks the pipeline on DB errors (logged, not raised).
Result inserts DO raise, so the persistence writer can count each failure.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from scout.config import RUN_SNAPSHOT_TTL
from scout.models.mission import Scout, ScoutMission
from scout.models.scout_decision import ScoutDecision
from scout.models.scout_result import ScoutResult
from scout.models.scout_run import DbScoutRun

logger = logging.getLogger('services.db')


class MissionNotFoundError(LookupError):
    def __init__(self, mission_id):
        self.mission_id = mission_id
        super().__init__(f"Scout mission {mission_id} not found")


def load_mission(session_factory, mission_id: str) -> ScoutMission:
    """Read the mission row once and return its frozen view."""
    session = session_factory()
    try:
        row = session.get(Scout, mission_id)
        if row is None:
            raise MissionNotFoundError(mission_id)
        return ScoutMission.from_row(row)
    finally:
        session.close()


def mark_mission_run(session_factory, mission_id: str):
    """Bump total_runs / last_run_at on the mission after a run finishes."""
    session = session_factory()
    try:
        row = session.get(Scout, mission_id)
        if row is not None:
            row.total_runs = (row.total_runs or 0) + 1
            row.last_run_at = datetime.now(timezone.utc)
            session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.error("Failed to update run count for scout %s", mission_id, exc_info=True)
    finally:
        session.close()


class RunRecorder:
    """
    Store for RunContext.save(): upserts the scout_runs row and, when a Redis
    client is available, mirrors a JSON snapshot for live status polling.

    Keys:
        scout:run:{id}   → JSON snapshot of run state
        scout:runs:list  → sorted set of run ids by creation time
    """

    def __init__(self, session_factory, redis_client=None):
        self.session_factory = session_factory
        self.redis = redis_client

    def save(self, run):
        self._persist(run)
        if self.redis is not None:
            self._mirror(run)

    def _persist(self, run):
        session = self.session_factory()
        try:
            db_run = session.get(DbScoutRun, run.id)
            if db_run is None:
                db_run = DbScoutRun(
                    id=run.id,
                    scout_id=run.mission_id,
                    platform=run.platform,
                    started_at=run.created_at,
                )
                session.add(db_run)
            db_run.status = run.status
            db_run.results_found = run.found
            db_run.results_processed = run.processed
            db_run.results_investigated = run.investigated
            db_run.results_enriched = run.enriched
            db_run.results_approved = run.approved
            db_run.results_stored = run.stored
            db_run.error_count = run.error_count
            db_run.error_message = run.error_message or None
            db_run.stage_timings = dict(run.stage_timings) or None
            db_run.summary = run.summary or None
            if run.is_finalized:
                db_run.completed_at = run.finished_at
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.error("Failed to persist run %s", run.id, exc_info=True)
        finally:
            session.close()

    def _mirror(self, run):
        try:
            self.redis.setex(f'scout:run:{run.id}', RUN_SNAPSHOT_TTL, json.dumps(run.to_dict()))
            self.redis.zadd('scout:runs:list', {run.id: run.created_at.timestamp()})
        except Exception:
            logger.warning("Failed to mirror run %s to Redis", run.id, exc_info=True)

    def load_snapshot(self, run_id: str) -> Optional[Dict[str, Any]]:
        """Latest run state: Redis snapshot first, falling back to the database."""
        if self.redis is not None:
            data = self.redis.get(f'scout:run:{run_id}')
            if data:
                return json.loads(data)

        session = self.session_factory()
        try:
            db_run = session.get(DbScoutRun, run_id)
            if db_run is None:
                return None
            return {
                'id': db_run.id,
                'mission_id': db_run.scout_id,
                'platform': db_run.platform,
                'status': db_run.status,
                'found': db_run.results_found or 0,
                'processed': db_run.results_processed or 0,
                'stored': db_run.results_stored or 0,
                'error_count': db_run.error_count or 0,
                'error_message': db_run.error_message or '',
                'stage_timings': db_run.stage_timings or {},
                'summary': db_run.summary or '',
            }
        finally:
            session.close()


def record_decisions(session_factory, run, decisions: List[Any], items_by_key: Dict[str, Dict] = None):
    """Append gate decisions to the audit table. Failures are logged, not raised."""
    if not decisions:
        return 0
    items_by_key = items_by_key or {}
    session = session_factory()
    try:
        for d in decisions:
            session.add(ScoutDecision(
                run_id=run.id,
                scout_id=run.mission_id,
                stage=d.stage,
                item_key=d.item_key,
                item_title=d.item_title or None,
                verdict=d.verdict,
                score=d.score,
                rationale=d.rationale or None,
                sentiment=d.sentiment,
                fallback=d.fallback,
                item_data=items_by_key.get(d.item_key),
                decided_at=d.decided_at,
            ))
        session.commit()
        return len(decisions)
    except SQLAlchemyError:
        session.rollback()
        logger.error("Failed to record %d decisions for run %s", len(decisions), run.id, exc_info=True)
        return 0
    finally:
        session.close()


def insert_result(session_factory, values: Dict[str, Any]) -> int:
    """Insert one scout_results row in its own transaction. Raises on failure."""
    session = session_factory()
    try:
        row = ScoutResult(**values)
        session.add(row)
        session.commit()
        return row.id
    except SQLAlchemyError:
        session.rollback()
        raise
    finally:
        session.close()
