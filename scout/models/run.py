"""
RunContext - one execution of the funnel for a scout mission.

Status only moves forward:
    initializing → searching → analyzing → storing → completed | failed

A run is finalized (completed or failed) exactly once. Saving is delegated to
an injected store (see services.db.RunRecorder) so the model never opens a
database or Redis connection on its own.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from scout.config import RUN_STATUSES, TERMINAL_STATUSES


class RunFinalizedError(RuntimeError):
    """Raised when a finalized run is finalized again or moved."""
    def __init__(self, run_id, status):
        self.run_id = run_id
        self.status = status
        super().__init__(f"Run {run_id} is already finalized as '{status}'")


class RunContext:

    def __init__(
        self,
        mission_id: str,
        platform: str,
        id: str = None,
        store: Any = None,
        created_at: datetime = None,
    ):
        self.id = id or str(uuid.uuid4())
        self.mission_id = mission_id
        self.platform = platform
        self.status = 'initializing'
        self.created_at = created_at or datetime.now(timezone.utc)
        self.updated_at = self.created_at
        self.finished_at: Optional[datetime] = None
        self.current_stage = ''
        self.found = 0
        self.processed = 0
        self.investigated = 0
        self.enriched = 0
        self.approved = 0
        self.stored = 0
        self.errors: List[Dict] = []
        self.error_message = ''
        self.stage_timings: Dict[str, float] = {}
        self.decisions: List[Any] = []
        self.summary = ''
        self._store = store

    # ── Derived values ────────────────────────────────────────────────

    @property
    def timestamp_ms(self) -> int:
        """Run start as epoch milliseconds; embedded in result external ids."""
        return int(self.created_at.timestamp() * 1000)

    @property
    def is_finalized(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def error_count(self) -> int:
        return len(self.errors)

    # ── Transitions ───────────────────────────────────────────────────

    def advance_to(self, status: str, stage: str = None):
        """Move to a later (or the same) non-terminal status."""
        if self.is_finalized:
            raise RunFinalizedError(self.id, self.status)
        if status not in RUN_STATUSES or status in TERMINAL_STATUSES:
            raise ValueError(f"Cannot advance to '{status}'; use complete() or fail() to finish a run")
        if RUN_STATUSES.index(status) < RUN_STATUSES.index(self.status):
            raise ValueError(f"Run status cannot move backwards from '{self.status}' to '{status}'")
        self.status = status
        if stage:
            self.current_stage = stage
        return self.save()

    def add_error(self, stage: str, message: str, item_key: str = ''):
        """Add an error to the run log."""
        self.errors.append({
            'stage': stage,
            'message': message,
            'item_key': item_key,
            'timestamp': datetime.now(timezone.utc).isoformat(),
        })

    def record_decisions(self, decisions: List[Any]):
        self.decisions.extend(decisions)

    def record_timing(self, stage: str, seconds: float):
        self.stage_timings[stage] = round(seconds, 3)

    def complete(self):
        """Mark run as completed. Raises if it was already finalized."""
        self._finalize('completed')
        return self.save()

    def fail(self, reason: str = ''):
        """Mark run as failed. Raises if it was already finalized."""
        self._finalize('failed')
        self.error_message = reason
        if reason:
            self.add_error(self.current_stage, reason)
        return self.save()

    def _finalize(self, status: str):
        if self.is_finalized:
            raise RunFinalizedError(self.id, self.status)
        self.status = status
        self.finished_at = datetime.now(timezone.utc)

    # ── Persistence ───────────────────────────────────────────────────

    def save(self):
        self.updated_at = datetime.now(timezone.utc)
        if self._store is not None:
            self._store.save(self)
        return self

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'mission_id': self.mission_id,
            'platform': self.platform,
            'status': self.status,
            'current_stage': self.current_stage,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'found': self.found,
            'processed': self.processed,
            'investigated': self.investigated,
            'enriched': self.enriched,
            'approved': self.approved,
            'stored': self.stored,
            'errors': self.errors[-20:],  # Keep last 20 errors
            'error_count': self.error_count,
            'error_message': self.error_message,
            'stage_timings': self.stage_timings,
            'summary': self.summary,
        }
