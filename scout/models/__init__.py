"""ORM tables and in-memory funnel records."""
from scout.models.mission import Scout, ScoutMission
from scout.models.scout_run import DbScoutRun
from scout.models.scout_result import ScoutResult
from scout.models.scout_decision import ScoutDecision

__all__ = ['Scout', 'ScoutMission', 'DbScoutRun', 'ScoutResult', 'ScoutDecision']
