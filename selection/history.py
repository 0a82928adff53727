"""
Agent usage history derived from the external tagged record store.

Read-only: the tracker aggregates what the store already holds and never
writes back.
"""
import inspect
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from config import config
from selection.models import AgentSuccessHistory, HistoryRecord, TaggedRecordStore

logger = logging.getLogger(__name__)


def calculate_success_score(recent_uses: int, total_uses: int) -> int:
    """Recency weighs 60 points (saturating at 10 uses), volume 40 (at 20 uses)."""
    return round(min(recent_uses / 10, 1) * 60 + min(total_uses / 20, 1) * 40)


def has_feature(features: List[str], feature: Optional[str]) -> bool:
    if not feature:
        return False
    needle = feature.lower()
    return any(needle in f.lower() for f in features)


class HistoryTracker:
    """Aggregates per-agent usage statistics for one project."""

    def __init__(self,
                 store: TaggedRecordStore,
                 agent_tag: Optional[str] = None,
                 recent_window_days: Optional[int] = None):
        self.store = store
        self.agent_tag = agent_tag or config.history.agent_tag
        self.recent_window = timedelta(days=recent_window_days or config.history.recent_window_days)

    def _agent_name(self, record: HistoryRecord) -> Optional[str]:
        return next((tag for tag in record.tags if tag != self.agent_tag), None)

    async def get_history(self,
                          project: str,
                          feature: Optional[str] = None,
                          since: Optional[datetime] = None,
                          until: Optional[datetime] = None,
                          now: Optional[datetime] = None) -> Dict[str, AgentSuccessHistory]:
        """
        Usage statistics keyed by agent name.

        Args:
            project: Project name the records are scoped to
            feature: Current feature; agents that worked on it get a 10% boost
            since: Optional lower bound on record time
            until: Optional upper bound on record time
            now: Reference time for the recent window (defaults to UTC now)

        Returns:
            Mapping of agent name to history; empty if the store fails
        """
        try:
            result = self.store.search(project, [self.agent_tag], since=since, until=until)
            records = await result if inspect.isawaitable(result) else result
        except Exception as e:
            logger.debug(f"History query failed for project {project}: {e}")
            return {}

        now = now or datetime.now(timezone.utc)
        recent_cutoff = now - self.recent_window
        history: Dict[str, AgentSuccessHistory] = {}

        for record in records or []:
            if self.agent_tag not in record.tags:
                continue
            name = self._agent_name(record)
            if not name:
                continue

            entry = history.setdefault(name, AgentSuccessHistory(agent_name=name))
            entry.total_uses += 1
            if _as_utc(record.created_at) >= recent_cutoff:
                entry.recent_uses += 1
            for f in record.features:
                if f not in entry.features:
                    entry.features.append(f)

        for entry in history.values():
            score = calculate_success_score(entry.recent_uses, entry.total_uses)
            if has_feature(entry.features, feature):
                score = min(round(score * 1.1), 100)
            entry.success_score = score

        logger.debug(f"Loaded history for {len(history)} agents in project {project}")
        return history


def _as_utc(moment: datetime) -> datetime:
    # Naive timestamps from the store are taken as UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment
