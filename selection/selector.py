"""
Agent selector - single entry point for ranking agents against a task.

Pipeline:
1. Load the capability index (may trigger the two-phase build)
2. Detect the project profile
3. Load usage history
4. Embed the task (bounded wait)
5. Score all candidates concurrently
6. Drop candidates below min_score
7. Deduplicate by name, keeping the best score
8. Sort descending and take the top max_agents
"""
import asyncio
import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from capabilities.index_store import CapabilityIndexStore
from capabilities.models import CapabilityRecord
from clients.embedding_provider import EmbeddingProvider
from config import config
from selection.history import HistoryTracker
from selection.models import ProfileDetector, ProjectProfile, SelectionResult
from selection.scoring import (
    AgentScorer,
    deduplicate_by_name,
    filter_by_min_score,
    get_top_agents,
)

logger = logging.getLogger(__name__)


@dataclass
class SelectionOptions:
    max_agents: int = config.selection.max_agents
    min_score: int = config.selection.min_score
    feature: Optional[str] = None
    # Defaults to the profile name, then the project root's directory name
    project_name: Optional[str] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    force_regenerate: bool = False

    def validate(self) -> None:
        if self.max_agents < 1:
            raise ValueError(f"max_agents must be at least 1, got {self.max_agents}")
        if not 0 <= self.min_score <= 100:
            raise ValueError(f"min_score must be within 0..100, got {self.min_score}")


class AgentSelector:
    """Coordinates index, profile, history, embeddings and scoring for one call."""

    def __init__(self,
                 index_store: CapabilityIndexStore,
                 profile_detector: ProfileDetector,
                 history_tracker: HistoryTracker,
                 embedding_provider: EmbeddingProvider,
                 scorer: Optional[AgentScorer] = None):
        self.index_store = index_store
        self.profile_detector = profile_detector
        self.history_tracker = history_tracker
        self.embedding_provider = embedding_provider
        self.scorer = scorer or AgentScorer(embedding_provider, index_store.vocabulary)

    async def select(self,
                     task: str,
                     project_root: str,
                     agents_path: str,
                     options: Optional[SelectionOptions] = None) -> SelectionResult:
        """
        Rank agents for ``task``.

        Args:
            task: Free-text task description
            project_root: Root of the project being worked on
            agents_path: Agent definition source directory
            options: Limits, thresholds and history scope

        Returns:
            SelectionResult; ``used_semantic_matching`` is False when no task
            embedding was available, which is not an error

        Raises:
            ValueError: On an empty task or invalid options
            CapabilitySourceError: If the index must be built and the source is unreadable
        """
        options = options or SelectionOptions()
        options.validate()
        if not task or not task.strip():
            raise ValueError("Task description must not be empty")

        start = time.perf_counter()

        candidates = await self.index_store.load(agents_path, options.force_regenerate)
        profile = await self._detect_profile(project_root)
        project_name = options.project_name or profile.name or os.path.basename(
            os.path.abspath(project_root)
        )

        history, task_embedding = await asyncio.gather(
            self.history_tracker.get_history(
                project_name,
                feature=options.feature,
                since=options.since,
                until=options.until
            ),
            self.embedding_provider.get_task_embedding(task),
        )

        scored = await self.scorer.score_agents(
            task,
            candidates,
            profile,
            history,
            feature=options.feature,
            task_embedding=task_embedding
        )

        ranked = deduplicate_by_name(filter_by_min_score(scored, options.min_score))
        ranked.sort(key=lambda s: (-s.score, s.agent.name))
        selected = get_top_agents(ranked, options.max_agents)

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"Selected {len(selected)}/{len(candidates)} agents in {duration_ms:.1f}ms "
            f"(semantic={'on' if task_embedding is not None else 'off'})"
        )

        return SelectionResult(
            agents=selected,
            profile=profile,
            total_candidates=len(candidates),
            duration_ms=duration_ms,
            used_semantic_matching=task_embedding is not None,
        )

    async def _detect_profile(self, project_root: str) -> ProjectProfile:
        return await asyncio.to_thread(self.profile_detector.detect, project_root)


def quick_select(task: str, records: List[CapabilityRecord], limit: int = 5) -> List[Tuple[CapabilityRecord, int]]:
    """
    Cheap substring ranking with no profile, history, embeddings or thresholds.

    This is an independent approximation, not a reduced form of
    AgentSelector.select: scores are on a different scale.

    - 20 if the agent name appears in the task
    - 10 per keyword contained in the task
    - 5 per description word (longer than 3 characters) contained in the task
    """
    lowered = task.lower()
    results: List[Tuple[CapabilityRecord, int]] = []

    for record in records:
        score = 0
        if record.name.lower() in lowered:
            score += 20
        score += 10 * sum(1 for kw in record.keywords if kw.lower() in lowered)
        score += 5 * sum(
            1 for word in set(record.description.lower().split())
            if len(word) > 3 and word in lowered
        )
        if score > 0:
            results.append((record, score))

    results.sort(key=lambda item: (-item[1], item[0].name))
    return results[:limit]
