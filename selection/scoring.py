"""
Multi-signal agent scoring.

Scoring breakdown:
- Keyword match: 0-40 points
- Semantic match: 0-15 points (embeddings)
- Context boost: 0-30 points
- History boost: 0-20 points
- Freshness bonus: 0-10 points
Total: 0-100, linearly rescaled from the raw 0-115.

The caps and tier thresholds are an additive heuristic, not a fitted model.
The 115 -> 100 rescale leaves semantic signal structurally weaker than keyword
signal; retune SEMANTIC_TIERS and the caps together when the embedding model
changes.
"""
import asyncio
import logging
import re
from functools import lru_cache
from typing import Dict, List, Optional, Pattern, Tuple

import numpy as np

from capabilities.models import CapabilityRecord
from capabilities.vocabulary import DEFAULT_VOCABULARY, MatchingVocabulary
from clients.embedding_provider import EmbeddingProvider
from selection.history import has_feature
from selection.models import AgentSuccessHistory, ProjectProfile, ScoreBreakdown, ScoredAgent

logger = logging.getLogger(__name__)

KEYWORD_MAX = 40
SEMANTIC_MAX = 15
CONTEXT_MAX = 30
HISTORY_MAX = 20
FRESHNESS_MAX = 10
RAW_MAX = KEYWORD_MAX + SEMANTIC_MAX + CONTEXT_MAX + HISTORY_MAX + FRESHNESS_MAX

KEYWORD_POINTS = 8
DESCRIPTION_WORD_POINTS = 2
DESCRIPTION_WORD_LIMIT = 4
NAME_PART_POINTS = 4

TECH_MATCH_POINTS = 5
TECH_MATCH_LIMIT = 3
PROJECT_TYPE_POINTS = 15
FULLSTACK_PARTIAL_POINTS = 8

# Calibrated for all-MiniLM-L6-v2, which gives low similarities on short texts.
# Strictly greater-than: exactly 0.50 is the middle tier.
SEMANTIC_TIERS: Tuple[Tuple[float, int], ...] = (
    (0.50, 15),
    (0.35, 10),
    (0.25, 5),
)


@lru_cache(maxsize=4096)
def _word_pattern(word: str) -> Pattern:
    return re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE)


def contains_whole_word(text: str, word: str) -> bool:
    """Word-boundary match, so "as" does not match inside "class"."""
    return bool(word) and _word_pattern(word).search(text) is not None


def score_keyword_match(keywords: List[str],
                        description: str,
                        task: str,
                        vocabulary: MatchingVocabulary = DEFAULT_VOCABULARY
                        ) -> Tuple[int, List[str]]:
    """
    Keyword score (0-40) and the matched terms.

    - 8 per agent keyword found in the task
    - 2 per description word found, for at most 4 such words
    - 4 per description "name part" (split on hyphens and spaces) found
    """
    matched: List[str] = []
    score = 0

    for keyword in keywords:
        if vocabulary.is_stopword(keyword):
            continue
        if contains_whole_word(task, keyword):
            matched.append(keyword)
            score += KEYWORD_POINTS

    description_words = [
        w for w in description.lower().split()
        if len(w) > 3 and not vocabulary.is_stopword(w)
    ]
    description_matches = 0
    for word in description_words:
        if word in matched:
            continue
        if contains_whole_word(task, word):
            description_matches += 1
            if description_matches <= DESCRIPTION_WORD_LIMIT:
                score += DESCRIPTION_WORD_POINTS

    name_parts = [
        p.lower() for p in re.split(r"[-\s]+", description)
        if len(p) > 2 and not vocabulary.is_stopword(p)
    ]
    for part in name_parts:
        if part in matched:
            continue
        if contains_whole_word(task, part):
            matched.append(part)
            score += NAME_PART_POINTS

    return min(score, KEYWORD_MAX), matched


def semantic_tier(similarity: float) -> int:
    for threshold, points in SEMANTIC_TIERS:
        if similarity > threshold:
            return points
    return 0


def score_context_match(agent: CapabilityRecord, profile: ProjectProfile) -> Tuple[int, List[str]]:
    """Tech overlap (5 each, up to 3) plus project type (15, or 8 for fullstack agents)."""
    score = 0
    matched: List[str] = []

    for tech in agent.tech_stack:
        if tech in profile.tech_stack:
            matched.append(tech)
            score += TECH_MATCH_POINTS
            if len(matched) >= TECH_MATCH_LIMIT:
                break

    if profile.type in agent.project_types:
        score += PROJECT_TYPE_POINTS
    elif "fullstack" in agent.project_types:
        score += FULLSTACK_PARTIAL_POINTS

    return min(score, CONTEXT_MAX), matched


def score_history(history: Optional[AgentSuccessHistory], feature: Optional[str] = None) -> float:
    if history is None:
        return 0
    score = history.success_score * 0.15
    if has_feature(history.features, feature):
        score += 5
    return min(score, HISTORY_MAX)


def score_freshness(history: Optional[AgentSuccessHistory]) -> int:
    if history is None:
        return 0
    if history.recent_uses > 5:
        return 10
    if history.recent_uses > 2:
        return 7
    if history.recent_uses > 0:
        return 4
    return 0


def normalize_total(raw: float) -> int:
    return round(min(raw / RAW_MAX, 1) * 100)


class AgentScorer:
    """
    Scores capability records against a task.

    Every candidate is scored concurrently; a candidate whose scoring raises
    is logged and dropped without affecting the rest.
    """

    def __init__(self,
                 embedding_provider: Optional[EmbeddingProvider] = None,
                 vocabulary: Optional[MatchingVocabulary] = None):
        self.embedding_provider = embedding_provider
        self.vocabulary = vocabulary or DEFAULT_VOCABULARY

    async def score_agents(self,
                           task: str,
                           candidates: List[CapabilityRecord],
                           profile: ProjectProfile,
                           history: Dict[str, AgentSuccessHistory],
                           feature: Optional[str] = None,
                           task_embedding: Optional[np.ndarray] = None) -> List[ScoredAgent]:
        """
        Score all candidates.

        Args:
            task: Free-text task description
            candidates: Capability records to rank
            profile: Project profile for context boosting
            history: Usage history keyed by agent name
            feature: Current feature for history boosting
            task_embedding: Pre-computed task vector; None disables semantic scoring

        Returns:
            Scored agents, highest score first (ties by name)
        """
        normalized_task = task.lower()
        results = await asyncio.gather(
            *(
                self.score_agent(agent, normalized_task, profile, history, feature, task_embedding)
                for agent in candidates
            ),
            return_exceptions=True
        )

        scored: List[ScoredAgent] = []
        for agent, result in zip(candidates, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.debug(f"Dropping {agent.name} from ranking, scoring failed: {result}")
                continue
            scored.append(result)

        scored.sort(key=lambda s: (-s.score, s.agent.name))
        return scored

    async def score_agent(self,
                          agent: CapabilityRecord,
                          task: str,
                          profile: ProjectProfile,
                          history: Dict[str, AgentSuccessHistory],
                          feature: Optional[str] = None,
                          task_embedding: Optional[np.ndarray] = None) -> ScoredAgent:
        breakdown = await self.calculate_breakdown(
            agent, task, profile, history, feature, task_embedding
        )
        return ScoredAgent(agent=agent, score=breakdown.total, breakdown=breakdown)

    async def calculate_breakdown(self,
                                  agent: CapabilityRecord,
                                  task: str,
                                  profile: ProjectProfile,
                                  history: Dict[str, AgentSuccessHistory],
                                  feature: Optional[str] = None,
                                  task_embedding: Optional[np.ndarray] = None) -> ScoreBreakdown:
        keyword_match, matched_keywords = score_keyword_match(
            agent.keywords, agent.description, task, self.vocabulary
        )
        semantic_match, similarity = await self.score_semantic_match(agent, task_embedding)
        context_boost, matched_tech = score_context_match(agent, profile)

        agent_history = history.get(agent.name)
        history_boost = score_history(agent_history, feature)
        freshness_bonus = score_freshness(agent_history)

        raw = keyword_match + semantic_match + context_boost + history_boost + freshness_bonus

        return ScoreBreakdown(
            keyword_match=round(keyword_match),
            semantic_match=round(semantic_match),
            context_boost=round(context_boost),
            history_boost=round(history_boost),
            freshness_bonus=round(freshness_bonus),
            total=normalize_total(raw),
            matched_keywords=matched_keywords,
            matched_tech_stack=matched_tech,
            semantic_similarity=similarity,
        )

    async def score_semantic_match(self,
                                   agent: CapabilityRecord,
                                   task_embedding: Optional[np.ndarray]
                                   ) -> Tuple[int, Optional[float]]:
        """
        Semantic tier (0-15) and the raw similarity, if one was computed.

        Uses the record's pre-computed vector when present, else asks the
        provider (cache first, on-demand only if the model is ready).
        """
        if task_embedding is None:
            return 0, None

        agent_embedding = agent.embedding_array()
        if agent_embedding is None and self.embedding_provider is not None:
            agent_embedding = await self.embedding_provider.get_embedding(agent.name, agent.description)
        if agent_embedding is None:
            return 0, None

        similarity = EmbeddingProvider.similarity(task_embedding, agent_embedding)
        return semantic_tier(similarity), similarity


def filter_by_min_score(scored: List[ScoredAgent], min_score: int) -> List[ScoredAgent]:
    return [s for s in scored if s.score >= min_score]


def deduplicate_by_name(scored: List[ScoredAgent]) -> List[ScoredAgent]:
    """Keep the highest-scoring entry per agent name, preserving first-seen order."""
    best: Dict[str, ScoredAgent] = {}
    for entry in scored:
        current = best.get(entry.agent.name)
        if current is None or entry.score > current.score:
            best[entry.agent.name] = entry
    return list(best.values())


def get_top_agents(scored: List[ScoredAgent], limit: int) -> List[ScoredAgent]:
    return scored[:limit]


def format_score_breakdown(breakdown: ScoreBreakdown) -> str:
    """Human-readable breakdown, e.g. "Keyword: 16 + Context: 15 = 27"."""
    parts = []
    if breakdown.keyword_match > 0:
        parts.append(f"Keyword: {breakdown.keyword_match}")
    if breakdown.semantic_match > 0:
        sim = ""
        if breakdown.semantic_similarity is not None:
            sim = f" ({breakdown.semantic_similarity * 100:.0f}%)"
        parts.append(f"Semantic: {breakdown.semantic_match}{sim}")
    if breakdown.context_boost > 0:
        parts.append(f"Context: {breakdown.context_boost}")
    if breakdown.history_boost > 0:
        parts.append(f"History: {breakdown.history_boost}")
    if breakdown.freshness_bonus > 0:
        parts.append(f"Fresh: {breakdown.freshness_bonus}")
    return f"{' + '.join(parts)} = {breakdown.total}"
