"""
Agent relevance ranking.

Usage:
    selector = AgentSelector(index_store, profile_detector, history_tracker, provider)
    result = await selector.select("audit auth flow for security issues", root, agents_path)
"""
from selection.history import HistoryTracker, calculate_success_score
from selection.models import (
    AgentSuccessHistory,
    HistoryRecord,
    ProfileDetector,
    ProjectProfile,
    ScoreBreakdown,
    ScoredAgent,
    SelectionResult,
    TaggedRecordStore,
)
from selection.scoring import (
    AgentScorer,
    deduplicate_by_name,
    filter_by_min_score,
    format_score_breakdown,
    get_top_agents,
)
from selection.selector import AgentSelector, SelectionOptions, quick_select

__all__ = [
    'AgentScorer',
    'AgentSelector',
    'AgentSuccessHistory',
    'HistoryRecord',
    'HistoryTracker',
    'ProfileDetector',
    'ProjectProfile',
    'ScoreBreakdown',
    'ScoredAgent',
    'SelectionOptions',
    'SelectionResult',
    'TaggedRecordStore',
    'calculate_success_score',
    'deduplicate_by_name',
    'filter_by_min_score',
    'format_score_breakdown',
    'get_top_agents',
    'quick_select',
]
