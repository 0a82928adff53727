"""
Selection data structures and collaborator interfaces.

ScoreBreakdown key names are a stable contract for reporting layers; keep
``to_dict`` in sync with them.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Dict, List, Optional, Protocol, Union

from capabilities.models import CapabilityRecord


@dataclass
class ProjectProfile:
    """Detected project characteristics, produced by an external detector."""
    tech_stack: List[str] = field(default_factory=list)
    type: str = "single"
    features: List[str] = field(default_factory=list)
    language: Optional[str] = None
    name: Optional[str] = None
    packages: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "techStack": list(self.tech_stack),
            "type": self.type,
            "features": list(self.features),
            "language": self.language,
            "name": self.name,
            "packages": list(self.packages) if self.packages is not None else None,
        }


@dataclass
class HistoryRecord:
    """One tagged execution record from the external event store."""
    tags: List[str]
    created_at: datetime
    features: List[str] = field(default_factory=list)


@dataclass
class AgentSuccessHistory:
    agent_name: str
    total_uses: int = 0
    recent_uses: int = 0
    features: List[str] = field(default_factory=list)
    success_score: int = 0


@dataclass
class ScoreBreakdown:
    keyword_match: int = 0
    semantic_match: int = 0
    context_boost: int = 0
    history_boost: int = 0
    freshness_bonus: int = 0
    total: int = 0
    matched_keywords: List[str] = field(default_factory=list)
    matched_tech_stack: List[str] = field(default_factory=list)
    semantic_similarity: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keywordMatch": self.keyword_match,
            "semanticMatch": self.semantic_match,
            "contextBoost": self.context_boost,
            "historyBoost": self.history_boost,
            "freshnessBonus": self.freshness_bonus,
            "total": self.total,
            "matchedKeywords": list(self.matched_keywords),
            "matchedTechStack": list(self.matched_tech_stack),
            "semanticSimilarity": self.semantic_similarity,
        }


@dataclass
class ScoredAgent:
    agent: CapabilityRecord
    score: int
    breakdown: ScoreBreakdown

    def to_dict(self) -> Dict[str, Any]:
        agent = self.agent.to_dict()
        agent.pop("embedding", None)
        return {
            "agent": agent,
            "score": self.score,
            "breakdown": self.breakdown.to_dict(),
        }


@dataclass
class SelectionResult:
    agents: List[ScoredAgent]
    profile: ProjectProfile
    total_candidates: int
    duration_ms: float
    used_semantic_matching: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agents": [scored.to_dict() for scored in self.agents],
            "profile": self.profile.to_dict(),
            "totalCandidates": self.total_candidates,
            "durationMs": round(self.duration_ms, 2),
            "usedSemanticMatching": self.used_semantic_matching,
        }


class ProfileDetector(Protocol):
    def detect(self, project_root: str) -> ProjectProfile:
        ...


class TaggedRecordStore(Protocol):
    """
    Append-only event store queried by project, tags and time window.

    Implementations may be synchronous or return an awaitable.
    """

    def search(self,
               project: str,
               tags: List[str],
               since: Optional[datetime] = None,
               until: Optional[datetime] = None
               ) -> Union[List[HistoryRecord], Awaitable[List[HistoryRecord]]]:
        ...
