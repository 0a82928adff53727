"""
Static matching vocabularies shared by the extractor and the scorer.

These tables are data, not logic: extend them by building a new
MatchingVocabulary (see ``MatchingVocabulary.extend``) and injecting it,
rather than editing scoring code.
"""
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Pattern, Tuple


STOPWORDS = frozenset({
    # English
    "the", "and", "for", "with", "that", "this", "from", "have", "will",
    "can", "use", "your", "all", "any", "how", "when", "what", "which",
    "are", "was", "were", "been", "being", "has", "had", "does", "did",
    "but", "not", "you", "they", "them", "their", "its", "into", "over",
    "such", "only", "other", "than", "then", "also", "just", "more",
    "some", "could", "would", "should", "about", "after", "before",
    # Generic tech words that match almost every task
    "code", "file", "data", "make", "like", "work", "need", "want",
})

DOMAIN_KEYWORDS: Tuple[str, ...] = (
    # quality
    "review", "quality", "refactor", "clean code", "lint", "best practices",
    "maintainability", "code smell",
    # security
    "security", "audit", "vulnerability", "owasp", "injection", "xss", "csrf",
    "authentication", "authorization", "encryption", "secrets",
    # performance
    "performance", "optimization", "latency", "caching", "profiling",
    "memory leak", "scalability", "load testing",
    # architecture
    "architecture", "design pattern", "microservices", "system design",
    "domain-driven", "event-driven", "api design", "c4",
    # debugging
    "debug", "debugging", "error", "incident", "root cause", "stack trace",
    "troubleshoot",
    # docs
    "documentation", "readme", "tutorial", "api reference", "changelog",
    # testing
    "testing", "unit test", "integration test", "e2e", "tdd", "coverage",
    "mocking",
    # backend
    "backend", "api", "rest", "graphql", "grpc", "server", "endpoint",
    # frontend
    "frontend", "ui", "ux", "component", "accessibility", "responsive", "css",
    # data
    "database", "sql", "schema", "migration", "query", "orm", "etl",
    # devops
    "deployment", "ci/cd", "pipeline", "infrastructure", "monitoring",
    "observability", "kubernetes", "docker", "terraform", "cloud",
    # ai
    "llm", "prompt", "machine learning", "embedding", "rag",
    # mobile
    "mobile", "ios", "android",
)

TECH_PATTERNS: Mapping[str, str] = MappingProxyType({
    "typescript": r"\btypescript\b|\bts\b",
    "javascript": r"\bjavascript\b|\bnode\.?js\b",
    "python": r"\bpython\b|\bdjango\b|\bfastapi\b|\bflask\b",
    "react": r"\breact\b",
    "nextjs": r"\bnext\.?js\b",
    "vue": r"\bvue(\.js)?\b",
    "angular": r"\bangular\b",
    "svelte": r"\bsvelte\b",
    "tailwind": r"\btailwind\b",
    "prisma": r"\bprisma\b",
    "trpc": r"\btrpc\b",
    "graphql": r"\bgraphql\b",
    "postgresql": r"\bpostgres(ql)?\b",
    "mysql": r"\bmysql\b",
    "mongodb": r"\bmongo(db)?\b",
    "redis": r"\bredis\b",
    "express": r"\bexpress(\.js)?\b",
    "fastify": r"\bfastify\b",
    "docker": r"\bdocker\b",
    "kubernetes": r"\bkubernetes\b|\bk8s\b",
    "terraform": r"\bterraform\b",
    "aws": r"\baws\b|\bamazon web services\b",
    "go": r"\bgolang\b|\bgo language\b",
    "rust": r"\brust\b",
    "java": r"\bjava\b|\bspring boot\b",
    "react-native": r"\breact native\b|\breact-native\b",
    "jest": r"\bjest\b",
    "vitest": r"\bvitest\b",
    "playwright": r"\bplaywright\b",
    "zod": r"\bzod\b",
})

CATEGORY_PROJECT_TYPES: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "frontend": ("frontend", "fullstack", "single"),
    "backend": ("backend", "fullstack", "single"),
    "database": ("backend", "fullstack"),
    "devops": ("monorepo", "backend", "fullstack"),
    "architecture": ("monorepo", "fullstack", "backend"),
    "security": ("backend", "fullstack", "single", "monorepo"),
    "performance": ("backend", "frontend", "fullstack"),
    "testing": ("single", "fullstack"),
    "quality": ("single", "monorepo", "fullstack"),
    "debugging": ("single", "backend", "frontend"),
    "docs": ("single", "monorepo"),
})

MONOREPO_INDICATORS: Tuple[str, ...] = (
    "monorepo", "turborepo", "nx workspace", "workspaces", "multi-package",
    "pnpm workspace", "lerna",
)

FULLSTACK_INDICATORS: Tuple[str, ...] = (
    "full-stack", "fullstack", "full stack", "end-to-end", "frontend and backend",
)


def _compile(patterns: Mapping[str, str]) -> Mapping[str, Pattern]:
    return MappingProxyType({
        name: re.compile(pattern, re.IGNORECASE) for name, pattern in patterns.items()
    })


@dataclass(frozen=True)
class MatchingVocabulary:
    """Immutable bundle of the tables above."""
    stopwords: frozenset = STOPWORDS
    domain_keywords: Tuple[str, ...] = DOMAIN_KEYWORDS
    tech_patterns: Mapping[str, Pattern] = field(default_factory=lambda: _compile(TECH_PATTERNS))
    category_project_types: Mapping[str, Tuple[str, ...]] = field(default_factory=lambda: CATEGORY_PROJECT_TYPES)
    monorepo_indicators: Tuple[str, ...] = MONOREPO_INDICATORS
    fullstack_indicators: Tuple[str, ...] = FULLSTACK_INDICATORS

    def is_stopword(self, word: str) -> bool:
        return word.lower() in self.stopwords

    def extend(
        self,
        stopwords: Iterable[str] = (),
        domain_keywords: Iterable[str] = (),
        tech_patterns: Optional[Mapping[str, str]] = None,
    ) -> 'MatchingVocabulary':
        """Return a new vocabulary with additional entries; self is untouched."""
        merged_patterns = dict(self.tech_patterns)
        merged_patterns.update(_compile(tech_patterns or {}))
        extra_keywords = tuple(
            kw for kw in domain_keywords if kw not in self.domain_keywords
        )
        return MatchingVocabulary(
            stopwords=self.stopwords | {w.lower() for w in stopwords},
            domain_keywords=self.domain_keywords + extra_keywords,
            tech_patterns=MappingProxyType(merged_patterns),
            category_project_types=self.category_project_types,
            monorepo_indicators=self.monorepo_indicators,
            fullstack_indicators=self.fullstack_indicators,
        )


DEFAULT_VOCABULARY = MatchingVocabulary()
