"""
Tests for capabilities/extractor.py and capabilities/vocabulary.py.

Extraction is pure, so these run against the real default vocabulary.
"""
import pytest

from capabilities.extractor import (
    extract_all,
    extract_capabilities,
    extract_keywords,
    extract_project_types,
    extract_tech_stack,
)
from capabilities.models import AgentDefinition
from capabilities.vocabulary import DEFAULT_VOCABULARY, MatchingVocabulary


class TestKeywordExtraction:

    def test_finds_vocabulary_terms_as_substrings(self):
        """CONTRACT: Any vocabulary keyword contained in the text is extracted."""
        keywords = extract_keywords("runs a security audit on the graphql api")

        assert "security" in keywords
        assert "audit" in keywords
        assert "graphql" in keywords
        assert "api" in keywords

    def test_keywords_are_deduplicated(self):
        keywords = extract_keywords("security security SECURITY")

        assert keywords.count("security") == 1

    def test_empty_text_yields_nothing(self):
        """CONTRACT: Empty input produces empty output, never an error."""
        assert extract_keywords("") == []
        assert extract_tech_stack("") == []
        assert extract_project_types("", "unknown-category") == []


class TestTechStackExtraction:

    def test_matches_patterns_case_insensitively(self):
        stack = extract_tech_stack("Migrates Postgres tables behind a Next.js app with Prisma")

        assert "postgresql" in stack
        assert "nextjs" in stack
        assert "prisma" in stack

    def test_does_not_match_inside_other_words(self):
        """CONTRACT: Tech patterns are anchored on word boundaries."""
        stack = extract_tech_stack("reactive streams and trusted sources")

        assert "react" not in stack
        assert "rust" not in stack


class TestProjectTypeExtraction:

    def test_category_table_drives_types(self):
        types = extract_project_types("writes endpoints", "backend")

        assert types == ["backend", "fullstack", "single"]

    def test_monorepo_phrase_adds_monorepo(self):
        types = extract_project_types("works across a turborepo", "frontend")

        assert "monorepo" in types

    def test_fullstack_phrase_adds_fullstack_once(self):
        types = extract_project_types("full-stack and fullstack apps", "docs")

        assert types.count("fullstack") == 1


class TestExtractCapabilities:

    def test_combines_description_and_body(self, sample_definitions):
        """CONTRACT: Keywords and tech come from description plus body text."""
        record = extract_capabilities(sample_definitions[0])

        assert record.name == "security-auditor"
        assert record.category == "security"
        assert record.plugin == "security-scanning"
        assert record.model == "opus"
        assert record.embedding is None
        assert {"security", "audit", "owasp", "injection", "xss"} <= set(record.keywords)
        assert {"python", "postgresql"} <= set(record.tech_stack)

    def test_is_deterministic(self, sample_definitions):
        first = extract_all(sample_definitions)
        second = extract_all(sample_definitions)

        assert [r.to_dict() for r in first] == [r.to_dict() for r in second]

    def test_injected_vocabulary_is_used(self):
        vocabulary = DEFAULT_VOCABULARY.extend(
            domain_keywords=["feature flags"],
            tech_patterns={"launchdarkly": r"\blaunchdarkly\b"},
        )
        agent = AgentDefinition(
            name="flag-keeper",
            description="Manages feature flags in LaunchDarkly",
            category="devops",
            plugin="ops",
            file_path="/agents/ops/flag-keeper.md",
        )

        record = extract_capabilities(agent, vocabulary)

        assert "feature flags" in record.keywords
        assert "launchdarkly" in record.tech_stack
        assert "launchdarkly" not in extract_capabilities(agent).tech_stack


class TestMatchingVocabulary:

    def test_extend_returns_new_instance(self):
        """CONTRACT: Vocabularies are immutable; extend never mutates the original."""
        extended = DEFAULT_VOCABULARY.extend(stopwords=["please"])

        assert extended is not DEFAULT_VOCABULARY
        assert extended.is_stopword("Please")
        assert not DEFAULT_VOCABULARY.is_stopword("please")

    def test_tables_cannot_be_mutated(self):
        with pytest.raises(TypeError):
            DEFAULT_VOCABULARY.tech_patterns["new"] = None

    def test_is_frozen(self):
        vocabulary = MatchingVocabulary()
        with pytest.raises(AttributeError):
            vocabulary.stopwords = frozenset()

    def test_default_construction_uses_module_tables(self):
        """CONTRACT: A bare MatchingVocabulary() carries the default tables."""
        vocabulary = MatchingVocabulary()

        assert vocabulary.category_project_types["security"] == ("backend", "fullstack", "single", "monorepo")
        assert vocabulary.is_stopword("the")
        assert "react" in vocabulary.tech_patterns
