"""
Capability extraction from raw agent definitions.

Pure functions: the same definition always yields the same record, with no I/O.
"""
from typing import List, Optional

from capabilities.models import AgentDefinition, CapabilityRecord
from capabilities.vocabulary import DEFAULT_VOCABULARY, MatchingVocabulary


def extract_keywords(text: str, vocabulary: MatchingVocabulary = DEFAULT_VOCABULARY) -> List[str]:
    """Domain keywords appearing as substrings of ``text``, in vocabulary order."""
    lowered = text.lower()
    found: List[str] = []
    for keyword in vocabulary.domain_keywords:
        if keyword in lowered and keyword not in found:
            found.append(keyword)
    return found


def extract_tech_stack(text: str, vocabulary: MatchingVocabulary = DEFAULT_VOCABULARY) -> List[str]:
    return [
        tech for tech, pattern in vocabulary.tech_patterns.items()
        if pattern.search(text)
    ]


def extract_project_types(
    text: str,
    category: str,
    vocabulary: MatchingVocabulary = DEFAULT_VOCABULARY
) -> List[str]:
    """
    Project-type affinities from the category table plus textual hints.

    Monorepo and fullstack phrases add their type even when the category
    does not imply it.
    """
    lowered = text.lower()
    types = list(vocabulary.category_project_types.get(category, ()))

    if any(phrase in lowered for phrase in vocabulary.monorepo_indicators):
        if "monorepo" not in types:
            types.append("monorepo")

    if any(phrase in lowered for phrase in vocabulary.fullstack_indicators):
        if "fullstack" not in types:
            types.append("fullstack")

    return types


def extract_capabilities(
    agent: AgentDefinition,
    vocabulary: Optional[MatchingVocabulary] = None
) -> CapabilityRecord:
    """
    Build a capability record from an agent definition.

    Args:
        agent: Definition from the agent loader
        vocabulary: Matching tables (defaults to DEFAULT_VOCABULARY)

    Returns:
        CapabilityRecord without an embedding
    """
    vocabulary = vocabulary or DEFAULT_VOCABULARY
    text = f"{agent.description} {agent.content}".lower()

    return CapabilityRecord(
        name=agent.name,
        description=agent.description,
        category=agent.category,
        plugin=agent.plugin,
        keywords=extract_keywords(text, vocabulary),
        tech_stack=extract_tech_stack(text, vocabulary),
        project_types=extract_project_types(text, agent.category, vocabulary),
        model=agent.model,
        file_path=agent.file_path,
    )


def extract_all(
    agents: List[AgentDefinition],
    vocabulary: Optional[MatchingVocabulary] = None
) -> List[CapabilityRecord]:
    return [extract_capabilities(agent, vocabulary) for agent in agents]
