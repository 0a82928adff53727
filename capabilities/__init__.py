"""
Capability extraction and the persisted capability index.

Components:
- extractor: raw agent definition -> CapabilityRecord (pure)
- vocabulary: immutable matching tables shared with scoring
- index_store: two-phase index build, staleness checks, background embeddings
"""
from capabilities.exceptions import CapabilityError, CapabilitySourceError
from capabilities.extractor import extract_all, extract_capabilities
from capabilities.index_store import AgentLoader, CapabilityIndexStore
from capabilities.models import AgentDefinition, CapabilitiesIndex, CapabilityRecord
from capabilities.vocabulary import DEFAULT_VOCABULARY, MatchingVocabulary

__all__ = [
    'AgentDefinition',
    'AgentLoader',
    'CapabilitiesIndex',
    'CapabilityError',
    'CapabilityIndexStore',
    'CapabilityRecord',
    'CapabilitySourceError',
    'DEFAULT_VOCABULARY',
    'MatchingVocabulary',
    'extract_all',
    'extract_capabilities',
]
