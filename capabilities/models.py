"""
Capability data structures.

AgentDefinition is what the external loader hands us; CapabilityRecord and
CapabilitiesIndex are what we persist. Serialized keys are camelCase to match
the on-disk index format shared with reporting tools.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np


@dataclass
class AgentDefinition:
    """Raw agent definition produced by an external loader."""
    name: str
    description: str
    category: str
    plugin: str
    file_path: str
    content: str = ""
    model: Optional[str] = None


@dataclass
class CapabilityRecord:
    """
    Structured summary of an agent's declared expertise.

    A record without an embedding is matched on keywords only.
    """
    name: str
    description: str
    category: str
    plugin: str
    keywords: List[str] = field(default_factory=list)
    tech_stack: List[str] = field(default_factory=list)
    project_types: List[str] = field(default_factory=list)
    model: Optional[str] = None
    file_path: str = ""
    embedding: Optional[List[float]] = None

    def embedding_array(self) -> Optional[np.ndarray]:
        if not self.embedding:
            return None
        return np.asarray(self.embedding, dtype=np.float32)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "plugin": self.plugin,
            "keywords": list(self.keywords),
            "techStack": list(self.tech_stack),
            "projectTypes": list(self.project_types),
            "filePath": self.file_path,
        }
        if self.model is not None:
            data["model"] = self.model
        if self.embedding is not None:
            data["embedding"] = [float(v) for v in self.embedding]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CapabilityRecord':
        if not isinstance(data, dict):
            raise TypeError(f"capability record must be an object, got {type(data).__name__}")
        embedding = data.get("embedding")
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            category=data.get("category", "other"),
            plugin=data.get("plugin", ""),
            keywords=list(data.get("keywords", [])),
            tech_stack=list(data.get("techStack", [])),
            project_types=list(data.get("projectTypes", [])),
            model=data.get("model"),
            file_path=data.get("filePath", ""),
            embedding=[float(v) for v in embedding] if embedding else None,
        )


@dataclass
class CapabilitiesIndex:
    """Versioned catalog of capability records for one agent source."""
    version: str
    generated_at: str
    agents_path: str
    total_agents: int
    agents: List[CapabilityRecord] = field(default_factory=list)

    def is_current(self, version: str, agents_path: str) -> bool:
        """Reusable only if non-empty and built by this version from this source."""
        return (
            bool(self.agents)
            and self.version == version
            and self.agents_path == agents_path
        )

    def embedded_count(self) -> int:
        return sum(1 for record in self.agents if record.embedding)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "generatedAt": self.generated_at,
            "agentsPath": self.agents_path,
            "totalAgents": self.total_agents,
            "agents": [record.to_dict() for record in self.agents],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CapabilitiesIndex':
        items = data.get("agents", [])
        if not isinstance(items, list):
            raise TypeError(f"agents must be a list, got {type(items).__name__}")
        agents = [CapabilityRecord.from_dict(item) for item in items]
        return cls(
            version=str(data.get("version", "")),
            generated_at=str(data.get("generatedAt", "")),
            agents_path=str(data.get("agentsPath", "")),
            total_agents=int(data.get("totalAgents", len(agents))),
            agents=agents,
        )
