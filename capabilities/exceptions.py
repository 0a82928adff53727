"""Exceptions raised by the capability index layer."""


class CapabilityError(Exception):
    """Base class for capability index failures."""


class CapabilitySourceError(CapabilityError):
    """The agent definition source could not be read during the instant build."""

    def __init__(self, source_path: str, reason: str):
        self.source_path = source_path
        self.reason = reason
        super().__init__(f"Cannot read agent definitions from {source_path}: {reason}")
