"""
Capability index store with two-phase construction.

Phase 1 (instant): extract keyword/tech capabilities for every agent, persist
the index and return it, so keyword matching works immediately.

Phase 2 (background): a single embedding job waits for the model, embeds
every description in concurrent batches and atomically rewrites the index
once at least one embedding succeeded.
"""
import asyncio
import dataclasses
import logging
import os
from datetime import datetime, timezone
from typing import List, Optional, Protocol

from capabilities.exceptions import CapabilitySourceError
from capabilities.extractor import extract_all
from capabilities.models import AgentDefinition, CapabilitiesIndex, CapabilityRecord
from capabilities.vocabulary import MatchingVocabulary
from clients.embedding_provider import EmbeddingProvider
from config import config
from utils.json_files import JSONFileError, read_json, write_json_atomic


class AgentLoader(Protocol):
    """Loads raw agent definitions from a source directory."""

    def load_all(self, source_path: str) -> List[AgentDefinition]:
        ...


class CapabilityIndexStore:
    """
    Builds, persists and serves the capability index for one index file.

    The background embedding job is owned by the store: at most one runs at a
    time and repeated schedule requests return the in-flight task.
    """

    def __init__(self,
                 loader: AgentLoader,
                 embedding_provider: EmbeddingProvider,
                 index_path: Optional[str] = None,
                 vocabulary: Optional[MatchingVocabulary] = None,
                 version: Optional[str] = None,
                 batch_size: Optional[int] = None,
                 ready_timeout: Optional[float] = None):
        """
        Args:
            loader: External agent definition loader
            embedding_provider: Provider used by the background embedding job
            index_path: Index file location (defaults to config.paths.index_path)
            vocabulary: Matching tables for capability extraction
            version: Expected index version; other versions are stale
            batch_size: Concurrent embeddings per background batch
            ready_timeout: Seconds the background job waits for the model
        """
        self.logger = logging.getLogger("index_store")
        self.loader = loader
        self.embedding_provider = embedding_provider
        self._index_path = index_path or config.paths.index_path
        self.vocabulary = vocabulary
        self.version = version or config.index.version
        self.batch_size = batch_size if batch_size is not None else config.index.embedding_batch_size
        self.ready_timeout = (
            ready_timeout if ready_timeout is not None
            else config.embeddings.ready_timeout_seconds
        )
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {self.batch_size}")

        self._generation_task: Optional[asyncio.Task] = None

    @property
    def index_path(self) -> str:
        return self._index_path

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def read_index(self) -> Optional[CapabilitiesIndex]:
        """Persisted index, or None if missing or unparsable."""
        try:
            data = read_json(self._index_path)
        except JSONFileError as e:
            self.logger.warning(f"Ignoring unreadable capability index: {e}")
            return None

        if not isinstance(data, dict):
            return None

        try:
            return CapabilitiesIndex.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            self.logger.warning(f"Ignoring malformed capability index {self._index_path}: {e}")
            return None

    def needs_regeneration(self, source_path: str) -> bool:
        index = self.read_index()
        return index is None or not index.is_current(self.version, source_path)

    async def load(self, source_path: str, force_regenerate: bool = False) -> List[CapabilityRecord]:
        """
        Cached records when the persisted index is current, otherwise a fresh build.

        Raises:
            CapabilitySourceError: If a rebuild is needed and the source is unreadable
        """
        if not force_regenerate:
            index = await asyncio.to_thread(self.read_index)
            if index is not None and index.is_current(self.version, source_path):
                self.logger.debug(
                    f"Using cached capability index ({index.total_agents} agents, "
                    f"{index.embedded_count()} embedded)"
                )
                return index.agents
            if index is not None:
                self.logger.info(
                    f"Capability index stale (version {index.version!r}, "
                    f"source {index.agents_path!r}), regenerating"
                )

        index = await self.build(source_path)
        return index.agents

    async def get_record(self, source_path: str, name: str) -> Optional[CapabilityRecord]:
        records = await self.load(source_path)
        return next((record for record in records if record.name == name), None)

    async def search(self, source_path: str, query: str) -> List[CapabilityRecord]:
        """Records whose name, description, keywords or tech stack contain ``query``."""
        records = await self.load(source_path)
        needle = query.lower()
        return [
            record for record in records
            if needle in record.name.lower()
            or needle in record.description.lower()
            or any(needle in kw.lower() for kw in record.keywords)
            or any(needle in tech.lower() for tech in record.tech_stack)
        ]

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def _load_definitions(self, source_path: str) -> List[AgentDefinition]:
        if not os.path.isdir(source_path):
            raise CapabilitySourceError(source_path, "directory does not exist")
        try:
            return self.loader.load_all(source_path)
        except OSError as e:
            raise CapabilitySourceError(source_path, str(e)) from e

    async def build(self, source_path: str) -> CapabilitiesIndex:
        """
        Instant phase: keyword-only index, persisted and returned immediately.

        Schedules the background embedding job when the write succeeds.

        Raises:
            CapabilitySourceError: If the agent source is missing or unreadable
        """
        definitions = await asyncio.to_thread(self._load_definitions, source_path)
        records = extract_all(definitions, self.vocabulary)

        index = CapabilitiesIndex(
            version=self.version,
            generated_at=_now_iso(),
            agents_path=source_path,
            total_agents=len(records),
            agents=records,
        )

        saved = await asyncio.to_thread(write_json_atomic, self._index_path, index.to_dict())
        if saved:
            self.logger.info(f"Generated capabilities for {len(records)} agents at {self._index_path}")
            self.schedule_embedding_generation(source_path, records, index.generated_at)
        else:
            self.logger.warning("Failed to save capabilities index, skipping embedding generation")

        return index

    def schedule_embedding_generation(self,
                                      source_path: str,
                                      records: List[CapabilityRecord],
                                      generated_at: Optional[str] = None) -> asyncio.Task:
        """
        Start the background embedding job, or return the one already running.

        The job works on copies; records already handed to callers never change.
        ``generated_at`` stamps the keyword index the job belongs to: if the file
        has since been replaced by another build, the job discards its result.
        """
        if self._generation_task is not None and not self._generation_task.done():
            self.logger.debug("Embedding generation already in progress")
            return self._generation_task

        snapshot = [dataclasses.replace(record) for record in records]
        task = asyncio.get_running_loop().create_task(
            self._generate_embeddings(source_path, snapshot, generated_at)
        )
        task.add_done_callback(self._clear_generation_task)
        self._generation_task = task
        return task

    def _clear_generation_task(self, task: asyncio.Task) -> None:
        if self._generation_task is task:
            self._generation_task = None

    def is_generation_in_progress(self) -> bool:
        return self._generation_task is not None and not self._generation_task.done()

    async def wait_for_generation(self) -> None:
        task = self._generation_task
        if task is not None:
            await task

    async def _generate_embeddings(self,
                                   source_path: str,
                                   records: List[CapabilityRecord],
                                   generated_at: Optional[str] = None) -> int:
        """Background phase. Returns the number of records embedded."""
        try:
            if not await self.embedding_provider.wait_until_ready(self.ready_timeout):
                self.logger.warning("Embedding model not available, skipping semantic indexing")
                return 0

            self.logger.info(f"Generating embeddings for {len(records)} agents in background")
            generated = 0
            for start in range(0, len(records), self.batch_size):
                batch = records[start:start + self.batch_size]
                results = await asyncio.gather(*(self._embed_record(record) for record in batch))
                generated += sum(1 for ok in results if ok)

            if generated == 0:
                self.logger.warning("No embeddings generated, keeping keyword-only index")
                return 0

            index = CapabilitiesIndex(
                version=self.version,
                generated_at=_now_iso(),
                agents_path=source_path,
                total_agents=len(records),
                agents=records,
            )
            if not await asyncio.to_thread(self._write_if_unchanged, index, generated_at):
                return 0
            self.logger.info(f"Pre-computed embeddings for {generated} agents")
            return generated

        except Exception as e:
            self.logger.warning(f"Background embedding generation failed: {e}")
            return 0

    def _write_if_unchanged(self, index: CapabilitiesIndex, generated_at: Optional[str]) -> bool:
        """Persist ``index`` unless a newer build has replaced the keyword index."""
        current = self.read_index()
        superseded = (
            current is None
            or current.agents_path != index.agents_path
            or current.version != index.version
            or (generated_at is not None and current.generated_at != generated_at)
        )
        if superseded:
            self.logger.info(
                f"Capability index at {self._index_path} was replaced by a newer build, "
                f"discarding background embeddings for {index.agents_path}"
            )
            return False
        return write_json_atomic(self._index_path, index.to_dict())

    async def _embed_record(self, record: CapabilityRecord) -> bool:
        try:
            vector = await self.embedding_provider.encode(record.description)
        except Exception as e:
            self.logger.debug(f"Skipping embedding for {record.name}: {e}")
            return False
        record.embedding = [float(v) for v in vector]
        return True


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
