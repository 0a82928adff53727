"""
Tests for capabilities/index_store.py.

Covers the instant keyword phase, the single-flight background embedding
phase, staleness rules and the hard failure on a missing source.
"""
import json
import os

import pytest
import pytest_asyncio

from capabilities.exceptions import CapabilitySourceError
from capabilities.index_store import CapabilityIndexStore
from clients.embedding_provider import EmbeddingProvider
from tests.fixtures.agents import (
    BlockingModelFactory,
    HashingEmbeddingModel,
    InMemoryAgentLoader,
    failing_model_factory,
)


def _read(path):
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def _make_store(loader, index_path, model_factory, **kwargs):
    provider = EmbeddingProvider(
        model_factory=model_factory,
        poll_interval=0.01,
        task_timeout=0.5
    )
    return CapabilityIndexStore(
        loader=loader,
        embedding_provider=provider,
        index_path=index_path,
        ready_timeout=kwargs.pop("ready_timeout", 2.0),
        **kwargs
    )


@pytest.fixture
def loader(sample_definitions):
    return InMemoryAgentLoader(sample_definitions)


@pytest_asyncio.fixture
async def store(loader, index_path, hashing_model):
    store = _make_store(loader, index_path, lambda: hashing_model)
    yield store
    await store.wait_for_generation()


class TestInstantBuild:

    @pytest.mark.asyncio
    async def test_build_persists_keyword_index_without_embeddings(self, store, agents_dir, index_path):
        """CONTRACT: Phase 1 returns and persists records with no embeddings."""
        index = await store.build(agents_dir)

        assert index.total_agents == 3
        assert all(record.embedding is None for record in index.agents)
        assert index.agents_path == agents_dir
        assert index.version == store.version

    @pytest.mark.asyncio
    async def test_persisted_file_uses_camel_case_contract(self, loader, agents_dir, index_path):
        store = _make_store(loader, index_path, failing_model_factory, ready_timeout=0.05)

        await store.build(agents_dir)
        await store.wait_for_generation()
        data = _read(index_path)

        assert set(data) == {"version", "generatedAt", "agentsPath", "totalAgents", "agents"}
        assert data["totalAgents"] == 3
        assert {"techStack", "projectTypes", "filePath"} <= set(data["agents"][0])

    @pytest.mark.asyncio
    async def test_missing_source_directory_is_a_hard_error(self, store, tmp_path):
        """CONTRACT: An unreadable source surfaces as CapabilitySourceError."""
        with pytest.raises(CapabilitySourceError):
            await store.load(str(tmp_path / "does-not-exist"))

    @pytest.mark.asyncio
    async def test_loader_os_error_is_a_hard_error(self, agents_dir, index_path):
        class ExplodingLoader:
            def load_all(self, source_path):
                raise PermissionError("denied")

        store = _make_store(ExplodingLoader(), index_path, failing_model_factory)

        with pytest.raises(CapabilitySourceError):
            await store.build(agents_dir)


class TestBackgroundEmbeddings:

    @pytest.mark.asyncio
    async def test_background_job_adds_embeddings(self, store, agents_dir, index_path):
        """CONTRACT: After the job completes the persisted index carries vectors."""
        await store.build(agents_dir)
        await store.wait_for_generation()

        data = _read(index_path)
        assert all(len(agent["embedding"]) == 384 for agent in data["agents"])
        assert not store.is_generation_in_progress()

    @pytest.mark.asyncio
    async def test_returned_records_are_not_mutated(self, store, agents_dir):
        """CONTRACT: Background work never changes records already handed out."""
        index = await store.build(agents_dir)
        await store.wait_for_generation()

        assert all(record.embedding is None for record in index.agents)

    @pytest.mark.asyncio
    async def test_reload_after_generation_serves_embeddings(self, store, loader, agents_dir):
        await store.build(agents_dir)
        await store.wait_for_generation()

        records = await store.load(agents_dir)

        assert loader.load_count == 1
        assert all(record.embedding is not None for record in records)

    @pytest.mark.asyncio
    async def test_concurrent_schedules_share_one_job(self, loader, agents_dir, index_path):
        """CONTRACT: A second schedule while one is active returns the same handle."""
        factory = BlockingModelFactory()
        store = _make_store(loader, index_path, factory)
        index = await store.build(agents_dir)

        first = store.schedule_embedding_generation(agents_dir, index.agents)
        second = store.schedule_embedding_generation(agents_dir, index.agents)

        assert first is second
        assert store.is_generation_in_progress()

        factory.release()
        await store.wait_for_generation()
        assert first.done()
        assert first.result() == 3
        assert not store.is_generation_in_progress()

    @pytest.mark.asyncio
    async def test_unavailable_model_keeps_keyword_index(self, loader, agents_dir, index_path):
        """CONTRACT: If the model never becomes ready the job exits quietly."""
        store = _make_store(loader, index_path, failing_model_factory, ready_timeout=0.05)

        await store.build(agents_dir)
        before = _read(index_path)
        await store.wait_for_generation()

        assert _read(index_path) == before
        assert all("embedding" not in agent for agent in before["agents"])

    @pytest.mark.asyncio
    async def test_model_timeout_keeps_keyword_index(self, loader, agents_dir, index_path):
        factory = BlockingModelFactory()
        store = _make_store(loader, index_path, factory, ready_timeout=0.05)

        await store.build(agents_dir)
        before = _read(index_path)
        await store.wait_for_generation()
        factory.release()
        await store.embedding_provider.wait_until_ready(2.0)

        assert _read(index_path) == before

    @pytest.mark.asyncio
    async def test_per_record_failures_are_skipped(self, loader, agents_dir, index_path):
        """CONTRACT: One failing embedding does not stop the others."""
        model = HashingEmbeddingModel(fail_on=lambda text: text.startswith("Security"))
        store = _make_store(loader, index_path, lambda: model, batch_size=2)

        await store.build(agents_dir)
        await store.wait_for_generation()

        agents = {agent["name"]: agent for agent in _read(index_path)["agents"]}
        assert "embedding" not in agents["security-auditor"]
        assert "embedding" in agents["frontend-developer"]
        assert "embedding" in agents["performance-engineer"]

    @pytest.mark.asyncio
    async def test_zero_successes_do_not_rewrite_index(self, loader, agents_dir, index_path):
        """CONTRACT: An all-failed batch never clobbers the keyword index."""
        model = HashingEmbeddingModel(fail_on=lambda text: True)
        store = _make_store(loader, index_path, lambda: model)

        await store.build(agents_dir)
        before = _read(index_path)
        await store.wait_for_generation()

        assert _read(index_path) == before
        assert len(model.calls) == 3

    @pytest.mark.asyncio
    async def test_job_never_overwrites_a_newer_build(self, loader, agents_dir, index_path, tmp_path):
        """CONTRACT: A job started for an older keyword index discards its result."""
        factory = BlockingModelFactory()
        store = _make_store(loader, index_path, factory)
        other = tmp_path / "other-agents"
        other.mkdir()

        await store.build(agents_dir)
        job = store._generation_task
        await store.build(str(other))
        factory.release()
        await store.wait_for_generation()

        data = _read(index_path)
        assert job.result() == 0
        assert data["agentsPath"] == str(other)
        assert all("embedding" not in agent for agent in data["agents"])
        assert not store.needs_regeneration(str(other))

    @pytest.mark.asyncio
    async def test_forced_rebuild_during_job_is_kept(self, loader, agents_dir, index_path, sample_definitions):
        factory = BlockingModelFactory()
        store = _make_store(loader, index_path, factory)

        await store.build(agents_dir)
        loader.definitions = sample_definitions[:1]
        await store.load(agents_dir, force_regenerate=True)
        factory.release()
        await store.wait_for_generation()

        assert [agent["name"] for agent in _read(index_path)["agents"]] == [sample_definitions[0].name]


class TestStaleness:

    @pytest.mark.asyncio
    async def test_current_index_is_reused(self, store, loader, agents_dir):
        await store.load(agents_dir)
        await store.wait_for_generation()
        await store.load(agents_dir)

        assert loader.load_count == 1
        assert not store.needs_regeneration(agents_dir)

    @pytest.mark.asyncio
    async def test_version_mismatch_forces_regeneration(self, store, loader, agents_dir, index_path):
        """CONTRACT: A different version is stale and is never silently reused."""
        await store.load(agents_dir)
        await store.wait_for_generation()

        data = _read(index_path)
        data["version"] = "1.0.0"
        with open(index_path, 'w', encoding='utf-8') as f:
            json.dump(data, f)

        assert store.needs_regeneration(agents_dir)
        await store.load(agents_dir)

        assert loader.load_count == 2
        assert _read(index_path)["version"] == store.version

    @pytest.mark.asyncio
    async def test_source_path_mismatch_forces_regeneration(self, store, loader, agents_dir, tmp_path):
        await store.load(agents_dir)
        await store.wait_for_generation()

        other = tmp_path / "other-agents"
        other.mkdir()

        assert store.needs_regeneration(str(other))
        await store.load(str(other))

        assert loader.load_count == 2

    @pytest.mark.asyncio
    async def test_force_regenerate_rebuilds(self, store, loader, agents_dir):
        await store.load(agents_dir)
        await store.wait_for_generation()
        await store.load(agents_dir, force_regenerate=True)

        assert loader.load_count == 2

    @pytest.mark.asyncio
    async def test_corrupt_index_is_rebuilt(self, store, loader, agents_dir, index_path):
        os.makedirs(os.path.dirname(index_path), exist_ok=True)
        with open(index_path, 'w', encoding='utf-8') as f:
            f.write("{not json")

        records = await store.load(agents_dir)

        assert len(records) == 3
        assert loader.load_count == 1

    @pytest.mark.asyncio
    async def test_empty_index_is_rebuilt(self, store, loader, agents_dir, index_path):
        os.makedirs(os.path.dirname(index_path), exist_ok=True)
        with open(index_path, 'w', encoding='utf-8') as f:
            json.dump({"version": store.version, "generatedAt": "", "agentsPath": agents_dir,
                       "totalAgents": 0, "agents": []}, f)

        await store.load(agents_dir)

        assert loader.load_count == 1

    @pytest.mark.asyncio
    async def test_non_object_record_is_rebuilt(self, store, loader, agents_dir, index_path):
        """CONTRACT: A record that is not an object marks the whole file as corrupt."""
        os.makedirs(os.path.dirname(index_path), exist_ok=True)
        with open(index_path, 'w', encoding='utf-8') as f:
            json.dump({"version": store.version, "agentsPath": agents_dir, "agents": ["oops"]}, f)

        assert store.read_index() is None
        records = await store.load(agents_dir)

        assert len(records) == 3
        assert loader.load_count == 1


class TestLookups:

    @pytest.mark.asyncio
    async def test_get_record_by_name(self, store, agents_dir):
        record = await store.get_record(agents_dir, "frontend-developer")

        assert record is not None
        assert record.category == "frontend"
        assert await store.get_record(agents_dir, "missing-agent") is None

    @pytest.mark.asyncio
    async def test_search_matches_tech_and_keywords(self, store, agents_dir):
        by_tech = await store.search(agents_dir, "tailwind")
        by_keyword = await store.search(agents_dir, "OWASP")

        assert [r.name for r in by_tech] == ["frontend-developer"]
        assert [r.name for r in by_keyword] == ["security-auditor"]


class TestConstruction:

    def test_zero_batch_size_is_rejected(self, index_path):
        """CONTRACT: An explicit 0 is not treated as "use the default"."""
        with pytest.raises(ValueError):
            _make_store(InMemoryAgentLoader([]), index_path, failing_model_factory, batch_size=0)

    def test_explicit_zero_ready_timeout_is_kept(self, index_path):
        store = _make_store(InMemoryAgentLoader([]), index_path, failing_model_factory, ready_timeout=0)

        assert store.ready_timeout == 0
