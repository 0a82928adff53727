"""
Lazy embedding provider for agent relevance scoring.

Wraps the MiniLM backend with a load lifecycle that never blocks the event
loop: the model loads in a worker thread while callers keep working, and
every read path degrades to ``None`` instead of raising when the model is
not (yet) available.

States: UNLOADED -> LOADING -> READY, or LOADING -> UNAVAILABLE if the load
fails. UNAVAILABLE is terminal until ``reset()``.
"""
import asyncio
import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence, Union

import numpy as np

from config import config

logger = logging.getLogger(__name__)

Vector = Union[np.ndarray, Sequence[float]]


class EmbeddingState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    UNAVAILABLE = "unavailable"


class EmbeddingCache:
    """
    Process-wide embedding cache keyed by agent name.

    Append-only: the first vector stored for a key wins, so concurrent readers
    never see a key change under them. ``clear()`` exists for test isolation.
    """

    def __init__(self):
        self._vectors: Dict[str, np.ndarray] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[np.ndarray]:
        return self._vectors.get(key)

    def set(self, key: str, vector: np.ndarray) -> np.ndarray:
        """Store ``vector`` unless ``key`` is already cached; returns the cached value."""
        with self._lock:
            existing = self._vectors.get(key)
            if existing is not None:
                return existing
            self._vectors[key] = vector
            return vector

    def clear(self) -> None:
        with self._lock:
            self._vectors.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._vectors

    def __len__(self) -> int:
        return len(self._vectors)


_default_cache = EmbeddingCache()


def get_default_cache() -> EmbeddingCache:
    """The cache shared by every provider built without an explicit one."""
    return _default_cache


def _default_model_factory() -> Any:
    from clients.embeddings.sentence_transformers import get_all_minilm_model
    fast = config.embeddings.fast_model
    return get_all_minilm_model(
        model_name=fast.model_name,
        cache_dir=fast.cache_dir,
        thread_limit=fast.thread_limit
    )


class EmbeddingProvider:
    """
    Adapter between scoring code and the sentence-embedding backend.

    The model factory is any zero-argument callable returning an object with
    ``encode(text) -> np.ndarray``; it runs in a worker thread. Providers
    built without a ``cache`` share the process-wide default cache.
    """

    def __init__(self,
                 model_factory: Optional[Callable[[], Any]] = None,
                 cache: Optional[EmbeddingCache] = None,
                 poll_interval: Optional[float] = None,
                 task_timeout: Optional[float] = None):
        self.logger = logging.getLogger("embedding_provider")
        self._model_factory = model_factory or _default_model_factory
        self.cache = cache if cache is not None else _default_cache
        self.poll_interval = (
            poll_interval if poll_interval is not None
            else config.embeddings.poll_interval_seconds
        )
        self.task_timeout = (
            task_timeout if task_timeout is not None
            else config.embeddings.task_timeout_seconds
        )
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.task_timeout < 0:
            raise ValueError(f"task_timeout must not be negative, got {self.task_timeout}")

        self._state = EmbeddingState.UNLOADED
        self._model = None
        self._load_task: Optional[asyncio.Task] = None
        self.last_error: Optional[str] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> EmbeddingState:
        return self._state

    def is_ready(self) -> bool:
        return self._state == EmbeddingState.READY

    def is_loading(self) -> bool:
        return self._state == EmbeddingState.LOADING

    def preload(self) -> None:
        """
        Start loading the model in the background. No-op unless UNLOADED.

        Must be called from a running event loop.
        """
        if self._state != EmbeddingState.UNLOADED:
            return

        self._state = EmbeddingState.LOADING
        self._load_task = asyncio.get_running_loop().create_task(self._load_model())

    async def _load_model(self) -> None:
        try:
            model = await asyncio.to_thread(self._model_factory)
        except Exception as e:
            self.last_error = str(e)
            self._state = EmbeddingState.UNAVAILABLE
            self.logger.warning(f"Embedding model unavailable: {e}")
            return

        self._model = model
        self._state = EmbeddingState.READY
        self.logger.info("Embedding model ready")

    async def wait_until_ready(self, timeout: float) -> bool:
        """
        Poll readiness until ``timeout`` seconds elapse, triggering a load if needed.

        Returns:
            True if the model is ready, False on timeout or load failure
        """
        self.preload()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while not self.is_ready():
            if self._state == EmbeddingState.UNAVAILABLE:
                return False
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False
            await asyncio.sleep(min(self.poll_interval, remaining))

        return True

    def reset(self) -> None:
        """Drop the loaded model and cached vectors; the next call reloads."""
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
        self._load_task = None
        self._model = None
        self._state = EmbeddingState.UNLOADED
        self.last_error = None
        self.cache.clear()

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    async def encode(self, text: str) -> np.ndarray:
        """
        Embed ``text`` with the loaded model.

        Raises:
            RuntimeError: If the model is not ready
        """
        if not self.is_ready():
            raise RuntimeError(f"Embedding model not ready (state={self._state.value})")
        vector = await asyncio.to_thread(self._model.encode, text)
        return np.asarray(vector, dtype=np.float32)

    async def get_embedding(self, key: str, text: str) -> Optional[np.ndarray]:
        """
        Cached embedding for ``key``; computed only if the model is already ready.

        Never raises. Returns None when the model is not ready or encoding fails.
        """
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        if not self.is_ready():
            return None

        try:
            vector = await self.encode(text)
        except Exception as e:
            self.logger.debug(f"Embedding for {key} failed: {e}")
            return None

        return self.cache.set(key, vector)

    async def get_task_embedding(self, text: str) -> Optional[np.ndarray]:
        """
        Embed a task description, waiting at most ``task_timeout`` for the model.

        Returns None if the model does not become ready in time; a later call
        can still succeed once loading finishes.
        """
        try:
            if not await self.wait_until_ready(self.task_timeout):
                self.logger.debug(
                    f"Task embedding skipped, model {self._state.value} after {self.task_timeout}s"
                )
                return None
            return await self.encode(text)
        except Exception as e:
            self.logger.debug(f"Task embedding failed: {e}")
            return None

    @staticmethod
    def similarity(a: Optional[Vector], b: Optional[Vector]) -> float:
        """
        Cosine similarity in [-1, 1].

        Missing, zero-norm or dimension-mismatched vectors give exactly 0.0.
        """
        if a is None or b is None:
            return 0.0

        va = np.asarray(a, dtype=np.float64).ravel()
        vb = np.asarray(b, dtype=np.float64).ravel()
        if va.size == 0 or va.shape != vb.shape:
            return 0.0

        norm_a = np.linalg.norm(va)
        norm_b = np.linalg.norm(vb)
        if norm_a == 0 or norm_b == 0:
            return 0.0

        similarity = float(np.dot(va, vb) / (norm_a * norm_b))
        if not np.isfinite(similarity):
            return 0.0
        return max(-1.0, min(similarity, 1.0))
