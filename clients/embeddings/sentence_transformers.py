"""
ONNX all-MiniLM-L6-v2 backend for short-text sentence embeddings.

Agent descriptions and task prompts are a sentence or two long, which is the
regime MiniLM is trained for. Vectors are 384-dimensional, mean pooled and
L2-normalized so a dot product is a cosine similarity.
"""
import logging
import os
import threading
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

MAX_TOKENS = 256

# One loaded model per (model_name, cache_dir, thread_limit)
_model_instances: Dict[Tuple[str, Optional[str], int], 'AllMiniLMModel'] = {}
_model_lock = threading.Lock()


class AllMiniLMModel:
    """
    CPU-only ONNX session plus tokenizer for all-MiniLM-L6-v2.

    Construction is slow (model download/export on first run) and blocking;
    callers on an event loop should construct it in a worker thread.
    """

    DIMENSION = 384

    def __init__(self,
                 model_name: str = "sentence-transformers/all-MiniLM-L6-v2",
                 cache_dir: Optional[str] = None,
                 thread_limit: int = 2):
        self.model_name = model_name
        self.cache_dir = cache_dir or os.path.join(
            os.path.expanduser("~"), ".cache", "agent_relevance", "models"
        )
        self.thread_limit = thread_limit
        self.model_dir = os.path.join(self.cache_dir, model_name.replace("/", "_"))
        self.model_path = os.path.join(self.model_dir, "model.onnx")

        self.session = None
        self.tokenizer = None
        self._input_names: List[str] = []

        self._load()

    def _load(self) -> None:
        try:
            import onnxruntime as ort
            from transformers import AutoTokenizer
        except ImportError as e:
            raise ImportError(
                f"Embedding backend requires onnxruntime and transformers: {e}"
            ) from e

        if not os.path.exists(self.model_path):
            self._export_onnx()

        if os.path.exists(os.path.join(self.model_dir, "tokenizer_config.json")):
            self.tokenizer = AutoTokenizer.from_pretrained(self.model_dir)
        else:
            self.tokenizer = AutoTokenizer.from_pretrained(self.model_name, cache_dir=self.cache_dir)
            self.tokenizer.save_pretrained(self.model_dir)

        options = ort.SessionOptions()
        options.intra_op_num_threads = self.thread_limit
        options.inter_op_num_threads = 1
        self.session = ort.InferenceSession(
            self.model_path,
            sess_options=options,
            providers=['CPUExecutionProvider']
        )
        self._input_names = [inp.name for inp in self.session.get_inputs()]
        logger.info(f"Loaded {self.model_name} from {self.model_path}")

    def _export_onnx(self) -> None:
        """Export the HuggingFace checkpoint to ONNX via optimum."""
        try:
            from optimum.onnxruntime import ORTModelForFeatureExtraction
        except ImportError as e:
            raise ImportError(
                "ONNX export needs optimum: pip install 'optimum[onnxruntime]'"
            ) from e

        os.makedirs(self.model_dir, exist_ok=True)
        logger.info(f"Exporting {self.model_name} to ONNX (first run)")
        ort_model = ORTModelForFeatureExtraction.from_pretrained(
            self.model_name,
            export=True,
            cache_dir=self.cache_dir
        )
        ort_model.save_pretrained(self.model_dir)
        if not os.path.exists(self.model_path):
            raise RuntimeError(f"ONNX export did not produce {self.model_path}")

    def encode(self, texts: Union[str, List[str]], batch_size: int = 32) -> np.ndarray:
        """
        Embed one text or a list of texts.

        Returns:
            Shape (384,) for a single string, (n, 384) for a list
        """
        if self.session is None or self.tokenizer is None:
            raise RuntimeError("Embedding model is closed")

        single = isinstance(texts, str)
        batch = [texts] if single else list(texts)
        if not batch:
            return np.zeros((0, self.DIMENSION), dtype=np.float32)

        chunks = []
        for start in range(0, len(batch), batch_size):
            encoded = self.tokenizer(
                batch[start:start + batch_size],
                padding=True,
                truncation=True,
                max_length=MAX_TOKENS,
                return_tensors='np'
            )
            inputs = {
                'input_ids': encoded['input_ids'],
                'attention_mask': encoded['attention_mask'],
            }
            if 'token_type_ids' in self._input_names:
                inputs['token_type_ids'] = encoded.get(
                    'token_type_ids', np.zeros_like(encoded['input_ids'])
                )

            hidden = self.session.run(None, inputs)[0]
            pooled = _mean_pool(hidden, encoded['attention_mask'])
            norms = np.linalg.norm(pooled, axis=1, keepdims=True)
            chunks.append((pooled / np.maximum(norms, 1e-10)).astype(np.float32))

        embeddings = np.vstack(chunks)
        return embeddings[0] if single else embeddings

    def get_dimension(self) -> int:
        return self.DIMENSION

    def close(self) -> None:
        self.session = None
        self.tokenizer = None


def _mean_pool(hidden: np.ndarray, attention_mask: np.ndarray) -> np.ndarray:
    mask = np.expand_dims(attention_mask, -1).astype(hidden.dtype)
    summed = np.sum(hidden * mask, axis=1)
    counts = np.clip(np.sum(mask, axis=1), 1e-9, None)
    return summed / counts


def get_all_minilm_model(model_name: str = "sentence-transformers/all-MiniLM-L6-v2",
                         cache_dir: Optional[str] = None,
                         thread_limit: int = 2) -> AllMiniLMModel:
    """
    Get or create the process-wide model for this configuration.

    Thread-safe; concurrent first calls construct the model once.
    """
    key = (model_name, cache_dir, thread_limit)
    model = _model_instances.get(key)
    if model is not None:
        return model

    with _model_lock:
        model = _model_instances.get(key)
        if model is None:
            logger.info(f"Creating All-MiniLM model singleton for {model_name}")
            model = AllMiniLMModel(
                model_name=model_name,
                cache_dir=cache_dir,
                thread_limit=thread_limit
            )
            _model_instances[key] = model
        return model
