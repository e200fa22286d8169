from typing import List, Protocol

import numpy as np

from .config import get_settings


class TextEncoder(Protocol):
    def encode(self, texts: List[str]) -> np.ndarray:
        """Return one L2-normalised row per text."""


class Embedder:
    def __init__(self, model_name: str):
        from sentence_transformers import SentenceTransformer

        self.model = SentenceTransformer(model_name)

    def encode(self, texts: List[str]) -> np.ndarray:
        emb = self.model.encode(texts, normalize_embeddings=True, show_progress_bar=False)
        return np.array(emb, dtype=np.float32)


_embedder = None


def get_embedder() -> Embedder:
    global _embedder
    if _embedder is None:
        settings = get_settings()
        _embedder = Embedder(settings.embedding_model)
    return _embedder
