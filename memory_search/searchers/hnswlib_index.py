import logging
import threading
from typing import Any, Dict, List, Optional

import hnswlib
import numpy as np

from ..embedding import TextEncoder, get_embedder
from ..models import SearchCandidate
from ..store import MemoryStore
from .base import candidate_from_record

logger = logging.getLogger(__name__)


class HNSWSearcher:
    """Cosine nearest-neighbour search over the memory store.

    The index is rebuilt lazily whenever the store's ``version`` moves on.
    """

    name = "semantic"

    def __init__(self, store: MemoryStore, embedder: Optional[TextEncoder] = None,
                 ef_construction: int = 200, M: int = 32, ef_search: int = 80):
        self.store = store
        self.embedder = embedder or get_embedder()
        self.ef_construction = ef_construction
        self.M = M
        self.ef_search = ef_search
        self.index: Optional[hnswlib.Index] = None
        self.data: List[Dict[str, Any]] = []
        self._built_version = -1
        self._lock = threading.Lock()

    def _rebuild(self):
        data = self.store.snapshot()
        self.data = data
        self._built_version = self.store.version
        if not data:
            self.index = None
            return
        vecs = self.embedder.encode([d.get('text', '') for d in data])
        index = hnswlib.Index(space='cosine', dim=int(vecs.shape[1]))
        index.init_index(max_elements=len(data), ef_construction=self.ef_construction, M=self.M)
        index.add_items(vecs, np.arange(len(data)))
        index.set_ef(self.ef_search)
        self.index = index
        logger.info("Rebuilt HNSW index with %d memories", len(data))

    def _ensure_index(self):
        with self._lock:
            if self._built_version != self.store.version:
                self._rebuild()
            return self.index, self.data

    def stats(self) -> Dict[str, Any]:
        return {
            "indexed": len(self.data),
            "stale": self._built_version != self.store.version,
        }

    def search(self, query: str, limit: int = 100, *, user_id: Optional[str] = None) -> List[SearchCandidate]:
        index, data = self._ensure_index()
        if index is None or limit <= 0:
            return []
        # user filtering happens after the knn query, so scan the whole index when scoped
        k = len(data) if user_id is not None else min(limit, len(data))
        qv = self.embedder.encode([query])
        index.set_ef(max(self.ef_search, k))
        labels, dists = index.knn_query(qv, k=k)
        sims = (1 - dists[0]).tolist()
        hits: List[SearchCandidate] = []
        for idx, sc in zip(labels[0].tolist(), sims):
            row = data[idx]
            if user_id is not None and row.get('user_id') != user_id:
                continue
            hits.append(candidate_from_record(row, float(sc)))
            if len(hits) >= limit:
                break
        return hits
