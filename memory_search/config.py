import os
from typing import Dict

from functools import lru_cache
from dotenv import load_dotenv
from pydantic import BaseModel

from .relevance import MIN_ABSOLUTE_SCORE, RELEVANCE_RATIO
from .utils.calibration import load_calibration_profile, relevance_overrides


load_dotenv()


class RelevanceSettings(BaseModel):
    ratio: float = RELEVANCE_RATIO
    min_score: float = MIN_ABSOLUTE_SCORE

    def as_dict(self) -> Dict[str, float]:
        return self.model_dump()


class Settings(BaseModel):
    openai_api_base: str = os.getenv("OPENAI_API_BASE", "https://api.openai.com").strip()
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "").strip()
    openai_model: str = os.getenv("OPENAI_MODEL", "gpt-3.5-turbo")
    embedding_model: str = os.getenv("EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2")
    data_file: str = os.getenv("DATA_FILE", "data/memories.jsonl")
    todos_file: str = os.getenv("TODOS_FILE", "data/todos.jsonl")
    score_calibration_path: str = os.getenv("SCORE_CALIBRATION_PATH", "").strip()
    candidate_pool_size: int = int(os.getenv("CANDIDATE_POOL_SIZE", 100))
    max_memories_per_day: int = int(os.getenv("MAX_MEMORIES_PER_DAY", 5))
    today_only: bool = os.getenv("TODAY_ONLY", "1").strip().lower() not in {"0", "false", "no"}
    relevance: RelevanceSettings = RelevanceSettings()

    def __init__(self, **data):
        super().__init__(**data)
        self._apply_env_relevance_overrides()
        self._apply_calibration_profile()

    @property
    def llm_configured(self) -> bool:
        return bool(self.openai_api_key and self.openai_model and self.openai_api_base)

    def _apply_env_relevance_overrides(self) -> None:
        env_mapping = {}
        for key, env_name in [("ratio", "RELEVANCE_RATIO"), ("min_score", "RELEVANCE_MIN_SCORE")]:
            value = os.getenv(env_name)
            if value is None:
                continue
            env_mapping[key] = value
        if env_mapping:
            values = relevance_overrides(env_mapping, defaults=self.relevance.as_dict())
            self.relevance = RelevanceSettings(**values)

    def _apply_calibration_profile(self) -> None:
        profile = load_calibration_profile(self.score_calibration_path)
        if not profile:
            return
        relevance_raw = profile.get("relevance")
        if isinstance(relevance_raw, dict):
            values = relevance_overrides(relevance_raw, defaults=self.relevance.as_dict())
            self.relevance = RelevanceSettings(**values)


@lru_cache()
def get_settings() -> Settings:
    return Settings()
