"""Search engine settings loaded from the environment."""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

ENV_PREFIX = "SEARCH_"


class SearchSettings(BaseModel):
    """Tunable constants of the search engine."""
    cache_capacity: int = Field(1000, gt=0, description="Maximum cached search results")
    tfidf_sample_size: int = Field(200, gt=0, description="Products used to build the TF-IDF vocabulary")
    word2vec_train_size: int = Field(100, gt=0, description="Products used for Word2Vec training passes")
    word2vec_max_tokens: int = Field(20, gt=0, description="Tokens per product during training")
    word2vec_dimensions: int = Field(50, gt=0)
    word2vec_epochs: int = Field(10, ge=0)
    word2vec_learning_rate: float = Field(0.01, gt=0)
    word2vec_window: int = Field(2, gt=0)
    word2vec_max_context: int = Field(2, gt=0)
    model_sample_size: int = Field(200, gt=0, description="Products used by the category and brand models")
    category_training_limit: int = Field(50, gt=0, description="Training vectors compared per category")
    brand_feature_limit: int = Field(50, gt=0, description="Feature vectors compared per brand")
    vector_sample_size: int = Field(500, gt=0, description="Products that get a composite vector")
    candidate_cap: int = Field(1000, gt=0, description="Candidates scored when no filter narrows the set")
    candidate_multiplier: int = Field(2, gt=0, description="Index candidates fetched per requested result")
    fallback_multiplier: int = Field(3, gt=0, description="Fallback records fetched per requested result")
    similarity_threshold: float = Field(0.1, description="Minimum ML similarity for indexed results")
    catalog_limit: int = Field(5000, gt=0, description="Products loaded at initialization")
    default_limit: int = Field(20, gt=0)
    random_seed: Optional[int] = Field(None, description="Seed for Word2Vec initialization")
    database_url: str = Field("sqlite:///./storefront.db")
    log_level: str = Field("INFO")

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "SearchSettings":
        """
        Build settings from SEARCH_* environment variables.

        Args:
            env_file: Optional .env file to load first

        Returns:
            SearchSettings instance
        """
        load_dotenv(env_file)
        values = {}
        for name in cls.model_fields:
            raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw
        log_level = os.getenv("LOG_LEVEL")
        if log_level:
            values["log_level"] = log_level
        return cls(**values)
