"""
Validated option models for searches and embedding configuration.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from . import config


class SearchOptions(BaseModel):
    """Options for pure semantic search."""
    model_config = ConfigDict(extra="forbid")

    limit: int = config.SEARCH_LIMIT
    min_score: float = config.SEARCH_MIN_SCORE
    type_filter: Optional[str] = None

    @field_validator('limit')
    @classmethod
    def limit_must_be_positive(cls, v):
        if v < 1:
            raise ValueError('limit must be >= 1')
        return v

    @field_validator('type_filter')
    @classmethod
    def type_filter_must_not_be_blank(cls, v):
        if v is not None and not v.strip():
            raise ValueError('type_filter cannot be blank')
        return v


class HybridSearchOptions(SearchOptions):
    """Options for fused vector + keyword search."""

    min_score: float = config.HYBRID_MIN_SCORE
    vector_weight: float = config.VECTOR_WEIGHT
    keyword_weight: float = config.KEYWORD_WEIGHT

    @field_validator('vector_weight', 'keyword_weight')
    @classmethod
    def weight_must_not_be_negative(cls, v):
        if v < 0:
            raise ValueError('weights must be >= 0')
        return v


class EmbeddingOptions(BaseModel):
    """Pass-through settings for the embedding client. Validated for shape only."""
    model_config = ConfigDict(extra="forbid")

    host: Optional[str] = None
    model: Optional[str] = None
    timeout: Optional[float] = None
    max_retries: Optional[int] = None
    retry_delay_ms: Optional[int] = None
    max_retry_delay_ms: Optional[int] = None

    @field_validator('host')
    @classmethod
    def host_must_be_http_url(cls, v):
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError('host must start with http:// or https://')
        return v.rstrip("/") if v else v

    @field_validator('model')
    @classmethod
    def model_must_not_be_empty(cls, v):
        if v is not None and not v.strip():
            raise ValueError('model cannot be empty')
        return v

    @field_validator('timeout')
    @classmethod
    def timeout_must_be_positive(cls, v):
        if v is not None and v <= 0:
            raise ValueError('timeout must be > 0')
        return v

    @field_validator('max_retries')
    @classmethod
    def retries_must_be_positive(cls, v):
        if v is not None and v < 1:
            raise ValueError('max_retries must be >= 1')
        return v

    @field_validator('retry_delay_ms', 'max_retry_delay_ms')
    @classmethod
    def delay_must_not_be_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError('retry delays must be >= 0')
        return v

    def settings(self) -> dict:
        """Only the fields the caller actually set."""
        return self.model_dump(exclude_none=True)


def coerce_options(options, model):
    """Accept None, a dict or a model instance and return a validated model."""
    if options is None:
        return model()
    if isinstance(options, model):
        return options
    if isinstance(options, BaseModel):
        return model(**options.model_dump())
    return model(**options)
