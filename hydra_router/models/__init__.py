"""
Models package - Data structures and schemas for hydra_router
"""

from .enums import ErrorKind, FallbackScanMode, ModelCategory, RequestState, TaskKind, Tier
from .data_classes import (
    AttemptOutcome, BatchRequest, Candidate, GlobalSettings, ModelConfig, ProviderConfig,
    RateLimitStatus, RequestOptions, RequestResult, TaskProfile, UsageRecord
)
from .schemas import (
    Message, LLMOptions, ConfigDocument, ExecuteRequest, ExecuteResponse,
    BatchExecuteRequest, BatchExecuteResponse
)

__all__ = [
    # Enums
    'ErrorKind',
    'FallbackScanMode',
    'ModelCategory',
    'RequestState',
    'TaskKind',
    'Tier',

    # Data classes
    'AttemptOutcome',
    'BatchRequest',
    'Candidate',
    'GlobalSettings',
    'ModelConfig',
    'ProviderConfig',
    'RateLimitStatus',
    'RequestOptions',
    'RequestResult',
    'TaskProfile',
    'UsageRecord',

    # Pydantic schemas
    'Message',
    'LLMOptions',
    'ConfigDocument',
    'ExecuteRequest',
    'ExecuteResponse',
    'BatchExecuteRequest',
    'BatchExecuteResponse'
]
