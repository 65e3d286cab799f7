"""
Enums for hydra_router
"""

from enum import Enum


class Tier(str, Enum):
    """Coarse quality/cost bucket of a model"""
    PRO = "pro"
    STANDARD = "standard"
    LITE = "lite"
    LOCAL = "local"


class ModelCategory(str, Enum):
    """What kind of endpoint a model is; only chat models are routable"""
    CHAT = "chat"
    EMBEDDING = "embedding"
    AUDIO = "audio"
    IMAGE = "image"


class TaskKind(str, Enum):
    """Kinds of work a caller can describe in a task profile"""
    SIMPLE = "simple"
    CODE = "code"
    ANALYSIS = "analysis"
    COMPLEX = "complex"
    CREATIVE = "creative"
    VISION = "vision"


class ErrorKind(str, Enum):
    """Closed set of failure kinds the engine branches on"""
    RATE_LIMITED = "rate_limited"
    OVERLOADED = "overloaded"
    SERVER_ERROR = "server_error"
    NETWORK_ERROR = "network_error"
    AUTH_FAILED = "auth_failed"
    VALIDATION_ERROR = "validation_error"
    NO_CANDIDATE_AVAILABLE = "no_candidate_available"
    ALL_CANDIDATES_EXHAUSTED = "all_candidates_exhausted"
    CONFIG_INVALID = "config_invalid"
    MODEL_NOT_FOUND = "model_not_found"
    CANCELLED = "cancelled"


class RequestState(str, Enum):
    """States of a logical request inside the executor"""
    SELECTING = "selecting"
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    FALLING_BACK = "falling_back"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


class FallbackScanMode(str, Enum):
    """Where cross-provider fallback starts scanning a secondary chain"""
    HEAD = "head"
    DEPTH = "depth"
