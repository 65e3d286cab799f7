"""
hydra_router - Task-aware AI provider orchestration

Routes chat requests across multiple AI providers: picks a (provider, model)
candidate by task kind, tier preference and cost, admits it against sliding
per-minute token/request windows, and recovers from failures with bounded
retries, per-provider fallback chains and cross-provider fallback.
"""

__version__ = "1.0.0"
__author__ = "hydra_router Development Team"
__description__ = "Task-aware AI provider router with rate limiting, retries and fallback"

# Import main components for easy access
from .core.config import ConfigManager, build_registry
from .core.registry import ProviderRegistry
from .core.usage_ledger import UsageLedger
from .core.rate_limits import RateLimiter
from .core.selector import ModelSelector
from .core.fallback import FallbackOrchestrator
from .core.executor import RequestExecutor
from .core.batch import BatchExecutor
from .core.engine import OrchestrationEngine
from .core.errors import ConfigInvalid, NoCandidateAvailable, OrchestrationError, ProviderError

from .models.enums import ErrorKind, RequestState, TaskKind, Tier
from .models.data_classes import BatchRequest, RequestOptions, RequestResult, TaskProfile
from .models.schemas import Message, LLMOptions

from .api.app import create_app
from .utils.transaction_logger import TransactionLogger

__all__ = [
    # Core components
    'ConfigManager',
    'build_registry',
    'ProviderRegistry',
    'UsageLedger',
    'RateLimiter',
    'ModelSelector',
    'FallbackOrchestrator',
    'RequestExecutor',
    'BatchExecutor',
    'OrchestrationEngine',

    # Errors
    'OrchestrationError',
    'ConfigInvalid',
    'NoCandidateAvailable',
    'ProviderError',

    # Models and schemas
    'ErrorKind',
    'RequestState',
    'TaskKind',
    'Tier',
    'BatchRequest',
    'RequestOptions',
    'RequestResult',
    'TaskProfile',
    'Message',
    'LLMOptions',

    # Transaction logging (detailed CSV)
    'TransactionLogger',

    # App factory
    'create_app'
]
