"""
Core package - Routing, admission control and execution for hydra_router
"""

from .config import ConfigManager
from .registry import ProviderRegistry
from .usage_ledger import UsageLedger
from .rate_limits import RateLimiter
from .selector import ModelSelector
from .fallback import FallbackOrchestrator

__all__ = [
    'ConfigManager',
    'ProviderRegistry',
    'UsageLedger',
    'RateLimiter',
    'ModelSelector',
    'FallbackOrchestrator',
]
