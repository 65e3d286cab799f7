"""
Data classes for hydra_router
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from .enums import ErrorKind, FallbackScanMode, ModelCategory, RequestState, TaskKind, Tier


@dataclass(frozen=True)
class ModelConfig:
    """A routable model under exactly one provider.

    ``None`` caps mean "no cap". A zero cap stays zero (never available)
    unless the document flagged it as unlimited, in which case it is
    already ``None`` here.
    """
    id: str
    provider_id: str
    tier: Tier
    category: ModelCategory = ModelCategory.CHAT
    capabilities: FrozenSet[str] = frozenset()
    tokens_per_minute: Optional[int] = None
    requests_per_minute: Optional[int] = None
    input_cost_per_million: float = 0.0
    output_cost_per_million: float = 0.0

    def has_capabilities(self, required: FrozenSet[str]) -> bool:
        return required.issubset(self.capabilities)


@dataclass(frozen=True)
class ProviderConfig:
    """A backend inference service and its ordered fallback chain"""
    id: str
    name: str
    adapter: str
    enabled: bool
    credential: Optional[str]
    fallback_chain: Tuple[str, ...]
    priority: int
    models: Tuple[ModelConfig, ...]
    base_url: Optional[str] = None


@dataclass(frozen=True)
class GlobalSettings:
    """Engine-wide knobs from the ``settings`` section of the config document"""
    max_retries: int
    rate_limit_threshold_percent: float
    auto_fallback: bool
    retry_delay_ms: int = 1000
    cost_optimization: bool = False
    output_token_ratio: float = 0.5
    request_timeout_seconds: float = 60.0
    fallback_scan_mode: FallbackScanMode = FallbackScanMode.HEAD
    prefer_local: bool = False
    task_tier_preferences: Dict[TaskKind, Tuple[Tier, ...]] = field(default_factory=dict)


@dataclass
class TaskProfile:
    """Caller's description of the work to be routed"""
    kind: TaskKind = TaskKind.SIMPLE
    estimated_input_tokens: int = 0
    estimated_output_tokens: Optional[int] = None
    required_capabilities: FrozenSet[str] = frozenset()
    prefer_cheapest: bool = False
    preferred_provider: Optional[str] = None

    def effective_capabilities(self) -> FrozenSet[str]:
        """Required capabilities including the ones implied by the task kind"""
        if self.kind == TaskKind.VISION:
            return frozenset(self.required_capabilities) | {"vision"}
        return frozenset(self.required_capabilities)


@dataclass
class RequestOptions:
    """Per-request overrides for selection, execution and generation"""
    prefer_cheapest: bool = False
    preferred_provider: Optional[str] = None
    prefer_local: Optional[bool] = None
    cross_provider_fallback: Optional[bool] = None
    exclude: FrozenSet[Tuple[str, str]] = frozenset()
    timeout_seconds: Optional[float] = None
    max_retries: Optional[int] = None
    generation: Optional[Any] = None  # LLMOptions


@dataclass(frozen=True)
class RateLimitStatus:
    """Admission verdict for a (provider, model) pair at one instant"""
    available: bool
    tokens_percent: float = 0.0
    requests_percent: float = 0.0
    tokens_remaining: Optional[int] = None
    requests_remaining: Optional[int] = None
    reason: Optional[ErrorKind] = None


@dataclass(frozen=True)
class Candidate:
    """A (provider, model) pair scored for one selection decision"""
    provider: str
    model: str
    tier: Tier
    estimated_cost: float
    tier_score: int
    tier_preference: int
    provider_preference: int
    rate_limit: RateLimitStatus

    @property
    def key(self) -> Tuple[str, str]:
        return (self.provider, self.model)


def _parse_timestamp(value: str) -> datetime:
    """ISO timestamp; naive values are taken as UTC"""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class UsageRecord:
    """Token/request counts for a (provider, model) pair in the current window"""
    provider: str
    model: str
    window_start: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    tokens_this_window: int = 0
    requests_this_window: int = 0
    errors_this_window: int = 0
    last_request_time: Optional[datetime] = None
    version: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for name in ("window_start", "last_request_time"):
            if data[name] is not None:
                data[name] = data[name].isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UsageRecord":
        record = cls(provider=data["provider"], model=data["model"])
        record.window_start = _parse_timestamp(data["window_start"])
        record.tokens_this_window = int(data.get("tokens_this_window", 0))
        record.requests_this_window = int(data.get("requests_this_window", 0))
        record.errors_this_window = int(data.get("errors_this_window", 0))
        if data.get("last_request_time"):
            record.last_request_time = _parse_timestamp(data["last_request_time"])
        record.version = int(data.get("version", 0))
        return record


@dataclass(frozen=True)
class AttemptOutcome:
    """One call to one candidate and how it ended"""
    provider: str
    model: str
    attempt: int
    success: bool
    latency_ms: float
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class RequestResult:
    """Terminal outcome of a logical request, with its full attempt history"""
    request_id: str
    state: RequestState
    task_kind: TaskKind = TaskKind.SIMPLE
    content: Optional[str] = None
    provider_used: Optional[str] = None
    model_used: Optional[str] = None
    finish_reason: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    failure_reason: Optional[ErrorKind] = None
    message: Optional[str] = None
    attempts: List[AttemptOutcome] = field(default_factory=list)
    total_time_ms: int = 0

    @property
    def success(self) -> bool:
        return self.state == RequestState.SUCCEEDED

    @property
    def candidates_tried(self) -> List[Tuple[str, str]]:
        """Distinct (provider, model) pairs in attempt order"""
        seen: List[Tuple[str, str]] = []
        for attempt in self.attempts:
            pair = (attempt.provider, attempt.model)
            if pair not in seen:
                seen.append(pair)
        return seen

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["success"] = self.success
        return data


@dataclass
class BatchRequest:
    """One item of a batch: what to run and how"""
    profile: TaskProfile
    messages: List[Any]  # List[Message]
    options: Optional[RequestOptions] = None
