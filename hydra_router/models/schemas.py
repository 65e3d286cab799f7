"""
Pydantic schemas for the configuration document and the HTTP request/response models
"""

from typing import Dict, List, Literal, Optional, Any, Union

from pydantic import BaseModel, Field, ConfigDict, NonNegativeInt
from pydantic.alias_generators import to_camel

from .enums import ErrorKind, FallbackScanMode, ModelCategory, RequestState, TaskKind, Tier
from .data_classes import BatchRequest, RequestOptions, RequestResult, TaskProfile


# =============================================================================
# CONFIGURATION DOCUMENT
# =============================================================================

CapValue = Union[NonNegativeInt, Literal["unlimited"]]


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        protected_namespaces=(),
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class ModelSchema(_ConfigModel):
    tier: Tier = Field(..., description="pro, standard, lite or local")
    category: ModelCategory = Field(ModelCategory.CHAT, description="Only chat models are routable")
    capabilities: List[str] = Field(default_factory=list, description="e.g. vision, function_calling")
    tokens_per_minute: CapValue = Field(..., description="Token cap per minute or 'unlimited'")
    requests_per_minute: CapValue = Field(..., description="Request cap per minute or 'unlimited'")
    zero_cap_means_unlimited: bool = Field(False, description="Treat a 0 cap as no cap")
    input_cost_per_million: float = Field(0.0, ge=0, description="USD per 1M input tokens")
    output_cost_per_million: float = Field(0.0, ge=0, description="USD per 1M output tokens")


class ProviderSchema(_ConfigModel):
    name: Optional[str] = Field(None, description="Display name")
    adapter: str = Field(..., description="Adapter kind: openai, anthropic, gemini, ollama")
    enabled: bool = Field(True)
    credential: Optional[str] = Field(None, description="Credential handle; null for keyless providers")
    base_url: Optional[str] = Field(None, description="Override for the adapter's default endpoint")
    fallback_chain: List[str] = Field(default_factory=list, description="Ordered model ids")
    models: Dict[str, ModelSchema] = Field(...)


class SettingsSchema(_ConfigModel):
    max_retries: int = Field(..., ge=0)
    rate_limit_threshold_percent: float = Field(..., gt=0, le=100)
    auto_fallback: bool = Field(...)
    retry_delay_ms: int = Field(1000, ge=0)
    cost_optimization: bool = Field(False)
    output_token_ratio: float = Field(0.5, ge=0)
    request_timeout_seconds: float = Field(60.0, gt=0)
    fallback_scan_mode: FallbackScanMode = Field(FallbackScanMode.HEAD)
    prefer_local: bool = Field(False)
    task_tier_preferences: Dict[TaskKind, List[Tier]] = Field(default_factory=dict)


class ConfigDocument(_ConfigModel):
    provider_order: List[str] = Field(default_factory=list)
    settings: SettingsSchema
    providers: Dict[str, ProviderSchema]


# =============================================================================
# HTTP API
# =============================================================================

class Message(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    role: str = Field(..., description="Role: user, assistant, system")
    content: str = Field(..., description="Message content")


class LLMOptions(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    max_tokens: Optional[int] = Field(None, description="Maximum tokens to generate")
    temperature: Optional[float] = Field(None, description="Temperature for randomness")
    top_p: Optional[float] = Field(None, description="Top-p sampling parameter")
    top_k: Optional[int] = Field(None, description="Top-k sampling parameter")
    stop: Optional[List[str]] = Field(None, description="Stop sequences")


class TaskProfileSchema(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    kind: TaskKind = Field(TaskKind.SIMPLE, description="Task kind")
    estimated_input_tokens: Optional[int] = Field(None, ge=0, description="Estimated from messages if omitted")
    estimated_output_tokens: Optional[int] = Field(None, ge=0)
    required_capabilities: List[str] = Field(default_factory=list)
    prefer_cheapest: bool = Field(False)
    preferred_provider: Optional[str] = Field(None)


class ExecuteRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    client_id: Optional[str] = Field(None, description="Client identifier")
    profile: TaskProfileSchema = Field(default_factory=TaskProfileSchema)
    messages: List[Message] = Field(..., min_length=1, description="Conversation messages")
    options: Optional[LLMOptions] = Field(None, description="Generation options")
    cross_provider_fallback: Optional[bool] = Field(None, description="Override autoFallback")
    timeout_seconds: Optional[float] = Field(None, gt=0, description="Per-attempt timeout")

    def estimated_input_tokens(self) -> int:
        if self.profile.estimated_input_tokens is not None:
            return self.profile.estimated_input_tokens
        # Roughly four characters per token
        return max(1, sum(len(m.content) for m in self.messages) // 4)

    def to_batch_request(self) -> BatchRequest:
        profile = TaskProfile(
            kind=self.profile.kind,
            estimated_input_tokens=self.estimated_input_tokens(),
            estimated_output_tokens=self.profile.estimated_output_tokens,
            required_capabilities=frozenset(self.profile.required_capabilities),
            prefer_cheapest=self.profile.prefer_cheapest,
            preferred_provider=self.profile.preferred_provider,
        )
        options = RequestOptions(
            cross_provider_fallback=self.cross_provider_fallback,
            timeout_seconds=self.timeout_seconds,
            generation=self.options,
        )
        return BatchRequest(profile=profile, messages=list(self.messages), options=options)


class BatchExecuteRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    client_id: Optional[str] = Field(None, description="Client identifier")
    requests: List[ExecuteRequest] = Field(..., description="Requests to run")
    max_concurrency: int = Field(4, ge=1, description="Parallel workers")
    deadline_seconds: Optional[float] = Field(None, gt=0, description="Deadline for the whole batch")


class AttemptSchema(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    provider: str
    model: str
    attempt: int
    success: bool
    latency_ms: float
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0


class ExecuteResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    success: bool
    request_id: str
    state: RequestState
    provider_used: Optional[str] = None
    model_used: Optional[str] = None
    content: Optional[str] = None
    finish_reason: Optional[str] = None
    usage: Optional[Dict[str, Any]] = None
    cost_usd: float = 0.0
    failure_reason: Optional[ErrorKind] = None
    message: Optional[str] = None
    total_time_ms: int = 0
    attempts: List[AttemptSchema] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: RequestResult) -> "ExecuteResponse":
        return cls(
            success=result.success,
            request_id=result.request_id,
            state=result.state,
            provider_used=result.provider_used,
            model_used=result.model_used,
            content=result.content,
            finish_reason=result.finish_reason,
            usage={
                "input_tokens": result.input_tokens,
                "output_tokens": result.output_tokens,
                "total_tokens": result.input_tokens + result.output_tokens,
            } if result.success else None,
            cost_usd=result.cost_usd,
            failure_reason=result.failure_reason,
            message=result.message,
            total_time_ms=result.total_time_ms,
            attempts=[AttemptSchema(**vars(a)) for a in result.attempts],
        )


class BatchExecuteResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    total: int
    succeeded: int
    results: List[ExecuteResponse]
