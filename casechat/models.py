"""Pure dataclasses for the case-chat LLM layer. No logic, no deps."""

from dataclasses import dataclass, field
from enum import Enum


class ProviderKind(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"


class RequestKind(str, Enum):
    CHAT = "chat"
    EVALUATION = "evaluation"
    OUTLINE = "outline"
    INFERENCE = "inference"


@dataclass(frozen=True)
class ChatMessage:
    role: str              # "user" or "model"
    content: str


@dataclass(frozen=True)
class RouteConfig:
    temperature: float | None = None
    reasoning_effort: str | None = None
    case_id: str | None = None


@dataclass
class CacheMetrics:
    cache_hit: bool = False
    input_tokens: int = 0
    cached_tokens: int = 0
    output_tokens: int = 0


@dataclass
class ProviderRequest:
    kind: RequestKind
    model_id: str
    config: RouteConfig
    message: str                       # current user turn, or the whole prompt
    system_prompt: str | None = None
    history: list[ChatMessage] = field(default_factory=list)


@dataclass
class ProviderReply:
    text: str
    usage: CacheMetrics | None = None


@dataclass
class ResultMeta:
    provider: ProviderKind
    temperature: float | None
    reasoning_effort: str | None
    cache_metrics: CacheMetrics | None = None


@dataclass
class NormalizedResult:
    text: str
    meta: ResultMeta


@dataclass
class EvaluationCriterion:
    question: str
    score: float
    feedback: str


@dataclass
class EvaluationResult:
    criteria: list[EvaluationCriterion]
    total_score: float
    summary: str
    hints: int


@dataclass
class PositionInferenceResult:
    position: str
    confidence: float      # always within [0, 1]
    reasoning: str


@dataclass
class CaseData:
    case_id: str
    case_title: str = "Unknown Case"
    protagonist: str = "the protagonist"
    chat_question: str = "What should be done?"
    arguments_for: str = ""
    arguments_against: str = ""
    case_content: str = ""


@dataclass
class ChatTranscript:
    chat_id: str
    transcript: str


@dataclass
class MetricsRecord:
    case_id: str
    provider: str
    model_id: str
    cache_metrics: CacheMetrics
    request_type: str = "chat"
