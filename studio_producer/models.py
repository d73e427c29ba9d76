"""
studio_producer/models.py — Dataclasses for inter-stage communication.

The Supervisor only ever branches on SubagentResult; everything else here
is either per-call input (SubagentContext) or reporting (CompletedStage,
ProgressEvent).
"""

import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union


class SubagentName(str, Enum):
    IMPORT = "import"
    CONTENT = "content"
    MEDIA = "media"
    ENHANCEMENT_EXPORT = "enhancement_export"


# Pipeline order; Import is optional, the rest are required.
STAGE_ORDER = (
    SubagentName.IMPORT,
    SubagentName.CONTENT,
    SubagentName.MEDIA,
    SubagentName.ENHANCEMENT_EXPORT,
)
REQUIRED_STAGES = (
    SubagentName.CONTENT,
    SubagentName.MEDIA,
    SubagentName.ENHANCEMENT_EXPORT,
)


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------
@dataclass
class ProgressEvent:
    """Fire-and-forget progress notification."""
    stage: str
    message: str
    is_complete: bool = False
    tool: Optional[str] = None
    success: Optional[bool] = None
    progress: Optional[float] = None
    iteration: Optional[int] = None
    max_iterations: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


ProgressCallback = Callable[[ProgressEvent], None]


# ---------------------------------------------------------------------------
# Delegation boundary
# ---------------------------------------------------------------------------
@dataclass
class UserPreferences:
    """Production options collected by the Supervisor from the user request."""
    style: Optional[str] = None
    animation: Optional[bool] = None
    music: Optional[bool] = None
    sfx: Optional[bool] = None
    subtitles: Optional[bool] = None
    aspect_ratio: Optional[str] = None
    format: Optional[str] = None
    upload_to_cloud: Optional[bool] = None
    make_public: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class CompletedStage:
    subagent: SubagentName
    completed_at: float
    duration: float
    success: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subagent": self.subagent.value,
            "completedAt": self.completed_at,
            "duration": round(self.duration, 3),
            "success": self.success,
        }


@dataclass(frozen=True)
class SubagentContext:
    """Input to Subagent.invoke. Immutable for the duration of the call."""
    session_id: Optional[str]
    instruction: str
    prior_stages: Tuple[CompletedStage, ...] = ()
    user_preferences: UserPreferences = field(default_factory=UserPreferences)
    on_progress: Optional[ProgressCallback] = None


@dataclass
class StageError:
    """Structured record of a failure, kept on results and sessions."""
    tool: str
    error: str
    category: str = "transient"
    timestamp: float = field(default_factory=time.time)
    retry_count: int = 0
    recoverable: bool = True
    fallback_applied: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool": self.tool,
            "error": self.error,
            "category": self.category,
            "timestamp": self.timestamp,
            "retryCount": self.retry_count,
            "recoverable": self.recoverable,
            "fallbackApplied": self.fallback_applied,
        }


@dataclass
class SubagentResult:
    """The only value the Supervisor is allowed to branch on."""
    success: bool
    session_id: Optional[str]
    completed_stage: SubagentName
    duration: float
    message: str
    errors: List[StageError] = field(default_factory=list)
    fallback_applied: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "sessionId": self.session_id,
            "completedStage": self.completed_stage.value,
            "errors": [e.to_dict() for e in self.errors],
            "duration": round(self.duration, 3),
            "message": self.message,
            "fallbackApplied": self.fallback_applied,
        }


# ---------------------------------------------------------------------------
# Tool calls
# ---------------------------------------------------------------------------
@dataclass
class ToolCall:
    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolResult:
    call_id: str
    name: str
    content: Union[Dict[str, Any], str]
    ok: bool = True
    completion: Optional[Dict[str, Any]] = None

    def payload(self) -> Dict[str, Any]:
        """Content as a dict (string results are wrapped)."""
        if isinstance(self.content, dict):
            return self.content
        return {"result": self.content}


# ---------------------------------------------------------------------------
# Run-level results
# ---------------------------------------------------------------------------
@dataclass
class LoopResult:
    success: bool
    final_message: str
    duration: float
    iterations: int = 0
    completion: Optional[Dict[str, Any]] = None
    completed_tools: List[str] = field(default_factory=list)


@dataclass
class SupervisorResult:
    success: bool
    session_id: Optional[str]
    completed_stages: List[CompletedStage]
    message: str
    duration: float
    fallbacks: List[str] = field(default_factory=list)
    failed_stage: Optional[SubagentName] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "sessionId": self.session_id,
            "completedStages": [s.to_dict() for s in self.completed_stages],
            "message": self.message,
            "duration": round(self.duration, 3),
            "fallbacks": list(self.fallbacks),
            "failedStage": self.failed_stage.value if self.failed_stage else None,
            "error": self.error,
        }
