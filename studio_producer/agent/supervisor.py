"""
studio_producer/agent/supervisor.py — Top-level production orchestrator.

The Supervisor is itself a ReasoningLoop whose tools are delegations to the
stage subagents. It holds the session id surfaced by the Content stage and
refuses Media / Export delegations that do not carry exactly that id.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from studio_producer import config
from studio_producer.agent import prompts
from studio_producer.agent.loop import CompletionSignal, ReasoningLoop
from studio_producer.agent.progress import ProgressEmitter
from studio_producer.agent.recovery import RecoveryPolicy, execute_subagent
from studio_producer.agent.subagents import (
    Subagent,
    create_content_subagent,
    create_enhancement_export_subagent,
    create_import_subagent,
    create_media_subagent,
)
from studio_producer.errors import StageAbortedError
from studio_producer.intent import analyze_intent, generate_intent_hint
from studio_producer.llm import ChatModel, OpenAIChatModel
from studio_producer.models import (
    REQUIRED_STAGES,
    CompletedStage,
    ProgressCallback,
    ProgressEvent,
    SubagentContext,
    SubagentName,
    SupervisorResult,
    ToolCall,
    ToolResult,
    UserPreferences,
)
from studio_producer.session_store import InMemorySessionStore, JsonFileSessionStore, SessionStore
from studio_producer.tools.production import build_production_registry
from studio_producer.tools.registry import ToolName, ToolRegistry, ToolSpec
from studio_producer.tools.services import GenerativeServices, HttpGenerativeServices

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Delegation tool arguments
# ---------------------------------------------------------------------------
class PreferencesArgs(BaseModel):
    style: Optional[str] = None
    animation: Optional[bool] = None
    music: Optional[bool] = None
    sfx: Optional[bool] = None
    subtitles: Optional[bool] = None
    aspect_ratio: Optional[str] = None
    format: Optional[str] = None
    upload_to_cloud: Optional[bool] = None
    make_public: Optional[bool] = None


class DelegateArgs(BaseModel):
    instruction: str = Field(..., description="What the stage should do, including relevant user wishes")
    preferences: Optional[PreferencesArgs] = None


class SessionDelegateArgs(DelegateArgs):
    session_id: str = Field(..., description="The exact sessionId returned by the content stage")


class CompleteProductionArgs(BaseModel):
    summary: str = Field(..., description="Final report for the user, including any fallbacks applied")


DELEGATION_TOOLS = {
    SubagentName.IMPORT: ToolName.DELEGATE_TO_IMPORT,
    SubagentName.CONTENT: ToolName.DELEGATE_TO_CONTENT,
    SubagentName.MEDIA: ToolName.DELEGATE_TO_MEDIA,
    SubagentName.ENHANCEMENT_EXPORT: ToolName.DELEGATE_TO_EXPORT,
}

# Stages whose delegation must carry the held session id
SESSION_BOUND_STAGES = (SubagentName.MEDIA, SubagentName.ENHANCEMENT_EXPORT)


def preferences_from_intent(user_request: str) -> UserPreferences:
    intent = analyze_intent(user_request)
    return UserPreferences(
        style=intent.style,
        animation=intent.wants_animation or None,
        music=intent.wants_music or None,
        sfx=intent.wants_sfx or None,
        subtitles=intent.wants_subtitles or None,
        aspect_ratio=intent.aspect_ratio,
    )


def _merge_preferences(base: UserPreferences, override: Optional[PreferencesArgs]) -> UserPreferences:
    if override is None:
        return base
    merged = base.to_dict()
    merged.update(override.model_dump(exclude_none=True))
    return UserPreferences(**merged)


@dataclass
class _RunState:
    preferences: UserPreferences
    emitter: ProgressEmitter
    session_id: Optional[str] = None
    completed_stages: List[CompletedStage] = field(default_factory=list)
    fallbacks: List[str] = field(default_factory=list)
    reminded: bool = False


class Supervisor:

    def __init__(
        self,
        model: ChatModel,
        subagents: Mapping[SubagentName, Subagent],
        policies: Optional[Mapping[SubagentName, RecoveryPolicy]] = None,
        max_iterations: int = config.SUPERVISOR_MAX_ITERATIONS,
        store: Optional[SessionStore] = None,
        services: Optional[GenerativeServices] = None,
    ):
        self.model = model
        self.subagents = dict(subagents)
        self.policies = dict(policies or {})
        self.max_iterations = max_iterations
        self.store = store
        self.services = services

    async def aclose(self):
        if self.services is not None:
            await self.services.close()

    async def run(self, user_request: str, on_progress: Optional[ProgressCallback] = None) -> SupervisorResult:
        start = time.time()
        run = _RunState(preferences=preferences_from_intent(user_request), emitter=ProgressEmitter(on_progress))
        logger.info(f"[Supervisor] Starting production: {user_request[:100]!r}")

        message = user_request
        hint = generate_intent_hint(analyze_intent(user_request))
        if hint:
            message += f"\n\nDetected intent:\n{hint}"

        def remind(call: ToolCall, result: ToolResult) -> Optional[str]:
            if run.session_id and not run.reminded:
                run.reminded = True
                return prompts.supervisor_session_reminder(run.session_id)
            return None

        try:
            loop_result = await ReasoningLoop(self.model).run(
                prompts.SUPERVISOR_PROMPT,
                message,
                self._delegation_tools(run),
                self.max_iterations,
                stage="supervisor",
                completion=CompletionSignal("Production complete"),
                on_progress=run.emitter,
                on_tool_result=remind,
            )
        except StageAbortedError as e:
            logger.error(f"[Supervisor] Production aborted at {e.stage}: {e.cause}")
            return SupervisorResult(
                success=False,
                session_id=run.session_id,
                completed_stages=list(run.completed_stages),
                message=f"Production aborted: {e.stage} stage failed",
                duration=time.time() - start,
                fallbacks=list(run.fallbacks),
                failed_stage=SubagentName(e.stage),
                error=str(e.cause),
            )

        run.emitter(ProgressEvent(stage="production_complete", message="Production complete",
                                  is_complete=True, success=True, progress=100.0))
        logger.info(f"[Supervisor] Production complete in {time.time() - start:.1f}s (session={run.session_id})")
        return SupervisorResult(
            success=True,
            session_id=run.session_id,
            completed_stages=list(run.completed_stages),
            message=loop_result.final_message,
            duration=time.time() - start,
            fallbacks=list(run.fallbacks),
        )

    # --- delegation tools ---

    def _delegation_tools(self, run: _RunState) -> ToolRegistry:
        registry = ToolRegistry()
        for stage, subagent in self.subagents.items():
            session_bound = stage in SESSION_BOUND_STAGES
            registry.register(ToolSpec(
                DELEGATION_TOOLS[stage],
                f"Delegate to the {stage.value} subagent: {subagent.description}.",
                SessionDelegateArgs if session_bound else DelegateArgs,
                self._delegate(stage, subagent, run),
            ))
        registry.register(ToolSpec(
            ToolName.COMPLETE_PRODUCTION,
            "Finish the production once the enhancement/export stage has returned.",
            CompleteProductionArgs,
            self._complete(run),
            terminal=True,
        ))
        return registry

    def _delegate(self, stage: SubagentName, subagent: Subagent, run: _RunState):
        tag = stage.value

        async def delegate(args: DelegateArgs) -> Dict[str, Any]:
            if stage in SESSION_BOUND_STAGES:
                if not run.session_id:
                    return {
                        "success": False,
                        "error": f"No sessionId yet. Delegate to the content subagent before {tag}.",
                    }
                if args.session_id != run.session_id:
                    logger.warning(f"[Supervisor] {tag} delegation with wrong session id {args.session_id!r}")
                    return {
                        "success": False,
                        "error": (
                            f'Session id mismatch: expected "{run.session_id}", got "{args.session_id}". '
                            f"Use the exact sessionId returned by the content stage."
                        ),
                        "expectedSessionId": run.session_id,
                    }

            context = SubagentContext(
                session_id=None if stage == SubagentName.IMPORT else run.session_id,
                instruction=args.instruction,
                prior_stages=tuple(run.completed_stages),
                user_preferences=_merge_preferences(run.preferences, args.preferences),
                on_progress=run.emitter,
            )
            logger.info(f"[Supervisor] Delegating to {tag}")
            try:
                result = await execute_subagent(subagent, context, self.policies.get(stage))
            except Exception as e:
                run.emitter(ProgressEvent(stage=f"{tag}_failed", message=f"{tag} stage failed: {e}",
                                          success=False, error=str(e)))
                raise StageAbortedError(tag, e) from e

            if result.success and result.session_id and not run.session_id:
                run.session_id = result.session_id
                logger.info(f"[Supervisor] Holding session {run.session_id}")
            if result.fallback_applied:
                run.fallbacks.append(f"{tag}: {result.message}")
                run.emitter(ProgressEvent(stage=f"{tag}_fallback", message=result.message, success=False))
            run.completed_stages.append(CompletedStage(
                subagent=stage,
                completed_at=time.time(),
                duration=result.duration,
                success=result.success,
            ))
            return result.to_dict()

        return delegate

    def _complete(self, run: _RunState):

        async def complete(args: CompleteProductionArgs) -> Dict[str, Any]:
            done = {s.subagent for s in run.completed_stages}
            missing = [s.value for s in REQUIRED_STAGES if s in self.subagents and s not in done]
            if missing:
                return {
                    "success": False,
                    "error": f"Cannot complete production: required stages not run yet: {', '.join(missing)}",
                }
            return {
                "success": True,
                "summary": args.summary,
                "sessionId": run.session_id,
                "fallbacks": list(run.fallbacks),
            }

        return complete


def default_session_store() -> SessionStore:
    if config.STUDIO_SESSION_DIR:
        return JsonFileSessionStore(config.STUDIO_SESSION_DIR)
    return InMemorySessionStore()


def build_supervisor(
    store: Optional[SessionStore] = None,
    services: Optional[GenerativeServices] = None,
    model_factory=None,
) -> Supervisor:
    """Wire store, services, per-stage models and the four subagents into a Supervisor.

    ``model_factory(temperature)`` returns a ChatModel; defaults to OpenAIChatModel.
    """
    store = store if store is not None else default_session_store()
    services = services or HttpGenerativeServices()
    model_factory = model_factory or (lambda temperature: OpenAIChatModel(temperature=temperature))
    registry = build_production_registry(store, services)

    subagents = {
        SubagentName.IMPORT: create_import_subagent(
            model_factory(config.IMPORT_TEMPERATURE), registry, store),
        SubagentName.CONTENT: create_content_subagent(
            model_factory(config.CONTENT_TEMPERATURE), registry, store),
        SubagentName.MEDIA: create_media_subagent(
            model_factory(config.MEDIA_TEMPERATURE), registry, store),
        SubagentName.ENHANCEMENT_EXPORT: create_enhancement_export_subagent(
            model_factory(config.EXPORT_TEMPERATURE), registry, store),
    }
    return Supervisor(
        model=model_factory(config.SUPERVISOR_TEMPERATURE),
        subagents=subagents,
        store=store,
        services=services,
    )
