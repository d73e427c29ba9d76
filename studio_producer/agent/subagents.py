"""
studio_producer/agent/subagents.py — The four pipeline stages.

A Subagent is a ReasoningLoop packaged with a fixed tool subset, a fixed
instruction template and a completion signal. It never touches the session
store itself; only its tools do.
"""

import json
import logging
import time
from typing import Any, Dict, List, Optional

from studio_producer import config
from studio_producer.agent import prompts
from studio_producer.agent.loop import CompletionSignal, ReasoningLoop
from studio_producer.agent.progress import emit_progress
from studio_producer.errors import MissingSessionError, StageFailedError
from studio_producer.llm import ChatModel
from studio_producer.models import (
    ProgressEvent,
    SubagentContext,
    SubagentName,
    SubagentResult,
    ToolCall,
    ToolResult,
)
from studio_producer.session_store import SessionStore, is_valid_session_id
from studio_producer.tools.production import completion_tool
from studio_producer.tools.registry import ToolName, ToolRegistry

logger = logging.getLogger(__name__)


class Subagent:

    def __init__(
        self,
        name: SubagentName,
        description: str,
        tools: ToolRegistry,
        system_prompt: str,
        max_iterations: int,
        completion: CompletionSignal,
        model: ChatModel,
        requires_session: bool = True,
        creates_session: bool = False,
    ):
        self.name = name
        self.description = description
        self.tools = tools
        self.system_prompt = system_prompt
        self.max_iterations = max_iterations
        self.completion = completion
        self.model = model
        self.requires_session = requires_session
        self.creates_session = creates_session

    def __repr__(self):
        return f"Subagent({self.name.value!r}, tools={self.tools.names})"

    def build_instruction(self, context: SubagentContext) -> str:
        parts = [context.instruction]
        prefs = context.user_preferences.to_dict()
        if prefs:
            parts.append(f"User preferences: {json.dumps(prefs)}")
        if context.prior_stages:
            done = ", ".join(
                f"{s.subagent.value} ({'ok' if s.success else 'fallback'})" for s in context.prior_stages
            )
            parts.append(f"Stages already completed: {done}")
        instruction = "\n\n".join(parts)
        if context.session_id:
            return prompts.session_instruction(context.session_id, instruction)
        return instruction

    async def invoke(self, context: SubagentContext) -> SubagentResult:
        """Run this stage once. Raises on failure; retries belong to execute_subagent."""
        if self.requires_session and not context.session_id:
            raise MissingSessionError(self.name.value)

        tag = self.name.value
        start = time.time()
        logger.info(f"[Subagent:{tag}] Starting (session={context.session_id})")
        emit_progress(context.on_progress, ProgressEvent(
            stage=f"{tag}_starting",
            message=f"{self.description}...",
        ))

        held: Dict[str, Optional[str]] = {"session_id": context.session_id}
        on_tool_result = self._session_watcher(held) if self.creates_session else None

        loop = ReasoningLoop(self.model)
        result = await loop.run(
            self.system_prompt,
            self.build_instruction(context),
            self.tools,
            self.max_iterations,
            stage=tag,
            completion=self.completion,
            on_progress=context.on_progress,
            on_tool_result=on_tool_result,
        )

        session_id = held["session_id"]
        if self.creates_session and not session_id:
            raise StageFailedError(f"{tag} stage finished without creating a session")

        duration = time.time() - start
        logger.info(f"[Subagent:{tag}] Complete in {duration:.1f}s ({result.iterations} iterations)")
        emit_progress(context.on_progress, ProgressEvent(
            stage=f"{tag}_complete",
            message=f"{self.description} completed successfully",
            success=True,
        ))
        return SubagentResult(
            success=True,
            session_id=session_id,
            completed_stage=self.name,
            duration=duration,
            message=_describe(result.final_message, result.completion),
        )

    def _session_watcher(self, held: Dict[str, Optional[str]]):
        """Adopt the session id created by plan_video and remind the model of it."""

        def watch(call: ToolCall, result: ToolResult) -> Optional[str]:
            if call.name != ToolName.PLAN_VIDEO.value or not result.ok:
                return None
            created = result.payload().get("sessionId")
            if not is_valid_session_id(created) or held["session_id"]:
                return None
            held["session_id"] = created
            logger.info(f"[Subagent:{self.name.value}] Session created: {created}")
            return prompts.session_created_reminder(created)

        return watch


def _describe(final_message: str, completion: Optional[Dict[str, Any]]) -> str:
    """Message for SubagentResult: the summary plus the completion data fields."""
    if not completion:
        return final_message
    details = [
        f"{key}: {value}" for key, value in completion.items()
        if key not in ("summary", "success", "stage")
    ]
    return final_message + (" | " + "; ".join(details) if details else "")


# ---------------------------------------------------------------------------
# Stage definitions
# ---------------------------------------------------------------------------
IMPORT_TOOLS: List[ToolName] = [
    ToolName.IMPORT_YOUTUBE_CONTENT,
    ToolName.TRANSCRIBE_AUDIO_FILE,
]
CONTENT_TOOLS: List[ToolName] = [
    ToolName.PLAN_VIDEO,
    ToolName.NARRATE_SCENES,
    ToolName.VALIDATE_PLAN,
    ToolName.ADJUST_TIMING,
]
MEDIA_TOOLS: List[ToolName] = [
    ToolName.GENERATE_VISUALS,
    ToolName.PLAN_SFX,
]
EXPORT_TOOLS: List[ToolName] = [
    ToolName.REMOVE_BACKGROUND,
    ToolName.RESTYLE_IMAGE,
    ToolName.MIX_AUDIO_TRACKS,
    ToolName.GENERATE_SUBTITLES,
    ToolName.EXPORT_FINAL_VIDEO,
    ToolName.UPLOAD_PRODUCTION_TO_CLOUD,
]


def _stage_tools(registry: ToolRegistry, names: List[ToolName], stage: SubagentName,
                 store: Optional[SessionStore]) -> ToolRegistry:
    tools = registry.subset(names)
    tools.register(completion_tool(stage, store))
    return tools


def create_import_subagent(model: ChatModel, registry: ToolRegistry,
                           store: Optional[SessionStore] = None) -> Subagent:
    return Subagent(
        name=SubagentName.IMPORT,
        description="Importing source content",
        tools=_stage_tools(registry, IMPORT_TOOLS, SubagentName.IMPORT, store),
        system_prompt=prompts.IMPORT_PROMPT,
        max_iterations=config.IMPORT_MAX_ITERATIONS,
        completion=CompletionSignal("Import complete", ("Transcript:",)),
        model=model,
        requires_session=False,
    )


def create_content_subagent(model: ChatModel, registry: ToolRegistry,
                            store: Optional[SessionStore] = None) -> Subagent:
    return Subagent(
        name=SubagentName.CONTENT,
        description="Planning content and narration",
        tools=_stage_tools(registry, CONTENT_TOOLS, SubagentName.CONTENT, store),
        system_prompt=prompts.CONTENT_PROMPT,
        max_iterations=config.CONTENT_MAX_ITERATIONS,
        completion=CompletionSignal("Content complete", ("Score:",)),
        model=model,
        requires_session=False,
        creates_session=True,
    )


def create_media_subagent(model: ChatModel, registry: ToolRegistry,
                          store: Optional[SessionStore] = None) -> Subagent:
    return Subagent(
        name=SubagentName.MEDIA,
        description="Generating media assets",
        tools=_stage_tools(registry, MEDIA_TOOLS, SubagentName.MEDIA, store),
        system_prompt=prompts.MEDIA_PROMPT,
        max_iterations=config.MEDIA_MAX_ITERATIONS,
        completion=CompletionSignal("Media complete", ("Visuals:",)),
        model=model,
    )


def create_enhancement_export_subagent(model: ChatModel, registry: ToolRegistry,
                                       store: Optional[SessionStore] = None) -> Subagent:
    return Subagent(
        name=SubagentName.ENHANCEMENT_EXPORT,
        description="Enhancing and exporting the production",
        tools=_stage_tools(registry, EXPORT_TOOLS, SubagentName.ENHANCEMENT_EXPORT, store),
        system_prompt=prompts.EXPORT_PROMPT,
        max_iterations=config.EXPORT_MAX_ITERATIONS,
        completion=CompletionSignal("Export complete", ("Format:", "available locally")),
        model=model,
    )
