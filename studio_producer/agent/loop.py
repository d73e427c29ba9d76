"""
studio_producer/agent/loop.py — Bounded reasoning / tool-invocation loop.

One model invocation is one iteration. The loop ends when a terminal tool
succeeds, when a text-only reply matches the completion signal, or when the
iteration budget runs out (StageIterationsExceededError, the only hard stop).
Tool failures never end the loop: they are fed back to the model as
structured error results. ProductionAbort is the exception to that rule.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from studio_producer.agent.progress import emit_progress
from studio_producer.errors import ProductionAbort, StageIterationsExceededError, ToolUnavailableError
from studio_producer.llm import ChatModel, Message, assistant_message
from studio_producer.models import LoopResult, ProgressCallback, ProgressEvent, ToolCall, ToolResult
from studio_producer.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

OnToolResult = Callable[[ToolCall, ToolResult], Optional[str]]

CONTINUE_NUDGE = (
    "No completion signal detected. Continue with the remaining steps, "
    "or call complete_stage if this stage is finished."
)


@dataclass(frozen=True)
class CompletionSignal:
    """Prose fallback for completion: the phrase AND at least one marker (when markers are declared)."""
    phrase: str
    markers: Tuple[str, ...] = ()

    def matches(self, text: str) -> bool:
        if not text or self.phrase.lower() not in text.lower():
            return False
        if not self.markers:
            return True
        return any(marker.lower() in text.lower() for marker in self.markers)


def _tool_message(result: ToolResult) -> Message:
    content = result.content if isinstance(result.content, str) else json.dumps(result.content, default=str)
    return {"role": "tool", "tool_call_id": result.call_id, "content": content}


def _succeeded(content: Any) -> bool:
    # Executors report precondition problems as {"success": False, ...}
    return not (isinstance(content, dict) and content.get("success") is False)


class ReasoningLoop:
    """Drives one bounded conversation between a chat model and a tool registry."""

    def __init__(self, model: ChatModel):
        self.model = model

    async def run(
        self,
        system_prompt: str,
        initial_message: str,
        tools: ToolRegistry,
        max_iterations: int,
        *,
        stage: str = "agent",
        completion: Optional[CompletionSignal] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_tool_result: Optional[OnToolResult] = None,
    ) -> LoopResult:
        start = time.time()
        messages: List[Message] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": initial_message},
        ]
        schemas = tools.schemas()
        completed: Set[str] = set()
        completed_order: List[str] = []

        def done(final_message: str, iterations: int, payload: Optional[Dict[str, Any]] = None) -> LoopResult:
            return LoopResult(
                success=True,
                final_message=final_message,
                duration=time.time() - start,
                iterations=iterations,
                completion=payload,
                completed_tools=list(completed_order),
            )

        for iteration in range(1, max_iterations + 1):
            emit_progress(on_progress, ProgressEvent(
                stage=f"{stage}_processing",
                message=f"Working (iteration {iteration}/{max_iterations})...",
                iteration=iteration,
                max_iterations=max_iterations,
            ))

            turn = await self.model.complete(messages, schemas)
            messages.append(assistant_message(turn))

            if not turn.tool_calls:
                if completion is None or completion.matches(turn.content):
                    logger.info(f"[Loop:{stage}] Completed by prose signal at iteration {iteration}")
                    return done(turn.content, iteration)
                logger.warning(f"[Loop:{stage}] Reply without tool calls or completion signal: {turn.content[:120]!r}")
                messages.append({"role": "user", "content": CONTINUE_NUDGE})
                continue

            follow_ups: List[str] = []
            for call in turn.tool_calls:
                result = await self._execute(call, tools, completed, stage, iteration, max_iterations, on_progress)
                messages.append(_tool_message(result))

                if result.ok and call.name not in completed:
                    spec = tools.get(call.name)
                    if spec is not None and not spec.repeatable and not spec.terminal:
                        completed.add(call.name)
                        completed_order.append(call.name)

                if result.completion is not None:
                    summary = result.completion.get("summary") or turn.content
                    logger.info(f"[Loop:{stage}] Completed by {call.name} at iteration {iteration}")
                    return done(summary, iteration, result.completion)

                if on_tool_result is not None:
                    follow_up = on_tool_result(call, result)
                    if follow_up:
                        follow_ups.append(follow_up)

            # Tool replies must directly follow the assistant turn that requested them
            for follow_up in follow_ups:
                messages.append({"role": "user", "content": follow_up})

        logger.error(f"[Loop:{stage}] Exceeded {max_iterations} iterations without completing")
        raise StageIterationsExceededError(stage, max_iterations)

    async def _execute(
        self,
        call: ToolCall,
        tools: ToolRegistry,
        completed: Set[str],
        stage: str,
        iteration: int,
        max_iterations: int,
        on_progress: Optional[ProgressCallback],
    ) -> ToolResult:
        if call.name in completed:
            logger.info(f"[Loop:{stage}] {call.name} already executed in this run, skipping")
            return ToolResult(call.id, call.name, {
                "success": True,
                "cached": True,
                "message": f'Tool "{call.name}" was already executed successfully in this run. Skipped.',
            })

        spec = tools.get(call.name)
        if spec is None:
            limited = tools.is_excluded(call.name)
            err = ToolUnavailableError(call.name, environment_limited=limited)
            logger.warning(f"[Loop:{stage}] {err}")
            content: Dict[str, Any] = {
                "success": False,
                "error": str(err),
                "category": "environment_unavailable" if limited else "unknown_tool",
            }
            if limited:
                content["suggestion"] = "This capability is not available here. Skip it and conclude the stage."
            else:
                content["availableTools"] = tools.names
            return ToolResult(call.id, call.name, content, ok=False)

        emit_progress(on_progress, ProgressEvent(
            stage=f"{stage}_tool_call",
            tool=call.name,
            message=f"Executing {call.name}...",
            iteration=iteration,
            max_iterations=max_iterations,
        ))
        try:
            content = await tools.invoke(call)
        except ProductionAbort:
            raise
        except Exception as e:
            logger.warning(f"[Loop:{stage}] {call.name} failed: {type(e).__name__}: {e}")
            emit_progress(on_progress, ProgressEvent(
                stage=f"{stage}_tool_error",
                tool=call.name,
                message=f"✗ {call.name} failed: {e}",
                success=False,
                error=str(e),
                iteration=iteration,
                max_iterations=max_iterations,
            ))
            return ToolResult(call.id, call.name, {"success": False, "error": str(e)}, ok=False)

        ok = _succeeded(content)
        emit_progress(on_progress, ProgressEvent(
            stage=f"{stage}_tool_result",
            tool=call.name,
            message=f"✓ {call.name} completed" if ok else f"✗ {call.name} returned an error",
            success=ok,
            error=None if ok else str(content.get("error")),
            iteration=iteration,
            max_iterations=max_iterations,
        ))
        completion = content if (ok and spec.terminal and isinstance(content, dict)) else None
        return ToolResult(call.id, call.name, content, ok=ok, completion=completion)
