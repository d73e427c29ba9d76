"""Tests for studio_producer/agent/loop.py -- idempotency, unavailable tools, completion, budget."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from pydantic import BaseModel

from fakes import ScriptedChatModel, call, text_turn, tool_turn
from studio_producer.agent.loop import CompletionSignal, ReasoningLoop
from studio_producer.errors import ProductionAbort, StageIterationsExceededError
from studio_producer.tools.registry import ToolName, ToolRegistry, ToolSpec


class SessionArgs(BaseModel):
    session_id: str = "prod_1_abcdefghi"


class SummaryArgs(BaseModel):
    summary: str


def make_registry(executor=None, repeatable_executor=None, terminal=True, excluded=()):
    executor = executor or AsyncMock(return_value={"success": True, "visualCount": 3})
    specs = [ToolSpec(ToolName.GENERATE_VISUALS, "visuals", SessionArgs, executor)]
    if repeatable_executor is not None:
        specs.append(ToolSpec(ToolName.VALIDATE_PLAN, "validate", SessionArgs, repeatable_executor,
                              repeatable=True))
    if terminal:
        async def complete(args):
            return {"success": True, "summary": args.summary}
        specs.append(ToolSpec(ToolName.COMPLETE_STAGE, "done", SummaryArgs, complete, terminal=True))
    return ToolRegistry(specs, excluded=excluded)


def tool_messages(model):
    last = model.calls[-1]["messages"]
    return [json.loads(m["content"]) for m in last if m["role"] == "tool"]


def run(loop, registry, max_iterations=5, **kwargs):
    return asyncio.run(loop.run("system", "go", registry, max_iterations, stage="media", **kwargs))


class TestIdempotency:

    def test_duplicate_tool_call_is_skipped(self):
        executor = AsyncMock(return_value={"success": True})
        model = ScriptedChatModel([
            tool_turn(call("generate_visuals")),
            tool_turn(call("generate_visuals")),
            tool_turn(call("complete_stage", summary="Media done")),
        ])
        result = run(ReasoningLoop(model), make_registry(executor))
        assert result.success
        assert executor.await_count == 1
        second = tool_messages(model)[1]
        assert second["cached"] is True
        assert second["success"] is True
        assert result.completed_tools == ["generate_visuals"]

    def test_duplicate_within_one_turn_is_skipped(self):
        executor = AsyncMock(return_value={"success": True})
        model = ScriptedChatModel([
            tool_turn(call("generate_visuals"), call("generate_visuals")),
            tool_turn(call("complete_stage", summary="done")),
        ])
        run(ReasoningLoop(model), make_registry(executor))
        assert executor.await_count == 1

    def test_repeatable_tool_runs_every_time(self):
        validate = AsyncMock(return_value={"success": True, "score": 70})
        model = ScriptedChatModel([
            tool_turn(call("validate_plan")),
            tool_turn(call("validate_plan")),
            tool_turn(call("complete_stage", summary="done")),
        ])
        run(ReasoningLoop(model), make_registry(repeatable_executor=validate))
        assert validate.await_count == 2

    def test_failed_result_is_not_recorded(self):
        """A tool that reported success=False may be called again with corrected arguments."""
        executor = AsyncMock(side_effect=[
            {"success": False, "error": "Invalid session_id"},
            {"success": True},
        ])
        model = ScriptedChatModel([
            tool_turn(call("generate_visuals", session_id="plan_123")),
            tool_turn(call("generate_visuals")),
            tool_turn(call("complete_stage", summary="done")),
        ])
        run(ReasoningLoop(model), make_registry(executor))
        assert executor.await_count == 2


class TestUnavailableTools:

    def test_unknown_tool_consumes_iteration_without_raising(self):
        model = ScriptedChatModel([
            tool_turn(call("generate_music")),
            tool_turn(call("complete_stage", summary="done")),
        ])
        result = run(ReasoningLoop(model), make_registry())
        assert result.success
        assert result.iterations == 2
        payload = tool_messages(model)[0]
        assert payload["success"] is False
        assert payload["category"] == "unknown_tool"
        assert "generate_visuals" in payload["availableTools"]

    def test_environment_limited_tool(self):
        model = ScriptedChatModel([
            tool_turn(call("upload_production_to_cloud")),
            tool_turn(call("complete_stage", summary="available locally")),
        ])
        registry = make_registry(excluded=[ToolName.UPLOAD_PRODUCTION_TO_CLOUD])
        result = run(ReasoningLoop(model), registry)
        assert result.success
        payload = tool_messages(model)[0]
        assert payload["category"] == "environment_unavailable"
        assert "suggestion" in payload

    def test_known_tool_from_another_stage_is_unknown_here(self):
        model = ScriptedChatModel([
            tool_turn(call("plan_video", topic="x")),
            tool_turn(call("complete_stage", summary="done")),
        ])
        run(ReasoningLoop(model), make_registry())
        assert tool_messages(model)[0]["category"] == "unknown_tool"


class TestToolErrors:

    def test_executor_exception_becomes_error_result(self):
        executor = AsyncMock(side_effect=[RuntimeError("render farm down"), {"success": True}])
        model = ScriptedChatModel([
            tool_turn(call("generate_visuals")),
            tool_turn(call("generate_visuals")),
            tool_turn(call("complete_stage", summary="done")),
        ])
        result = run(ReasoningLoop(model), make_registry(executor))
        assert result.success
        first = tool_messages(model)[0]
        assert first == {"success": False, "error": "render farm down"}
        assert executor.await_count == 2

    def test_invalid_arguments_reported_to_model(self):
        model = ScriptedChatModel([
            tool_turn(call("complete_stage")),  # summary missing
            tool_turn(call("complete_stage", summary="done")),
        ])
        result = run(ReasoningLoop(model), make_registry())
        assert result.success
        first = tool_messages(model)[0]
        assert first["success"] is False
        assert "summary" in first["error"]

    def test_production_abort_propagates(self):
        executor = AsyncMock(side_effect=ProductionAbort("stop everything"))
        model = ScriptedChatModel([tool_turn(call("generate_visuals"))])
        with pytest.raises(ProductionAbort):
            run(ReasoningLoop(model), make_registry(executor))


class TestCompletion:

    def test_terminal_tool_sets_structured_completion(self):
        model = ScriptedChatModel([tool_turn(call("complete_stage", summary="Media complete"))])
        result = run(ReasoningLoop(model), make_registry())
        assert result.success
        assert result.completion == {"success": True, "summary": "Media complete"}
        assert result.final_message == "Media complete"

    def test_prose_signal_needs_phrase_and_marker(self):
        signal = CompletionSignal("Media complete", ("Visuals:",))
        model = ScriptedChatModel([
            text_turn("Media complete."),                 # marker missing
            text_turn("Media complete. Visuals: 3."),
        ])
        result = run(ReasoningLoop(model), make_registry(), completion=signal)
        assert result.success
        assert result.iterations == 2
        assert result.completion is None
        # the unmatched reply is kept and followed by a nudge
        history = model.calls[1]["messages"]
        assert history[-2]["role"] == "assistant"
        assert history[-1]["role"] == "user"

    def test_signal_without_markers(self):
        signal = CompletionSignal("Production complete")
        assert signal.matches("All good. Production complete!")
        assert not signal.matches("Production is not complete")

    def test_budget_exceeded_raises(self):
        model = ScriptedChatModel([text_turn("still thinking")] * 3)
        with pytest.raises(StageIterationsExceededError) as exc:
            run(ReasoningLoop(model), make_registry(), max_iterations=3,
                completion=CompletionSignal("Media complete", ("Visuals:",)))
        assert exc.value.max_iterations == 3
        assert len(model.calls) == 3


class TestHooksAndProgress:

    def test_on_tool_result_injects_follow_up(self):
        model = ScriptedChatModel([
            tool_turn(call("generate_visuals")),
            tool_turn(call("complete_stage", summary="done")),
        ])
        seen = []

        def hook(tool_call, result):
            seen.append((tool_call.name, result.ok))
            return "Remember the session id"

        run(ReasoningLoop(model), make_registry(), on_tool_result=hook)
        assert seen == [("generate_visuals", True)]
        history = model.calls[1]["messages"]
        assert history[-1] == {"role": "user", "content": "Remember the session id"}

    def test_follow_ups_wait_for_all_tool_replies_of_a_turn(self):
        model = ScriptedChatModel([
            tool_turn(call("generate_visuals"), call("validate_plan")),
            tool_turn(call("complete_stage", summary="done")),
        ])
        validate = AsyncMock(return_value={"success": True, "score": 90})

        run(ReasoningLoop(model), make_registry(repeatable_executor=validate),
            on_tool_result=lambda tool_call, result: f"after {tool_call.name}")

        history = model.calls[1]["messages"]
        start = next(i for i, m in enumerate(history) if m.get("tool_calls"))
        roles = [m["role"] for m in history[start + 1:]]
        assert roles == ["tool", "tool", "user", "user"]
        assert [m["content"] for m in history[-2:]] == ["after generate_visuals", "after validate_plan"]

    def test_progress_events_around_tool_execution(self):
        events = []
        model = ScriptedChatModel([
            tool_turn(call("generate_visuals")),
            tool_turn(call("complete_stage", summary="done")),
        ])
        run(ReasoningLoop(model), make_registry(), on_progress=events.append)
        stages = [e.stage for e in events]
        assert stages[:3] == ["media_processing", "media_tool_call", "media_tool_result"]
        assert events[2].success is True
        assert events[1].tool == "generate_visuals"

    def test_failing_progress_callback_does_not_break_loop(self):
        def broken(event):
            raise ValueError("consumer bug")

        model = ScriptedChatModel([tool_turn(call("complete_stage", summary="done"))])
        result = run(ReasoningLoop(model), make_registry(), on_progress=broken)
        assert result.success
