"""Tests for studio_producer/agent/subagents.py -- session preconditions, adoption, instructions."""

import asyncio

import pytest

from fakes import ScriptedChatModel, call, last_session_id, text_turn, tool_payloads, tool_turn
from studio_producer.agent.subagents import (
    create_content_subagent,
    create_enhancement_export_subagent,
    create_import_subagent,
    create_media_subagent,
)
from studio_producer.errors import MissingSessionError, StageFailedError
from studio_producer.models import (
    CompletedStage,
    SubagentContext,
    SubagentName,
    UserPreferences,
)


def with_session(name, **arguments):
    """Turn that calls ``name`` with the most recent session id seen in the history."""
    def turn(messages):
        return tool_turn(call(name, session_id=last_session_id(messages), **arguments))
    return turn


def invoke(subagent, context):
    return asyncio.run(subagent.invoke(context))


class TestSessionPrecondition:

    @pytest.mark.parametrize("factory", [create_media_subagent, create_enhancement_export_subagent])
    def test_session_bound_stage_without_session(self, factory, registry, store):
        model = ScriptedChatModel([])
        subagent = factory(model, registry, store)
        with pytest.raises(MissingSessionError) as exc:
            invoke(subagent, SubagentContext(session_id=None, instruction="go"))
        assert subagent.name.value in str(exc.value)
        assert model.calls == []

    def test_import_runs_without_session(self, registry, store):
        model = ScriptedChatModel([
            tool_turn(call("import_youtube_content", url="https://youtu.be/abcdefghijk")),
            tool_turn(call("complete_stage", summary="Import complete",
                           transcript_preview="Coral reefs cover less than one percent")),
        ])
        result = invoke(create_import_subagent(model, registry, store),
                        SubagentContext(session_id=None, instruction="Import https://youtu.be/abcdefghijk"))
        assert result.success
        assert result.session_id is None
        assert result.completed_stage == SubagentName.IMPORT
        assert "Coral reefs" in result.message
        assert len(store) == 0


class TestContentStage:

    def _scripted_content(self, final=None):
        return ScriptedChatModel([
            tool_turn(call("plan_video", topic="coral reefs", target_duration=30)),
            with_session("narrate_scenes"),
            with_session("validate_plan"),
            final or with_session("complete_stage", summary="Content complete", score=100,
                                  scenes=3, duration=28.5),
        ])

    def test_adopts_session_created_by_plan_video(self, registry, store, services):
        model = self._scripted_content()
        result = invoke(create_content_subagent(model, registry, store),
                        SubagentContext(session_id=None, instruction="Plan a video about coral reefs"))
        assert result.success
        assert result.session_id in store
        assert store.require(result.session_id).narration_segments
        assert "score: 100" in result.message
        assert services.count("plan_content") == 1

    def test_reminds_model_of_new_session(self, registry, store):
        model = self._scripted_content()
        result = invoke(create_content_subagent(model, registry, store),
                        SubagentContext(session_id=None, instruction="Plan"))
        second_turn = model.calls[1]["messages"]
        assert second_turn[-1]["role"] == "user"
        assert result.session_id in second_turn[-1]["content"]

    def test_reminder_follows_every_reply_of_a_parallel_turn(self, registry, store):
        model = ScriptedChatModel([
            tool_turn(call("plan_video", topic="coral reefs", target_duration=30),
                      call("validate_plan", session_id="plan_1")),
            with_session("complete_stage", summary="Content complete", score=80, scenes=3, duration=28.5),
        ])
        result = invoke(create_content_subagent(model, registry, store),
                        SubagentContext(session_id=None, instruction="Plan"))
        history = model.calls[1]["messages"]
        start = next(i for i, m in enumerate(history) if m.get("tool_calls"))
        assert [m["role"] for m in history[start + 1:]] == ["tool", "tool", "user"]
        assert result.session_id in history[-1]["content"]

    def test_prose_completion_still_returns_session(self, registry, store):
        model = self._scripted_content(final=text_turn("Content complete. Score: 100/100. Scenes: 3."))
        result = invoke(create_content_subagent(model, registry, store),
                        SubagentContext(session_id=None, instruction="Plan"))
        assert result.session_id in store

    def test_fails_without_creating_session(self, registry, store):
        model = ScriptedChatModel([text_turn("Content complete. Score: 90/100.")])
        with pytest.raises(StageFailedError):
            invoke(create_content_subagent(model, registry, store),
                   SubagentContext(session_id=None, instruction="Plan"))

    def test_placeholder_id_gets_corrected(self, registry, store):
        model = ScriptedChatModel([
            tool_turn(call("plan_video", topic="reefs", target_duration=30)),
            tool_turn(call("narrate_scenes", session_id="plan_123")),
            with_session("narrate_scenes"),
            with_session("complete_stage", summary="Content complete", score=80, scenes=3, duration=28.5),
        ])
        result = invoke(create_content_subagent(model, registry, store),
                        SubagentContext(session_id=None, instruction="Plan"))
        payloads = tool_payloads(model.calls[-1]["messages"])
        assert payloads[1]["success"] is False
        assert "placeholder" in payloads[1]["error"]
        assert payloads[2]["success"] is True
        assert result.success


class TestMediaStage:

    def test_instruction_restates_session_and_context(self, registry, planned_session, store):
        sid = planned_session.session_id
        model = ScriptedChatModel([
            tool_turn(call("generate_visuals", session_id=sid)),
            text_turn("Media complete. Visuals: 3. SFX: no."),
        ])
        context = SubagentContext(
            session_id=sid,
            instruction="Generate visuals",
            prior_stages=(CompletedStage(SubagentName.CONTENT, 0.0, 1.0, True),),
            user_preferences=UserPreferences(style="Anime", aspect_ratio="9:16"),
        )
        result = invoke(create_media_subagent(model, registry, store), context)
        instruction = model.calls[0]["messages"][1]["content"]
        assert instruction.count(sid) >= 2
        assert '"style": "Anime"' in instruction
        assert "content (ok)" in instruction
        assert result.session_id == sid
        assert result.success

    def test_completion_with_invented_session_is_rejected(self, registry, planned_session, store):
        sid = planned_session.session_id
        model = ScriptedChatModel([
            tool_turn(call("generate_visuals", session_id=sid)),
            tool_turn(call("complete_stage", summary="Media complete", session_id="prod_1_inventedx", visuals=3)),
            tool_turn(call("complete_stage", summary="Media complete", session_id=sid, visuals=3)),
        ])
        result = invoke(create_media_subagent(model, registry, store),
                        SubagentContext(session_id=sid, instruction="Generate visuals"))
        assert result.success
        assert len(model.calls) == 3

    def test_only_stage_tools_are_offered(self, registry, store):
        subagent = create_media_subagent(ScriptedChatModel([]), registry, store)
        assert subagent.tools.names == ["generate_visuals", "plan_sfx", "complete_stage"]

    def test_emits_start_and_complete(self, registry, planned_session, store):
        events = []
        model = ScriptedChatModel([text_turn("Media complete. Visuals: 0.")])
        invoke(create_media_subagent(model, registry, store),
               SubagentContext(session_id=planned_session.session_id, instruction="go",
                               on_progress=events.append))
        stages = [e.stage for e in events]
        assert stages[0] == "media_starting"
        assert stages[-1] == "media_complete"


class TestExportStage:

    def test_upload_reported_as_environment_limited(self, registry, planned_session, store):
        sid = planned_session.session_id
        subagent = create_enhancement_export_subagent(ScriptedChatModel([
            tool_turn(call("upload_production_to_cloud", session_id=sid)),
            tool_turn(call("complete_stage", summary="Export complete", session_id=sid,
                           format="mp4", location="available locally")),
        ]), registry, store)
        assert "upload_production_to_cloud" not in subagent.tools.names
        assert subagent.tools.is_excluded("upload_production_to_cloud")

        result = invoke(subagent, SubagentContext(session_id=sid, instruction="Export"))
        payload = tool_payloads(subagent.model.calls[-1]["messages"])[0]
        assert payload["category"] == "environment_unavailable"
        assert "available locally" in result.message
