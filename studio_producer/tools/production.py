"""
studio_producer/tools/production.py — Production tool executors.

Each tool validates its session reference, looks for a cached result in the
session, calls the generative collaborator, and writes what it produced back
into the session. Precondition problems come back as ``{"success": False,
"error": ...}`` so the model can correct itself; collaborator exceptions
propagate to the reasoning loop, which reports them the same way.
"""

import logging
import re
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field

from studio_producer import config
from studio_producer.models import SubagentName
from studio_producer.session_store import (
    ProductionSession,
    SessionStore,
    check_session_reference,
    is_valid_session_id,
)
from studio_producer.tools.registry import ToolName, ToolRegistry, ToolSpec
from studio_producer.tools.services import GenerativeServices

logger = logging.getLogger(__name__)

AspectRatio = Literal["16:9", "9:16", "1:1"]

SESSION_ID_FIELD = Field(
    ...,
    description="The exact sessionId returned by plan_video (format prod_TIMESTAMP_HASH). Never a placeholder.",
)


# ---------------------------------------------------------------------------
# Argument models
# ---------------------------------------------------------------------------
class ImportYoutubeArgs(BaseModel):
    url: str = Field(..., description="YouTube video URL")
    language: Optional[str] = Field(None, description="Transcript language code, auto-detected if omitted")


class TranscribeAudioArgs(BaseModel):
    path: str = Field(..., description="Path or URL of the audio file")
    language: Optional[str] = None


class PlanVideoArgs(BaseModel):
    topic: str = Field(..., min_length=1)
    target_duration: int = Field(60, ge=10, le=600, description="Target video length in seconds")
    style: Optional[str] = Field(None, description="Visual style, e.g. Cinematic, Anime, Documentary")
    audience: Optional[str] = None
    language: Optional[str] = None
    source_text: Optional[str] = Field(None, description="Imported transcript to base the plan on")
    session_id: Optional[str] = Field(None, description="Existing sessionId to re-plan; omit to create a new session")


class SessionArgs(BaseModel):
    session_id: str = SESSION_ID_FIELD


class NarrateScenesArgs(SessionArgs):
    language: Optional[str] = Field(None, description="Narration language; 'auto' or omitted detects from the script")
    voice_style: Optional[str] = None


class GenerateVisualsArgs(SessionArgs):
    style: Optional[str] = None
    aspect_ratio: AspectRatio = "16:9"


class PlanSfxArgs(SessionArgs):
    mood: Optional[str] = None


class SceneImageArgs(SessionArgs):
    scene_index: int = Field(..., ge=0, description="Zero-based scene index")


class RestyleImageArgs(SceneImageArgs):
    style: str = Field(..., min_length=1)


class MixAudioArgs(SessionArgs):
    sfx_volume: float = Field(0.3, ge=0.0, le=1.0)


class GenerateSubtitlesArgs(SessionArgs):
    language: Optional[str] = None
    format: Literal["srt", "vtt"] = "srt"


class ExportFinalVideoArgs(SessionArgs):
    format: Literal["mp4", "webm"] = "mp4"
    aspect_ratio: AspectRatio = "16:9"


class UploadProductionArgs(SessionArgs):
    make_public: bool = False


# Terminal completion payloads, one per stage
class ImportCompletion(BaseModel):
    summary: str
    transcript_preview: str = Field(..., min_length=1, description="First lines of the imported transcript")


class ContentCompletion(BaseModel):
    summary: str
    session_id: str = SESSION_ID_FIELD
    score: int = Field(..., ge=0, le=100, description="Final validate_plan score")
    scenes: int = Field(..., ge=1)
    duration: float = Field(..., gt=0, description="Total planned duration in seconds")


class MediaCompletion(BaseModel):
    summary: str
    session_id: str = SESSION_ID_FIELD
    visuals: int = Field(..., ge=0, description="Number of scenes with a generated visual")
    sfx: bool = False


class ExportCompletion(BaseModel):
    summary: str
    session_id: str = SESSION_ID_FIELD
    format: str = Field(..., description="Exported file format, e.g. mp4")
    location: str = Field(..., description="URL of the export, or 'available locally'")


COMPLETION_MODELS = {
    SubagentName.IMPORT: ImportCompletion,
    SubagentName.CONTENT: ContentCompletion,
    SubagentName.MEDIA: MediaCompletion,
    SubagentName.ENHANCEMENT_EXPORT: ExportCompletion,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
_ARABIC_RE = re.compile(r"[؀-ۿ]")
_CJK_RE = re.compile(r"[一-鿿぀-ヿ]")


def detect_language(text: str) -> str:
    """Best-effort script-based language guess for narration."""
    if _ARABIC_RE.search(text or ""):
        return "ar"
    if _CJK_RE.search(text or ""):
        return "ja" if re.search(r"[぀-ヿ]", text) else "zh"
    return "en"


def _error(message: str, **extra) -> Dict[str, Any]:
    return {"success": False, "error": message, **extra}


def _segment_for(scene: Dict[str, Any], index: int, segments: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    scene_id = scene.get("id")
    if scene_id is not None:
        for seg in segments:
            if seg.get("sceneId") == scene_id:
                return seg
    return segments[index] if index < len(segments) else None


def sync_durations_to_narration(plan: Dict[str, Any], segments: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Return a copy of the plan whose scene durations match their narration audio."""
    scenes = []
    for i, scene in enumerate(plan.get("scenes") or []):
        seg = _segment_for(scene, i, segments)
        updated = dict(scene)
        if seg and seg.get("duration"):
            updated["duration"] = round(float(seg["duration"]), 1)
        scenes.append(updated)
    synced = dict(plan)
    synced["scenes"] = scenes
    synced["totalDuration"] = round(sum(float(s.get("duration") or 0) for s in scenes), 1)
    return synced


def score_content_plan(plan: Dict[str, Any], segments: List[Dict[str, Any]],
                       target_duration: Optional[float] = None) -> Dict[str, Any]:
    """Deterministic rule-based quality score (0-100) with issues and suggestions.

    Checks scene-count plausibility, narration coverage, scene/narration timing
    drift and variety of visual descriptions. Approval needs the score to reach
    QUALITY_APPROVAL_SCORE and no critical issue (Missing / Invalid / No scenes).
    """
    scenes = plan.get("scenes") or []
    issues: List[Dict[str, str]] = []

    if not scenes:
        issues.append({"scene": "-", "type": "structure", "message": "No scenes in content plan"})
        return {"approved": False, "score": 0, "issues": issues,
                "suggestions": ["Call plan_video again to create scenes"]}

    score = 100
    total = sum(float(s.get("duration") or 0) for s in scenes)
    duration = target_duration or total
    avg = duration / len(scenes)
    if avg < 3 or avg > 30:
        score -= 10
        issues.append({"scene": "-", "type": "structure",
                       "message": f"Scene count {len(scenes)} looks implausible for {duration:.0f}s"})

    for i, scene in enumerate(scenes):
        name = scene.get("name") or f"Scene {i + 1}"
        if not scene.get("duration") or float(scene["duration"]) <= 0:
            score -= 15
            issues.append({"scene": name, "type": "timing", "message": "Invalid scene duration"})
        if not (scene.get("visualDescription") or "").strip():
            score -= 5
            issues.append({"scene": name, "type": "visual", "message": "Missing visual description"})

    if not segments:
        score -= 20
        issues.append({"scene": "-", "type": "narration", "message": "Missing narration for all scenes"})
    else:
        for i, scene in enumerate(scenes):
            name = scene.get("name") or f"Scene {i + 1}"
            seg = _segment_for(scene, i, segments)
            if seg is None or not seg.get("audioUrl"):
                score -= 10
                issues.append({"scene": name, "type": "narration", "message": "Missing narration audio"})
                continue
            seg_duration = float(seg.get("duration") or 0)
            scene_duration = float(scene.get("duration") or 0)
            if abs(scene_duration - seg_duration) > max(1.0, 0.2 * seg_duration):
                score -= 5
                issues.append({
                    "scene": name, "type": "timing",
                    "message": f"Scene duration {scene_duration:.1f}s differs from narration {seg_duration:.1f}s",
                })

    descriptions = [(s.get("visualDescription") or "").strip().lower() for s in scenes]
    described = [d for d in descriptions if d]
    if len(described) > 1 and len(set(described)) / len(described) < 0.8:
        score -= 10
        issues.append({"scene": "-", "type": "visual", "message": "Visual descriptions repeat across scenes"})

    score = max(0, min(100, score))
    suggestions = []
    kinds = {i["type"] for i in issues}
    if "timing" in kinds:
        suggestions.append("Call adjust_timing to sync scene durations to narration, then validate_plan again")
    if "narration" in kinds:
        suggestions.append("Call narrate_scenes to generate narration for every scene")
    if "visual" in kinds:
        suggestions.append("Re-plan with more distinct visual descriptions per scene")
    if "structure" in kinds:
        suggestions.append("Re-plan with a scene count suited to the target duration")

    critical = [i for i in issues if i["message"].startswith(("Missing", "Invalid", "No scenes"))]
    return {
        "approved": score >= config.QUALITY_APPROVAL_SCORE and not critical,
        "score": score,
        "issues": issues,
        "suggestions": suggestions,
    }


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------
class ProductionTools:
    """Executors for every production tool, bound to one store and one set of services."""

    def __init__(self, store: SessionStore, services: GenerativeServices):
        self.store = store
        self.services = services

    def _load(self, session_id: str, need_plan: bool = True) -> Tuple[Optional[ProductionSession], Optional[Dict[str, Any]]]:
        problem = check_session_reference(session_id, self.store)
        if problem:
            return None, problem
        session = self.store.require(session_id)
        if need_plan and not session.content_plan:
            return None, _error(
                f"Content plan not found for sessionId: {session_id}. "
                f"Make sure you are using the exact sessionId returned by plan_video."
            )
        return session, None

    def _record_error(self, session_id: str, tool: str, error: Exception) -> None:
        session = self.store.require(session_id)
        errors = list(session.errors)
        errors.append({"tool": tool, "error": str(error)})
        self.store.update(session_id, errors=errors)

    # --- Import ---

    async def import_youtube_content(self, args: ImportYoutubeArgs) -> Dict[str, Any]:
        logger.info(f"[Tools] Importing YouTube content: {args.url}")
        data = await self.services.import_youtube(args.url, args.language)
        transcript = data.get("transcript") or ""
        if not transcript.strip():
            return _error("No transcript could be extracted from this video")
        return {
            "success": True,
            "title": data.get("title", ""),
            "duration": data.get("duration"),
            "transcript": transcript,
            "message": f"Imported transcript ({len(transcript.split())} words)",
        }

    async def transcribe_audio_file(self, args: TranscribeAudioArgs) -> Dict[str, Any]:
        logger.info(f"[Tools] Transcribing audio: {args.path}")
        data = await self.services.transcribe_audio(args.path, args.language)
        transcript = data.get("transcript") or ""
        if not transcript.strip():
            return _error("Transcription returned no text")
        return {
            "success": True,
            "duration": data.get("duration"),
            "transcript": transcript,
            "message": f"Transcribed audio ({len(transcript.split())} words)",
        }

    # --- Content ---

    async def plan_video(self, args: PlanVideoArgs) -> Dict[str, Any]:
        logger.info(f'[Tools] Planning video: "{args.topic}" ({args.target_duration}s)')
        existing = None
        if args.session_id:
            if not is_valid_session_id(args.session_id) or args.session_id not in self.store:
                return _error(
                    f'Unknown session_id "{args.session_id}". Omit session_id to create a new session.'
                )
            existing = self.store.require(args.session_id)
            if existing.content_plan:
                return {
                    "success": True,
                    "cached": True,
                    "sessionId": existing.session_id,
                    "sceneCount": existing.scene_count,
                    "totalDuration": existing.content_plan.get("totalDuration"),
                    "message": f"Content plan already exists. Use sessionId=\"{existing.session_id}\".",
                }

        plan = await self.services.plan_content(
            topic=args.topic,
            target_duration=args.target_duration,
            style=args.style or "Cinematic",
            audience=args.audience or "General audience",
            language=args.language or "en",
            source_text=args.source_text,
        )
        scenes = plan.get("scenes") or []
        if not scenes:
            return _error("Content planner returned no scenes")
        plan.setdefault("totalDuration", round(sum(float(s.get("duration") or 0) for s in scenes), 1))
        plan.setdefault("targetDuration", args.target_duration)

        session = existing or self.store.create(topic=args.topic)
        imported = {"sourceText": args.source_text} if args.source_text else session.imported_content
        self.store.update(
            session.session_id,
            content_plan=plan,
            imported_content=imported,
            current_step="planned",
        )
        return {
            "success": True,
            "sessionId": session.session_id,
            "sceneCount": len(scenes),
            "totalDuration": plan["totalDuration"],
            "scenes": [{"name": s.get("name"), "duration": s.get("duration")} for s in scenes],
            "message": (
                f"Created content plan with {len(scenes)} scenes (~{plan['totalDuration']}s total). "
                f'IMPORTANT: Use sessionId="{session.session_id}" for all subsequent tool calls.'
            ),
        }

    async def narrate_scenes(self, args: NarrateScenesArgs) -> Dict[str, Any]:
        session, problem = self._load(args.session_id)
        if problem:
            return problem
        scenes = session.content_plan["scenes"]
        segments = session.narration_segments
        if len(segments) >= len(scenes) and all(s.get("audioUrl") for s in segments):
            logger.info(f"[Tools] Narration already covers {args.session_id}, skipping")
            return {"success": True, "cached": True, "segmentCount": len(segments),
                    "message": f"Narration already exists ({len(segments)} segments)"}

        language = args.language
        if not language or language == "auto":
            language = detect_language(scenes[0].get("narrationScript", ""))
            logger.info(f"[Tools] Auto-detected narration language: {language}")

        data = await self.services.narrate(scenes, language, args.voice_style)
        segments = data.get("segments") or []
        if not segments:
            return _error("Narration service returned no segments")
        synced = sync_durations_to_narration(session.content_plan, segments)
        self.store.update(args.session_id, content_plan=synced, narration_segments=segments,
                          current_step="narrated")
        return {
            "success": True,
            "segmentCount": len(segments),
            "totalDuration": synced["totalDuration"],
            "message": f"Generated {len(segments)} narration segments (~{synced['totalDuration']}s total)",
        }

    async def validate_plan(self, args: SessionArgs) -> Dict[str, Any]:
        session, problem = self._load(args.session_id)
        if problem:
            return problem
        validation = score_content_plan(
            session.content_plan, session.narration_segments,
            session.content_plan.get("targetDuration"),
        )
        best = max(session.best_quality_score, validation["score"])
        self.store.update(args.session_id, quality_score=validation["score"], best_quality_score=best,
                          current_step="validated")
        needs_improvement = validation["score"] < config.QUALITY_APPROVAL_SCORE
        can_retry = session.quality_iterations < config.MAX_QUALITY_ITERATIONS
        if validation["approved"]:
            message = f"Plan approved with score {validation['score']}/100 (best: {best}/100)"
        else:
            message = (
                f"Plan needs improvement. Score: {validation['score']}/100 (best: {best}/100). "
                + ("Can retry quality improvement." if can_retry else "Max retries reached.")
            )
        return {
            "success": True,
            "approved": validation["approved"],
            "score": validation["score"],
            "bestScore": best,
            "iterations": session.quality_iterations,
            "needsImprovement": needs_improvement,
            "canRetry": can_retry,
            "issues": validation["issues"],
            "suggestions": validation["suggestions"],
            "message": message,
        }

    async def adjust_timing(self, args: SessionArgs) -> Dict[str, Any]:
        session, problem = self._load(args.session_id)
        if problem:
            return problem
        if not session.narration_segments:
            return _error("No narration segments found. Generate narration first.")
        if session.quality_iterations >= config.MAX_QUALITY_ITERATIONS:
            return _error(
                f"Maximum quality iterations ({config.MAX_QUALITY_ITERATIONS}) reached. "
                f"Best score: {session.best_quality_score}/100",
                bestScore=session.best_quality_score,
            )
        synced = sync_durations_to_narration(session.content_plan, session.narration_segments)
        iteration = session.quality_iterations + 1
        self.store.update(args.session_id, content_plan=synced, quality_iterations=iteration)
        return {
            "success": True,
            "iteration": iteration,
            "totalDuration": synced["totalDuration"],
            "sceneCount": len(synced["scenes"]),
            "message": (
                f"Adjusted timing to match narration (iteration {iteration}/{config.MAX_QUALITY_ITERATIONS}). "
                f"Total duration: {synced['totalDuration']}s. Call validate_plan again to check improvement."
            ),
        }

    # --- Media ---

    async def generate_visuals(self, args: GenerateVisualsArgs) -> Dict[str, Any]:
        session, problem = self._load(args.session_id)
        if problem:
            return problem
        scenes = session.content_plan["scenes"]
        visuals: List[Optional[Dict[str, Any]]] = list(session.visuals) + [None] * (len(scenes) - len(session.visuals))
        if all(v and v.get("imageUrl") for v in visuals[:len(scenes)]):
            logger.info(f"[Tools] Visuals already generated for {args.session_id}, skipping")
            return {"success": True, "cached": True, "visualCount": len(scenes),
                    "message": f"Visuals already exist ({len(scenes)})"}

        def aligned() -> List[Dict[str, Any]]:
            # Positions follow scene indexes; gaps get a placeholder entry
            return [v or {"promptId": scenes[i].get("id", i), "imageUrl": None, "type": "placeholder"}
                    for i, v in enumerate(visuals[:len(scenes)])]

        style = args.style or session.content_plan.get("style") or "Cinematic"
        failures = 0
        for index, scene in enumerate(scenes):
            if visuals[index] and visuals[index].get("imageUrl"):
                continue
            logger.info(f"[Tools] Generating visual {index + 1}/{len(scenes)} for {args.session_id}")
            try:
                result = await self.services.generate_visual(scene, style, args.aspect_ratio,
                                                             args.session_id, index)
            except Exception as e:
                # One failed scene must not discard the others
                logger.error(f"[Tools] Visual generation failed for scene {index + 1}: {e}")
                self._record_error(args.session_id, ToolName.GENERATE_VISUALS.value, e)
                failures += 1
                continue
            visuals[index] = {
                "promptId": scene.get("id", index),
                "imageUrl": result.get("imageUrl"),
                "type": result.get("type", "image"),
            }
            self.store.update(args.session_id, visuals=aligned())

        done = sum(1 for v in visuals[:len(scenes)] if v and v.get("imageUrl"))
        if done == 0:
            return _error(f"Visual generation failed for all {len(scenes)} scenes")
        self.store.update(args.session_id, visuals=aligned(), current_step="visuals")
        return {
            "success": True,
            "visualCount": done,
            "failed": failures,
            "message": f"Generated {done}/{len(scenes)} visuals",
        }

    async def plan_sfx(self, args: PlanSfxArgs) -> Dict[str, Any]:
        session, problem = self._load(args.session_id)
        if problem:
            return problem
        if session.sfx_plan:
            count = len(session.sfx_plan.get("scenes") or [])
            return {"success": True, "cached": True, "sceneCount": count,
                    "message": f"SFX plan already exists ({count} scenes)"}
        plan = await self.services.plan_sfx(session.content_plan["scenes"], args.mood)
        self.store.update(args.session_id, sfx_plan=plan, current_step="sfx")
        count = len(plan.get("scenes") or [])
        return {"success": True, "sceneCount": count,
                "message": f"Created SFX plan with {count} scene sound effects"}

    # --- Enhancement / Export ---

    def _scene_visual(self, session: ProductionSession, index: int) -> Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
        if index >= len(session.visuals) or not session.visuals[index].get("imageUrl"):
            return None, _error(f"No visual for scene {index}. Run generate_visuals first.")
        return session.visuals[index], None

    def _replace_visual(self, session_id: str, index: int, visual: Dict[str, Any]) -> None:
        visuals = list(self.store.require(session_id).visuals)
        visuals[index] = visual
        self.store.update(session_id, visuals=visuals)

    async def remove_background(self, args: SceneImageArgs) -> Dict[str, Any]:
        session, problem = self._load(args.session_id)
        if problem:
            return problem
        visual, problem = self._scene_visual(session, args.scene_index)
        if problem:
            return problem
        if visual.get("backgroundRemoved"):
            return {"success": True, "cached": True, "imageUrl": visual["imageUrl"],
                    "message": f"Background already removed for scene {args.scene_index}"}
        result = await self.services.remove_background(visual["imageUrl"])
        self._replace_visual(args.session_id, args.scene_index,
                             {**visual, "imageUrl": result["imageUrl"], "backgroundRemoved": True})
        return {"success": True, "imageUrl": result["imageUrl"],
                "message": f"Removed background for scene {args.scene_index}"}

    async def restyle_image(self, args: RestyleImageArgs) -> Dict[str, Any]:
        session, problem = self._load(args.session_id)
        if problem:
            return problem
        visual, problem = self._scene_visual(session, args.scene_index)
        if problem:
            return problem
        if visual.get("style") == args.style:
            return {"success": True, "cached": True, "imageUrl": visual["imageUrl"],
                    "message": f"Scene {args.scene_index} already in {args.style} style"}
        result = await self.services.restyle_image(visual["imageUrl"], args.style)
        self._replace_visual(args.session_id, args.scene_index,
                             {**visual, "imageUrl": result["imageUrl"], "style": args.style})
        return {"success": True, "imageUrl": result["imageUrl"],
                "message": f"Restyled scene {args.scene_index} as {args.style}"}

    async def mix_audio_tracks(self, args: MixAudioArgs) -> Dict[str, Any]:
        session, problem = self._load(args.session_id)
        if problem:
            return problem
        if not session.narration_segments:
            return _error("No narration to mix. The Content stage must narrate scenes first.")
        if session.mixed_audio:
            return {"success": True, "cached": True, **session.mixed_audio,
                    "message": "Audio already mixed"}
        mixed = await self.services.mix_audio(session.narration_segments, session.sfx_plan, args.sfx_volume)
        self.store.update(args.session_id, mixed_audio=mixed, current_step="mixed")
        return {"success": True, **mixed,
                "message": "Mixed narration" + (" with SFX" if session.sfx_plan else "")}

    async def generate_subtitles(self, args: GenerateSubtitlesArgs) -> Dict[str, Any]:
        session, problem = self._load(args.session_id)
        if problem:
            return problem
        if not session.narration_segments:
            return _error("No narration segments found. Subtitles are timed from narration.")
        if session.subtitles and session.subtitles.get("format") == args.format:
            return {"success": True, "cached": True, "format": args.format,
                    "message": f"{args.format.upper()} subtitles already generated"}
        language = args.language or detect_language(
            session.content_plan["scenes"][0].get("narrationScript", ""))
        subtitles = await self.services.generate_subtitles(
            session.narration_segments, session.content_plan["scenes"], language, args.format)
        subtitles.setdefault("format", args.format)
        self.store.update(args.session_id, subtitles=subtitles, current_step="subtitled")
        return {"success": True, "format": subtitles["format"], "cueCount": subtitles.get("cueCount"),
                "message": f"Generated {args.format.upper()} subtitles"}

    async def export_final_video(self, args: ExportFinalVideoArgs) -> Dict[str, Any]:
        session, problem = self._load(args.session_id)
        if problem:
            return problem
        if session.export_result and session.export_result.get("format") == args.format:
            return {"success": True, "cached": True, **session.export_result,
                    "message": f"Export complete. Format: {args.format}"}
        if not any(v.get("imageUrl") for v in session.visuals):
            return _error("No visuals to render. The Media stage must generate visuals first.")
        production = {
            "sessionId": session.session_id,
            "scenes": session.content_plan["scenes"],
            "visuals": session.visuals,
            "audio": session.mixed_audio or {"narration": session.narration_segments},
            "subtitles": session.subtitles,
        }
        rendered = await self.services.render_video(production, args.format, args.aspect_ratio)
        rendered.setdefault("format", args.format)
        self.store.update(args.session_id, export_result=rendered, is_complete=True, current_step="exported")
        return {"success": True, **rendered,
                "message": f"Export complete. Format: {rendered['format']}"}

    async def upload_production_to_cloud(self, args: UploadProductionArgs) -> Dict[str, Any]:
        session, problem = self._load(args.session_id)
        if problem:
            return problem
        if not session.export_result:
            return _error("Nothing to upload. Call export_final_video first.")
        if session.cloud_upload:
            return {"success": True, "cached": True, **session.cloud_upload,
                    "message": "Production already uploaded"}
        assets = {
            "video": session.export_result,
            "audio": session.mixed_audio,
            "subtitles": session.subtitles,
            "visuals": session.visuals,
        }
        uploaded = await self.services.upload_to_cloud(args.session_id, assets, args.make_public)
        self.store.update(args.session_id, cloud_upload=uploaded, current_step="uploaded")
        return {"success": True, **uploaded, "message": "Uploaded production to cloud storage"}


# ---------------------------------------------------------------------------
# Registry wiring
# ---------------------------------------------------------------------------
def build_production_registry(store: SessionStore, services: GenerativeServices) -> ToolRegistry:
    """All production tools bound to ``store`` and ``services``.

    The cloud upload tool is only bound when the services support it; otherwise
    it is recorded as excluded so the loop reports an environment limitation.
    """
    t = ProductionTools(store, services)
    registry = ToolRegistry([
        ToolSpec(ToolName.IMPORT_YOUTUBE_CONTENT,
                 "Import a YouTube video's title and transcript to base the production on.",
                 ImportYoutubeArgs, t.import_youtube_content),
        ToolSpec(ToolName.TRANSCRIBE_AUDIO_FILE,
                 "Transcribe an audio file to text to base the production on.",
                 TranscribeAudioArgs, t.transcribe_audio_file),
        ToolSpec(ToolName.PLAN_VIDEO,
                 "Generate a video content plan with scenes and create the production session. "
                 "Returns the sessionId every later tool needs.",
                 PlanVideoArgs, t.plan_video),
        ToolSpec(ToolName.NARRATE_SCENES,
                 "Generate voice narration for all scenes and sync scene timings to it.",
                 NarrateScenesArgs, t.narrate_scenes),
        ToolSpec(ToolName.VALIDATE_PLAN,
                 "Score the content plan 0-100. If score < 80 and canRetry, call adjust_timing next.",
                 SessionArgs, t.validate_plan, repeatable=True),
        ToolSpec(ToolName.ADJUST_TIMING,
                 "Adjust scene timings to match narration audio lengths. Always call validate_plan "
                 "afterwards. Limited to 2 iterations.",
                 SessionArgs, t.adjust_timing, repeatable=True),
        ToolSpec(ToolName.GENERATE_VISUALS,
                 "Generate one visual per scene. Call once; scenes that already have a visual are kept.",
                 GenerateVisualsArgs, t.generate_visuals),
        ToolSpec(ToolName.PLAN_SFX,
                 "Create an ambient sound effects plan from scene content and mood.",
                 PlanSfxArgs, t.plan_sfx),
        ToolSpec(ToolName.REMOVE_BACKGROUND,
                 "Remove the background of one scene's visual.",
                 SceneImageArgs, t.remove_background, repeatable=True),
        ToolSpec(ToolName.RESTYLE_IMAGE,
                 "Restyle one scene's visual in a different artistic style.",
                 RestyleImageArgs, t.restyle_image, repeatable=True),
        ToolSpec(ToolName.MIX_AUDIO_TRACKS,
                 "Mix narration with the SFX plan (if any) into one audio track.",
                 MixAudioArgs, t.mix_audio_tracks),
        ToolSpec(ToolName.GENERATE_SUBTITLES,
                 "Generate SRT or VTT subtitles timed from the narration.",
                 GenerateSubtitlesArgs, t.generate_subtitles),
        ToolSpec(ToolName.EXPORT_FINAL_VIDEO,
                 "Render the final video from visuals, audio and subtitles.",
                 ExportFinalVideoArgs, t.export_final_video),
    ])
    upload = ToolSpec(ToolName.UPLOAD_PRODUCTION_TO_CLOUD,
                      "Upload the exported production to cloud storage.",
                      UploadProductionArgs, t.upload_production_to_cloud, server_only=True)
    if services.supports_cloud_upload:
        registry.register(upload)
    else:
        registry.exclude(ToolName.UPLOAD_PRODUCTION_TO_CLOUD)
    return registry


def completion_tool(stage: SubagentName, store: Optional[SessionStore] = None) -> ToolSpec:
    """The terminal complete_stage tool for one stage.

    When a store is given, a completion naming a session id is rejected unless
    that session exists, so a stage cannot finish on a fabricated id.
    """
    args_model = COMPLETION_MODELS[stage]

    async def complete(args: BaseModel) -> Dict[str, Any]:
        payload = args.model_dump()
        session_id = payload.get("session_id")
        if store is not None and session_id is not None:
            problem = check_session_reference(session_id, store)
            if problem:
                return problem
        return {"success": True, "stage": stage.value, **payload}

    return ToolSpec(
        ToolName.COMPLETE_STAGE,
        f"Call exactly once when the {stage.value} stage is finished, with a summary of what was produced.",
        args_model,
        complete,
        terminal=True,
    )
