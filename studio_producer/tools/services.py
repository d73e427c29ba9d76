"""
studio_producer/tools/services.py — External generative collaborators.

The pipeline never produces media itself. Every generative operation goes
through GenerativeServices; HttpGenerativeServices forwards each one as a
JSON POST to a studio services gateway.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from studio_producer import config

logger = logging.getLogger(__name__)


class GenerativeServices(ABC):
    """Opaque black boxes behind the production tools. All return plain dicts."""

    supports_cloud_upload: bool = False

    async def close(self):
        """Release any held connections. No-op by default."""

    @abstractmethod
    async def import_youtube(self, url: str, language: Optional[str] = None) -> Dict[str, Any]:
        """-> {"title", "transcript", "duration"}"""

    @abstractmethod
    async def transcribe_audio(self, path: str, language: Optional[str] = None) -> Dict[str, Any]:
        """-> {"transcript", "duration"}"""

    @abstractmethod
    async def plan_content(self, topic: str, target_duration: int, style: str,
                           audience: str, language: str,
                           source_text: Optional[str] = None) -> Dict[str, Any]:
        """-> {"title", "scenes": [{"id", "name", "duration", "narrationScript", "visualDescription"}]}"""

    @abstractmethod
    async def narrate(self, scenes: List[Dict[str, Any]], language: str,
                      voice_style: Optional[str] = None) -> Dict[str, Any]:
        """-> {"segments": [{"sceneId", "audioUrl", "duration"}]}"""

    @abstractmethod
    async def generate_visual(self, scene: Dict[str, Any], style: str, aspect_ratio: str,
                              session_id: str, scene_index: int) -> Dict[str, Any]:
        """-> {"imageUrl", "type"}"""

    @abstractmethod
    async def plan_sfx(self, scenes: List[Dict[str, Any]], mood: Optional[str] = None) -> Dict[str, Any]:
        """-> {"scenes": [...]}"""

    @abstractmethod
    async def remove_background(self, image_url: str) -> Dict[str, Any]:
        """-> {"imageUrl"}"""

    @abstractmethod
    async def restyle_image(self, image_url: str, style: str) -> Dict[str, Any]:
        """-> {"imageUrl"}"""

    @abstractmethod
    async def mix_audio(self, narration: List[Dict[str, Any]], sfx_plan: Optional[Dict[str, Any]],
                        sfx_volume: float) -> Dict[str, Any]:
        """-> {"audioUrl", "duration"}"""

    @abstractmethod
    async def generate_subtitles(self, segments: List[Dict[str, Any]], scenes: List[Dict[str, Any]],
                                 language: str, fmt: str) -> Dict[str, Any]:
        """-> {"format", "url" or "content", "cueCount"}"""

    @abstractmethod
    async def render_video(self, production: Dict[str, Any], fmt: str, aspect_ratio: str) -> Dict[str, Any]:
        """-> {"videoUrl", "format", "duration"}"""

    @abstractmethod
    async def upload_to_cloud(self, session_id: str, assets: Dict[str, Any],
                              make_public: bool) -> Dict[str, Any]:
        """-> {"url", "files"}"""


class HttpGenerativeServices(GenerativeServices):
    """POSTs ``{base_url}/{operation}`` with a JSON body and returns the JSON reply.

    HTTP errors are not caught here; they surface to the tool executor and
    from there to the reasoning loop as error results.
    """

    def __init__(self, base_url: str = "", timeout: float = 0,
                 cloud_bucket: Optional[str] = None,
                 client: Optional[httpx.AsyncClient] = None):
        self.base_url = (base_url or config.STUDIO_SERVICES_URL).rstrip("/")
        self.timeout = timeout or config.SERVICES_TIMEOUT
        self.cloud_bucket = config.STUDIO_CLOUD_BUCKET if cloud_bucket is None else cloud_bucket
        self._http = client or httpx.AsyncClient(timeout=self.timeout)

    @property
    def supports_cloud_upload(self) -> bool:
        return bool(self.cloud_bucket)

    async def close(self):
        """Close the underlying HTTP client."""
        await self._http.aclose()

    async def _post(self, operation: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/{operation}"
        logger.debug(f"[Services] POST {url}")
        resp = await self._http.post(url, json=payload)
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            raise ValueError(f"{operation}: expected a JSON object, got {type(data).__name__}")
        return data

    async def import_youtube(self, url, language=None):
        return await self._post("import_youtube", {"url": url, "language": language})

    async def transcribe_audio(self, path, language=None):
        return await self._post("transcribe_audio", {"path": path, "language": language})

    async def plan_content(self, topic, target_duration, style, audience, language, source_text=None):
        return await self._post("plan_content", {
            "topic": topic,
            "targetDuration": target_duration,
            "style": style,
            "audience": audience,
            "language": language,
            "sourceText": source_text,
        })

    async def narrate(self, scenes, language, voice_style=None):
        return await self._post("narrate", {"scenes": scenes, "language": language, "voiceStyle": voice_style})

    async def generate_visual(self, scene, style, aspect_ratio, session_id, scene_index):
        return await self._post("generate_visual", {
            "scene": scene,
            "style": style,
            "aspectRatio": aspect_ratio,
            "sessionId": session_id,
            "sceneIndex": scene_index,
        })

    async def plan_sfx(self, scenes, mood=None):
        return await self._post("plan_sfx", {"scenes": scenes, "mood": mood})

    async def remove_background(self, image_url):
        return await self._post("remove_background", {"imageUrl": image_url})

    async def restyle_image(self, image_url, style):
        return await self._post("restyle_image", {"imageUrl": image_url, "style": style})

    async def mix_audio(self, narration, sfx_plan, sfx_volume):
        return await self._post("mix_audio", {"narration": narration, "sfxPlan": sfx_plan, "sfxVolume": sfx_volume})

    async def generate_subtitles(self, segments, scenes, language, fmt):
        return await self._post("generate_subtitles", {
            "segments": segments, "scenes": scenes, "language": language, "format": fmt,
        })

    async def render_video(self, production, fmt, aspect_ratio):
        return await self._post("render_video", {
            "production": production, "format": fmt, "aspectRatio": aspect_ratio,
        })

    async def upload_to_cloud(self, session_id, assets, make_public):
        if not self.cloud_bucket:
            raise RuntimeError("Cloud upload is not configured (STUDIO_CLOUD_BUCKET is empty)")
        return await self._post("upload_to_cloud", {
            "bucket": self.cloud_bucket,
            "sessionId": session_id,
            "assets": assets,
            "makePublic": make_public,
        })
