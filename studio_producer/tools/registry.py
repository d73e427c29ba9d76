"""
studio_producer/tools/registry.py — Closed tool registry.

Every tool the pipeline knows about is a ToolName member. A ToolRegistry binds
a subset of them to ToolSpec records (pydantic argument model + async
executor); dispatch is a lookup on that mapping, never reflection.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Type, Union

from pydantic import BaseModel

from studio_producer.models import ToolCall

logger = logging.getLogger(__name__)


class ToolName(str, Enum):
    # Import
    IMPORT_YOUTUBE_CONTENT = "import_youtube_content"
    TRANSCRIBE_AUDIO_FILE = "transcribe_audio_file"
    # Content
    PLAN_VIDEO = "plan_video"
    NARRATE_SCENES = "narrate_scenes"
    VALIDATE_PLAN = "validate_plan"
    ADJUST_TIMING = "adjust_timing"
    # Media
    GENERATE_VISUALS = "generate_visuals"
    PLAN_SFX = "plan_sfx"
    # Enhancement / Export
    REMOVE_BACKGROUND = "remove_background"
    RESTYLE_IMAGE = "restyle_image"
    MIX_AUDIO_TRACKS = "mix_audio_tracks"
    GENERATE_SUBTITLES = "generate_subtitles"
    EXPORT_FINAL_VIDEO = "export_final_video"
    UPLOAD_PRODUCTION_TO_CLOUD = "upload_production_to_cloud"
    # Terminal tool shared by every stage
    COMPLETE_STAGE = "complete_stage"
    # Supervisor
    DELEGATE_TO_IMPORT = "delegate_to_import_subagent"
    DELEGATE_TO_CONTENT = "delegate_to_content_subagent"
    DELEGATE_TO_MEDIA = "delegate_to_media_subagent"
    DELEGATE_TO_EXPORT = "delegate_to_enhancement_export_subagent"
    COMPLETE_PRODUCTION = "complete_production"

    @classmethod
    def lookup(cls, name: str) -> Optional["ToolName"]:
        try:
            return cls(name)
        except ValueError:
            return None


ToolExecutor = Callable[[BaseModel], Awaitable[Union[Dict[str, Any], str]]]


@dataclass(frozen=True)
class ToolSpec:
    """Typed handler record: argument contract + executor."""
    name: ToolName
    description: str
    args_model: Type[BaseModel]
    executor: ToolExecutor
    repeatable: bool = False
    terminal: bool = False
    server_only: bool = False

    def schema(self) -> Dict[str, Any]:
        """OpenAI function-tool definition built from the pydantic model."""
        params = self.args_model.model_json_schema()
        params.pop("title", None)
        return {
            "type": "function",
            "function": {
                "name": self.name.value,
                "description": self.description,
                "parameters": params,
            },
        }


class ToolRegistry:
    """Closed mapping ToolName -> ToolSpec for one stage (or the Supervisor)."""

    def __init__(self, specs: Iterable[ToolSpec] = (), excluded: Iterable[ToolName] = ()):
        self._specs: Dict[ToolName, ToolSpec] = {}
        # Known tools withheld in this deployment (e.g. cloud upload without a bucket)
        self._excluded: Set[ToolName] = set(excluded)
        for spec in specs:
            self.register(spec)

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._specs:
            raise ValueError(f"Tool already registered: {spec.name.value}")
        self._specs[spec.name] = spec
        self._excluded.discard(spec.name)

    def exclude(self, name: ToolName) -> None:
        if name not in self._specs:
            self._excluded.add(name)

    def is_excluded(self, name: Union[str, ToolName]) -> bool:
        key = name if isinstance(name, ToolName) else ToolName.lookup(name)
        return key in self._excluded

    def __contains__(self, name: object) -> bool:
        return self.get(name) is not None if isinstance(name, (str, ToolName)) else False

    def __len__(self) -> int:
        return len(self._specs)

    def __iter__(self):
        return iter(self._specs.values())

    @property
    def names(self) -> List[str]:
        return [name.value for name in self._specs]

    def get(self, name: Union[str, ToolName]) -> Optional[ToolSpec]:
        """Spec bound under ``name``, or None if it is unknown or not bound here."""
        key = name if isinstance(name, ToolName) else ToolName.lookup(name)
        if key is None:
            return None
        return self._specs.get(key)

    def subset(self, names: Iterable[ToolName]) -> "ToolRegistry":
        """New registry holding only the given tools; names not bound here are skipped."""
        names = list(names)
        return ToolRegistry(
            (self._specs[n] for n in names if n in self._specs),
            excluded=(n for n in names if n in self._excluded),
        )

    def schemas(self) -> List[Dict[str, Any]]:
        return [spec.schema() for spec in self._specs.values()]

    async def invoke(self, call: ToolCall) -> Union[Dict[str, Any], str]:
        """Validate ``call.arguments`` against the tool's model and run the executor.

        Raises KeyError for names not bound here and pydantic.ValidationError for
        bad arguments; the reasoning loop turns both into error results.
        """
        spec = self.get(call.name)
        if spec is None:
            raise KeyError(call.name)
        args = spec.args_model.model_validate(call.arguments or {})
        return await spec.executor(args)
