"""Keyword and URL intent detection for the Supervisor's first turn.

The result is only a hint appended to the user request; the Supervisor
model still decides which stages to delegate.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional

YOUTUBE_URL_RE = re.compile(
    r"(?:https?://)?(?:www\.)?(?:youtube\.com/(?:watch\?v=|shorts/|embed/)|youtu\.be/)"
    r"([a-zA-Z0-9_-]{11})(?:[?&]\S*)?",
    re.IGNORECASE,
)
AUDIO_FILE_RE = re.compile(r"(?:^|\s)(\S+\.(?:mp3|wav|m4a|ogg|flac|aac))(?:\s|$)", re.IGNORECASE)

ANIMATION_KEYWORDS = [
    "animated", "animation", "motion", "moving", "dynamic", "animate", "movement",
    "kinetic", "live action", "motion graphics", "video clips", "moving images", "video loops",
]
MUSIC_KEYWORDS = [
    "music", "background music", "soundtrack", "bgm", "score", "musical",
    "audio track", "backing track", "instrumental", "melody",
]
SFX_KEYWORDS = ["sound effects", "sfx", "ambient sounds", "ambience", "audio atmosphere"]
BACKGROUND_REMOVAL_KEYWORDS = [
    "remove background", "transparent background", "no background",
    "cut out", "cutout", "isolated", "green screen",
]
SUBTITLE_KEYWORDS = [
    "subtitle", "caption", "closed caption", "cc", "srt", "vtt", "accessible", "accessibility",
]

STYLE_KEYWORDS = {
    "Cinematic": ["cinematic", "cinema", "film", "movie", "hollywood"],
    "Anime": ["anime", "manga", "japanese animation"],
    "Watercolor": ["watercolor", "watercolour", "water color", "aquarelle"],
    "Oil Painting": ["oil painting", "oil paint", "classical painting"],
    "Documentary": ["documentary", "docu", "journalistic", "news style"],
    "Realistic": ["realistic", "photorealistic", "lifelike"],
    "Vintage": ["vintage", "retro", "old school", "nostalgic"],
    "Modern": ["modern", "contemporary", "sleek", "minimalist"],
    "Fantasy": ["fantasy", "magical", "mythical", "enchanted"],
    "Sci-Fi": ["sci-fi", "science fiction", "futuristic", "cyberpunk"],
    "Horror": ["horror", "creepy", "scary", "gothic"],
    "Noir": ["noir", "film noir", "black and white", "detective"],
}

ASPECT_RATIO_KEYWORDS = {
    "9:16": ["vertical", "portrait", "tiktok", "reels", "shorts", "9:16"],
    "1:1": ["square", "1:1", "instagram post"],
    "16:9": ["landscape", "widescreen", "16:9"],
}


def _keyword_re(keywords: List[str], plural: bool = False) -> re.Pattern:
    alternatives = "|".join(re.escape(k).replace(r"\ ", r"\s+") for k in keywords)
    suffix = "s?" if plural else ""
    return re.compile(rf"\b({alternatives}){suffix}\b", re.IGNORECASE)


ANIMATION_RE = _keyword_re(ANIMATION_KEYWORDS)
MUSIC_RE = _keyword_re(MUSIC_KEYWORDS)
SFX_RE = _keyword_re(SFX_KEYWORDS)
BACKGROUND_REMOVAL_RE = _keyword_re(BACKGROUND_REMOVAL_KEYWORDS)
SUBTITLE_RE = _keyword_re(SUBTITLE_KEYWORDS, plural=True)


@dataclass
class IntentResult:
    youtube_url: Optional[str] = None
    audio_file: Optional[str] = None
    wants_animation: bool = False
    wants_music: bool = False
    wants_sfx: bool = False
    wants_subtitles: bool = False
    wants_background_removal: bool = False
    style: Optional[str] = None
    aspect_ratio: Optional[str] = None
    optional_tools: List[str] = field(default_factory=list)

    @property
    def needs_import(self) -> bool:
        return bool(self.youtube_url or self.audio_file)


def detect_youtube_url(text: str) -> Optional[str]:
    match = YOUTUBE_URL_RE.search(text)
    if match:
        return f"https://www.youtube.com/watch?v={match.group(1)}"
    return None


def detect_audio_file(text: str) -> Optional[str]:
    match = AUDIO_FILE_RE.search(text)
    return match.group(1) if match else None


def extract_style(text: str) -> Optional[str]:
    lowered = text.lower()
    for style, keywords in STYLE_KEYWORDS.items():
        if any(re.search(rf"\b{re.escape(k)}\b", lowered) for k in keywords):
            return style
    return None


def extract_aspect_ratio(text: str) -> Optional[str]:
    lowered = text.lower()
    for ratio, keywords in ASPECT_RATIO_KEYWORDS.items():
        if any(k in lowered for k in keywords):
            return ratio
    return None


def analyze_intent(text: str) -> IntentResult:
    result = IntentResult(
        youtube_url=detect_youtube_url(text),
        audio_file=detect_audio_file(text),
        wants_animation=bool(ANIMATION_RE.search(text)),
        wants_music=bool(MUSIC_RE.search(text)),
        wants_sfx=bool(SFX_RE.search(text)),
        wants_subtitles=bool(SUBTITLE_RE.search(text)),
        wants_background_removal=bool(BACKGROUND_REMOVAL_RE.search(text)),
        style=extract_style(text),
        aspect_ratio=extract_aspect_ratio(text),
    )
    if result.wants_sfx:
        result.optional_tools.append("plan_sfx")
    if result.wants_subtitles:
        result.optional_tools.append("generate_subtitles")
    if result.wants_background_removal:
        result.optional_tools.append("remove_background")
    return result


def generate_intent_hint(intent: IntentResult) -> str:
    """Human-readable hint lines for the Supervisor, or '' when nothing was detected."""
    lines = []
    if intent.youtube_url:
        lines.append(f"- YouTube URL detected: {intent.youtube_url} → delegate to import first")
    elif intent.audio_file:
        lines.append(f"- Audio file detected: {intent.audio_file} → delegate to import first")
    if intent.wants_animation:
        lines.append("- Animation requested")
    if intent.wants_music:
        lines.append("- Music requested (not available in video production mode)")
    if intent.wants_sfx:
        lines.append("- Sound effects requested")
    if intent.style:
        lines.append(f"- Visual style: {intent.style}")
    if intent.aspect_ratio:
        lines.append(f"- Aspect ratio: {intent.aspect_ratio}")
    if intent.wants_subtitles:
        lines.append("- Subtitles requested")
    if intent.wants_background_removal:
        lines.append("- Background removal requested")
    return "\n".join(lines)
