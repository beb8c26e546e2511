"""
Subtitle style catalog
Presets for burned-in subtitles and their resolution into renderer parameters
"""
import logging
from typing import Dict, Iterable, List, Optional

from clipforge.core.config import settings
from clipforge.models.subtitles import (
    ResolvedStyle,
    SubtitlePosition,
    SubtitleSettings,
    SubtitleStyle,
)
from clipforge.services.errors import UnknownStyleError

logger = logging.getLogger(__name__)

DEFAULT_STYLE_ID = "default"

# ASS alignment codes (numpad layout, horizontally centered)
ALIGN_TOP = 8
ALIGN_MIDDLE = 5
ALIGN_BOTTOM = 2

# position -> (alignment, margin factor, minimum margin); matches the
# selector preview, where the further a position sits from its edge the
# larger the share of the configured margin it keeps
POSITION_LAYOUT = {
    SubtitlePosition.TOP: (ALIGN_TOP, 0.2, 2),
    SubtitlePosition.TOP_CENTER: (ALIGN_TOP, 0.4, 4),
    SubtitlePosition.CENTER_UP: (ALIGN_TOP, 0.6, 6),
    SubtitlePosition.CENTER: (ALIGN_MIDDLE, 0.0, 0),
    SubtitlePosition.CENTER_DOWN: (ALIGN_BOTTOM, 0.6, 6),
    SubtitlePosition.BOTTOM_CENTER: (ALIGN_BOTTOM, 0.4, 4),
    SubtitlePosition.BOTTOM: (ALIGN_BOTTOM, 0.2, 2),
}

BUILTIN_STYLES: List[SubtitleStyle] = [
    SubtitleStyle(
        id=DEFAULT_STYLE_ID,
        name="Default",
        description="White text with a thin black outline near the bottom edge",
        font_size=20,
        position=SubtitlePosition.BOTTOM,
        margin_vertical=50,
    ),
    SubtitleStyle(
        id="bold-bottom",
        name="Bold bottom",
        description="Large outlined captions raised above the bottom edge",
        font_size=26,
        position=SubtitlePosition.BOTTOM_CENTER,
        margin_vertical=40,
        outline_width=3,
    ),
    SubtitleStyle(
        id="top-title",
        name="Top title",
        description="Title-style captions at the top of the frame",
        font_size=22,
        position=SubtitlePosition.TOP,
        margin_vertical=30,
    ),
    SubtitleStyle(
        id="center-impact",
        name="Center impact",
        description="Yellow captions in the middle of the frame",
        font_size=28,
        position=SubtitlePosition.CENTER,
        margin_vertical=0,
        color="#ffd400",
        outline_width=3,
    ),
    SubtitleStyle(
        id="lower-third",
        name="Lower third",
        description="Captions just below the middle, clear of on-screen UI",
        font_size=20,
        position=SubtitlePosition.CENTER_DOWN,
        margin_vertical=30,
        margin_horizontal=20,
    ),
    SubtitleStyle(
        id="minimal",
        name="Minimal",
        description="Small captions without outline",
        font_size=16,
        position=SubtitlePosition.BOTTOM,
        margin_vertical=20,
        outline=False,
        outline_width=0,
    ),
]


def hex_to_ass_colour(color: str) -> str:
    """#RRGGBB -> &H00BBGGRR"""
    value = color.lstrip("#")
    if len(value) != 6:
        raise ValueError(f"Invalid hex color: {color}")
    red, green, blue = value[0:2], value[2:4], value[4:6]
    return f"&H00{blue}{green}{red}".upper()


class SubtitleCatalog:
    """Read-only collection of subtitle presets"""

    def __init__(self, styles: Optional[Iterable[SubtitleStyle]] = None, font_name: Optional[str] = None):
        self._styles: Dict[str, SubtitleStyle] = {}
        for style in styles if styles is not None else BUILTIN_STYLES:
            self._styles[style.id] = style
        if DEFAULT_STYLE_ID not in self._styles:
            self._styles[DEFAULT_STYLE_ID] = BUILTIN_STYLES[0]
        self._font_name = font_name or settings.SUBTITLE_FONT_NAME

    def list_styles(self) -> List[SubtitleStyle]:
        return list(self._styles.values())

    def get(self, style_id: str) -> SubtitleStyle:
        try:
            return self._styles[style_id]
        except KeyError:
            raise UnknownStyleError(f"Unknown subtitle style: {style_id}") from None

    def resolve_style(self, style_id: str, overrides: Optional[SubtitleSettings] = None) -> ResolvedStyle:
        """
        Merge overrides over the preset field by field and translate the
        result into renderer terms.

        Raises UnknownStyleError for an ID missing from the catalog.
        """
        preset = self.get(style_id)
        merged = preset.model_dump()
        if overrides is not None:
            for field, value in overrides.model_dump(exclude_none=True).items():
                merged[field] = value
        style = SubtitleStyle(**merged)

        alignment, factor, minimum = POSITION_LAYOUT[style.position]
        return ResolvedStyle(
            style_id=preset.id,
            font_name=self._font_name,
            font_size=style.font_size,
            primary_colour=hex_to_ass_colour(style.color),
            alignment=alignment,
            margin_vertical=max(int(round(style.margin_vertical * factor)), minimum),
            margin_horizontal=style.margin_horizontal,
            outline=style.outline,
            outline_width=style.outline_width if style.outline else 0,
        )

    def resolve_or_default(self, style_id: Optional[str], overrides: Optional[SubtitleSettings] = None) -> ResolvedStyle:
        """resolve_style, falling back to the default preset for unknown IDs"""
        try:
            return self.resolve_style(style_id or DEFAULT_STYLE_ID, overrides)
        except UnknownStyleError as e:
            logger.warning(f"{e}; using '{DEFAULT_STYLE_ID}' style")
            return self.resolve_style(DEFAULT_STYLE_ID, overrides)


subtitle_catalog = SubtitleCatalog()
