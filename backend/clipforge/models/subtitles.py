"""
Subtitle style models
"""
import re
from pydantic import BaseModel, Field, field_validator
from typing import Optional
from enum import Enum


HEX_COLOR = re.compile(r"^#?[0-9a-fA-F]{6}$")


class SubtitlePosition(str, Enum):
    """Vertical placement, top to bottom"""
    TOP = "top"
    TOP_CENTER = "top-center"
    CENTER_UP = "center-up"
    CENTER = "center"
    CENTER_DOWN = "center-down"
    BOTTOM_CENTER = "bottom-center"
    BOTTOM = "bottom"


def _check_color(v):
    if v is not None and not HEX_COLOR.match(v):
        raise ValueError("Color must be a hex RGB value such as #ffcc00")
    return v


class SubtitleStyle(BaseModel):
    """Named subtitle preset"""
    id: str
    name: str
    description: str = ""
    font_size: int = Field(20, gt=0)
    position: SubtitlePosition = SubtitlePosition.BOTTOM
    margin_vertical: int = Field(50, ge=0)
    margin_horizontal: int = Field(0, ge=0)
    color: str = "#ffffff"
    outline: bool = True
    outline_width: int = Field(2, ge=0)

    model_config = {"frozen": True}

    @field_validator('color')
    @classmethod
    def validate_color(cls, v):
        return _check_color(v)


class SubtitleSettings(BaseModel):
    """Caller overrides; None means "keep the preset value" """
    font_size: Optional[int] = Field(None, gt=0)
    position: Optional[SubtitlePosition] = None
    margin_vertical: Optional[int] = Field(None, ge=0)
    margin_horizontal: Optional[int] = Field(None, ge=0)
    color: Optional[str] = None
    outline: Optional[bool] = None
    outline_width: Optional[int] = Field(None, ge=0)

    model_config = {"frozen": True}

    @field_validator('color')
    @classmethod
    def validate_color(cls, v):
        return _check_color(v)


class ResolvedStyle(BaseModel):
    """Preset merged with overrides, expressed in the renderer's terms"""
    style_id: str
    font_name: str = "Arial"
    font_size: int
    primary_colour: str  # &H00BBGGRR
    outline_colour: str = "&H00000000"
    alignment: int  # numpad layout: 8 top, 5 middle, 2 bottom
    margin_vertical: int
    margin_horizontal: int = 0
    outline: bool
    outline_width: int

    model_config = {"frozen": True}

    def to_force_style(self) -> str:
        """Render as an ASS force_style override string"""
        parts = [
            f"FontName={self.font_name}",
            f"FontSize={self.font_size}",
            f"PrimaryColour={self.primary_colour}",
            f"OutlineColour={self.outline_colour}",
            f"Alignment={self.alignment}",
            f"MarginV={self.margin_vertical}",
        ]
        if self.margin_horizontal:
            parts.append(f"MarginL={self.margin_horizontal}")
            parts.append(f"MarginR={self.margin_horizontal}")
        if self.outline:
            parts.append("BorderStyle=1")
            parts.append(f"Outline={self.outline_width}")
        else:
            parts.append("Outline=0")
        return ",".join(parts)
