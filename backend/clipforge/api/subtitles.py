"""
Subtitle style endpoints
"""
from fastapi import APIRouter
from typing import List

from clipforge.models.subtitles import SubtitleStyle
from clipforge.services.subtitle_catalog import subtitle_catalog

router = APIRouter()


@router.get("/subtitle-styles", response_model=List[SubtitleStyle])
async def list_subtitle_styles():
    """
    List subtitle presets
    """
    return subtitle_catalog.list_styles()
