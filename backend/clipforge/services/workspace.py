"""
Job workspace
Output tree layout and filesystem helpers for one job:

    <output>/<job_id>/videos/<relative path>/<name>_segment_<n>_final.mp4
    <output>/<job_id>/temp/video_<index>/      (per-file scratch)
    <output>/<job_id>/status.json
"""
import asyncio
import logging
import shutil
from pathlib import Path, PurePosixPath
from typing import List, Union

from clipforge.models.processing import VideoFile
from clipforge.services.media_tool import SUBTITLE_EXTENSIONS

logger = logging.getLogger(__name__)

UPLOAD_ANCHOR = "videos"
OUTPUT_EXTENSION = ".mp4"


def _clean_parts(parts) -> List[str]:
    return [p for p in parts if p not in ("", "/", ".", "..")]


def relative_video_path(video: VideoFile) -> str:
    """
    Path of the upload relative to its "videos" folder, preserving the
    uploaded directory structure. Without that anchor the uploaded
    relative path is used, then the bare original file name.
    """
    parts = PurePosixPath(video.path.replace("\\", "/")).parts
    if UPLOAD_ANCHOR in parts:
        index = parts.index(UPLOAD_ANCHOR)
        tail = _clean_parts(parts[index + 1:])
        if tail:
            return "/".join(tail)
    if video.relative_path:
        tail = _clean_parts(PurePosixPath(video.relative_path.replace("\\", "/")).parts)
        if tail:
            return "/".join(tail)
    return PurePosixPath(video.original_name.replace("\\", "/")).name


def find_subtitle_files(subtitle_dir: Union[str, Path]) -> List[Path]:
    """Subtitle files directly inside a directory, sorted by name"""
    directory = Path(subtitle_dir)
    if not directory.is_dir():
        return []
    try:
        return sorted(
            p for p in directory.iterdir()
            if p.is_file() and p.suffix.lower() in SUBTITLE_EXTENSIONS
        )
    except OSError as e:
        logger.error(f"Error listing subtitles in {directory}: {e}")
        return []


class JobWorkspace:
    """Directories owned by a single job"""

    def __init__(self, output_root: Path, job_id: str):
        self.job_id = job_id
        self.job_dir = Path(output_root) / job_id
        self.videos_dir = self.job_dir / "videos"
        self.temp_root = self.job_dir / "temp"

    def temp_dir(self, index: int) -> Path:
        return self.temp_root / f"video_{index}"

    def output_dir_for(self, relative_path: str) -> Path:
        parent = PurePosixPath(relative_path).parent
        if str(parent) in ("", "."):
            return self.videos_dir
        return self.videos_dir.joinpath(*parent.parts)

    def segment_path(self, output_dir: Path, base_name: str, segment_index: int) -> Path:
        return output_dir / f"{base_name}_segment_{segment_index}_final{OUTPUT_EXTENSION}"

    def relative_to_videos(self, path: Path) -> str:
        return Path(path).relative_to(self.videos_dir).as_posix()

    async def ensure_dir(self, path: Path) -> None:
        await asyncio.to_thread(Path(path).mkdir, parents=True, exist_ok=True)

    async def remove_tree(self, path: Path) -> None:
        if not Path(path).exists():
            return
        try:
            await asyncio.to_thread(shutil.rmtree, path)
        except OSError as e:
            logger.warning(f"Could not remove {path}: {e}")

    async def setup(self) -> None:
        await self.ensure_dir(self.videos_dir)
        await self.ensure_dir(self.temp_root)

    async def cleanup_temp(self) -> None:
        await self.remove_tree(self.temp_root)
