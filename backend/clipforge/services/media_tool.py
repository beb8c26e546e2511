"""
Media tool adapter
Drives the external ffmpeg/ffprobe binaries, one subprocess per operation
"""
import asyncio
import functools
import json
import logging
import shlex
import shutil
import subprocess
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Type, Union

from clipforge.core.config import settings
from clipforge.models.subtitles import ResolvedStyle
from clipforge.services.errors import (
    AudioNormalizeError,
    ConcatError,
    CutError,
    ExtractAudioError,
    MediaToolError,
    MergeAudioError,
    MuxError,
    NormalizeError,
    OptimizeError,
    ProbeError,
    ResizeError,
    SubtitleBurnError,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

TEXT_SUBTITLE_EXTENSIONS = (".srt", ".vtt")
SCRIPTED_SUBTITLE_EXTENSIONS = (".ass", ".ssa")
SUBTITLE_EXTENSIONS = TEXT_SUBTITLE_EXTENSIONS + SCRIPTED_SUBTITLE_EXTENSIONS

_EPSILON = 1e-6
_STDERR_TAIL_LINES = 5


@dataclass
class ToolResult:
    """Exit status and captured output of one tool invocation"""
    returncode: int
    stdout: str
    stderr: str


def _stderr_tail(stderr: str) -> str:
    lines = [line for line in (stderr or "").splitlines() if line.strip()]
    return "\n".join(lines[-_STDERR_TAIL_LINES:])


def _escape_filter_path(path: PathLike) -> str:
    """
    Quote a path for use as a filter argument. A quote cannot be escaped
    inside quotes, so it closes the quoted run, is escaped and reopens it.
    """
    text = str(path).replace("\\", "/").replace(":", "\\:").replace("'", "'\\''")
    return f"'{text}'"


def _fmt_seconds(value: float) -> str:
    return f"{value:.3f}"


class MediaToolAdapter:
    """
    Request/response wrapper around the media engine.
    Every public coroutine spawns at most one tool invocation per output
    and raises a stage-specific MediaToolError on nonzero exit.
    """

    def __init__(
        self,
        ffmpeg_path: Optional[str] = None,
        ffprobe_path: Optional[str] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self._ffmpeg_path = ffmpeg_path or settings.FFMPEG_PATH
        self._ffprobe_path = ffprobe_path or settings.FFPROBE_PATH
        self._executor = executor or ThreadPoolExecutor(
            max_workers=settings.MEDIA_TOOL_WORKERS,
            thread_name_prefix="media_tool"
        )
        self._cut_offset = settings.CUT_START_OFFSET
        self._keyframe_interval = settings.CUT_KEYFRAME_INTERVAL
        self._preset = settings.VIDEO_PRESET
        self._crf = settings.VIDEO_CRF
        self._width = settings.TARGET_WIDTH
        self._height = settings.TARGET_HEIGHT
        self._fps = settings.TARGET_FPS
        self._sample_rate = settings.TARGET_AUDIO_SAMPLE_RATE

    # ------------------------------------------------------------------
    # subprocess seam
    # ------------------------------------------------------------------

    async def _run(self, cmd: List[str]) -> ToolResult:
        """Run one tool invocation in the executor and wait for it"""
        logger.debug(f"$ {shlex.join(cmd)}")
        loop = asyncio.get_running_loop()
        try:
            completed = await loop.run_in_executor(
                self._executor,
                functools.partial(
                    subprocess.run,
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    check=False,
                )
            )
        except OSError as e:
            # binary missing or not executable
            return ToolResult(returncode=127, stdout="", stderr=str(e))
        return ToolResult(completed.returncode, completed.stdout or "", completed.stderr or "")

    async def _ffmpeg(
        self,
        args: Sequence[str],
        error_cls: Type[MediaToolError],
        message: str,
        output: Optional[PathLike] = None,
    ) -> ToolResult:
        cmd = [self._ffmpeg_path, "-y", "-hide_banner", "-loglevel", "error", *map(str, args)]
        result = await self._run(cmd)
        if result.returncode != 0:
            if output is not None:
                Path(output).unlink(missing_ok=True)
            tail = _stderr_tail(result.stderr)
            logger.error(f"{message} (exit {result.returncode}): {tail}")
            raise error_cls(f"{message}: {tail}" if tail else message, result.returncode, result.stderr)
        return result

    def _x264_args(self) -> List[str]:
        return [
            "-c:v", "libx264",
            "-preset", self._preset,
            "-crf", str(self._crf),
            "-pix_fmt", "yuv420p",
        ]

    # ------------------------------------------------------------------
    # metadata
    # ------------------------------------------------------------------

    async def probe(self, path: PathLike) -> Dict:
        """Return ffprobe's JSON description (format + streams) of a file"""
        cmd = [
            self._ffprobe_path,
            "-v", "error",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(path),
        ]
        result = await self._run(cmd)
        if result.returncode != 0:
            tail = _stderr_tail(result.stderr)
            raise ProbeError(f"Cannot probe {path}: {tail or 'unreadable media'}",
                             result.returncode, result.stderr)
        try:
            metadata = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise ProbeError(f"Cannot parse probe output for {path}: {e}", result.returncode, result.stderr)
        if not isinstance(metadata, dict):
            raise ProbeError(f"Unexpected probe output for {path}")
        return metadata

    @staticmethod
    def _as_seconds(value) -> float:
        try:
            seconds = float(value)
        except (TypeError, ValueError):
            return 0.0
        return seconds if seconds > 0 else 0.0

    async def duration(self, path: PathLike) -> float:
        """Container duration in seconds, 0 when the field is absent"""
        metadata = await self.probe(path)
        return self._as_seconds((metadata.get("format") or {}).get("duration"))

    async def audio_track_duration(self, path: PathLike) -> float:
        """
        Duration of the first audio stream, falling back to the container
        duration. Never raises: a file without audio yields 0.
        """
        try:
            metadata = await self.probe(path)
        except ProbeError as e:
            logger.warning(f"Audio duration unavailable for {path}: {e}")
            return 0.0

        for stream in metadata.get("streams") or []:
            if stream.get("codec_type") == "audio":
                seconds = self._as_seconds(stream.get("duration"))
                if seconds:
                    return seconds
                break
        return self._as_seconds((metadata.get("format") or {}).get("duration"))

    async def has_audio(self, path: PathLike) -> bool:
        try:
            metadata = await self.probe(path)
        except ProbeError:
            return False
        return any(s.get("codec_type") == "audio" for s in metadata.get("streams") or [])

    # ------------------------------------------------------------------
    # pipeline stages
    # ------------------------------------------------------------------

    def plan_segments(self, total_duration: float, segment_seconds: float) -> List[tuple]:
        """
        (start, length) pairs for cutting a video of total_duration.
        Each cut starts a small offset into its slot and is shortened by the
        same amount so consecutive segments do not drift.
        """
        if segment_seconds <= 0:
            raise ValueError("Segment duration must be positive")
        count = int(total_duration // segment_seconds)
        offset = self._cut_offset if self._cut_offset < segment_seconds else 0.0
        length = segment_seconds - offset

        plan = []
        for i in range(count):
            start = i * segment_seconds + offset
            if start + length > total_duration + _EPSILON:
                logger.debug(f"Segment {i} would end past {total_duration}s, skipped")
                continue
            plan.append((i, start, length))
        return plan

    async def cut_by_duration(self, input_path: PathLike, segment_seconds: float,
                              output_dir: PathLike) -> List[str]:
        """
        Cut a video into consecutive fixed-length segments.
        Returns segment paths in order; an empty list when the video is
        shorter than one segment.
        """
        total = await self.duration(input_path)
        plan = self.plan_segments(total, segment_seconds)
        if not plan:
            logger.info(
                f"{input_path} lasts {total:.2f}s, shorter than segment duration {segment_seconds}s; "
                f"no segments produced"
            )
            return []

        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        segments: List[str] = []
        for index, start, length in plan:
            out = output_dir / f"segment_{index}.mp4"
            await self._cut_segment(input_path, start, length, out)
            segments.append(str(out))

        logger.info(f"Cut {input_path} into {len(segments)} segments of {segment_seconds}s")
        return segments

    async def _cut_segment(self, input_path: PathLike, start: float, length: float, out: Path) -> None:
        gop = str(self._keyframe_interval)
        await self._ffmpeg(
            [
                "-ss", _fmt_seconds(start),
                "-i", input_path,
                "-t", _fmt_seconds(length),
                "-map", "0:v:0",
                "-map", "0:a:0?",
                *self._x264_args(),
                "-g", gop,
                "-keyint_min", gop,
                "-sc_threshold", "0",
                "-c:a", "aac",
                "-b:a", "128k",
                "-avoid_negative_ts", "make_zero",
                "-movflags", "+faststart",
                out,
            ],
            CutError,
            f"Failed to cut segment at {start:.3f}s from {input_path}",
            output=out,
        )

    async def add_audio_track(self, video_path: PathLike, audio_path: PathLike, out_path: PathLike) -> None:
        """Keep the video stream, replace the audio; output ends with the shorter input"""
        await self._ffmpeg(
            [
                "-i", video_path,
                "-i", audio_path,
                "-map", "0:v:0",
                "-map", "1:a:0",
                "-c:v", "copy",
                "-c:a", "aac",
                "-b:a", "192k",
                "-shortest",
                "-movflags", "+faststart",
                out_path,
            ],
            MuxError,
            f"Failed to add audio {audio_path} to {video_path}",
            output=out_path,
        )

    async def burn_subtitles(self, video_path: PathLike, subtitle_path: PathLike, out_path: PathLike,
                             style: ResolvedStyle) -> bool:
        """
        Hard-code subtitles into the video.
        Returns False when burning failed and the source was copied unchanged.
        """
        ext = Path(subtitle_path).suffix.lower()
        if ext in TEXT_SUBTITLE_EXTENSIONS:
            vf = f"subtitles={_escape_filter_path(subtitle_path)}:force_style='{style.to_force_style()}'"
        elif ext in SCRIPTED_SUBTITLE_EXTENSIONS:
            vf = f"ass={_escape_filter_path(subtitle_path)}"
        else:
            logger.warning(f"Unsupported subtitle format {ext}, keeping {video_path} without subtitles")
            await self.copy_file(video_path, out_path)
            return False

        try:
            await self._ffmpeg(
                [
                    "-i", video_path,
                    "-vf", vf,
                    *self._x264_args(),
                    "-c:a", "copy",
                    "-movflags", "+faststart",
                    out_path,
                ],
                SubtitleBurnError,
                f"Failed to burn {subtitle_path} into {video_path}",
                output=out_path,
            )
        except SubtitleBurnError as e:
            logger.warning(f"Subtitle burn failed, using video without subtitles: {e}")
            await self.copy_file(video_path, out_path)
            return False
        return True

    async def normalize(self, video_path: PathLike, out_path: PathLike) -> None:
        """
        Re-encode to the canonical portrait format (letterboxed, fixed fps,
        fixed sample rate, stereo) so outputs can be stream-copy concatenated.
        """
        width, height = self._width, self._height
        has_audio = await self.has_audio(video_path)
        vf = (
            f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
            f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2:color=black,"
            f"setsar=1,fps={self._fps}"
        )
        args: List[str] = ["-i", str(video_path)]
        if not has_audio:
            args += ["-f", "lavfi", "-i", f"anullsrc=channel_layout=stereo:sample_rate={self._sample_rate}"]
        args += [
            "-map", "0:v:0",
            "-map", "0:a:0" if has_audio else "1:a:0",
            "-vf", vf,
            "-r", str(self._fps),
            *self._x264_args(),
            "-g", str(self._keyframe_interval),
            "-c:a", "aac",
            "-ar", str(self._sample_rate),
            "-ac", "2",
            "-b:a", "128k",
        ]
        if not has_audio:
            args.append("-shortest")
        args += ["-movflags", "+faststart", str(out_path)]
        await self._ffmpeg(args, NormalizeError, f"Failed to normalize {video_path}", output=out_path)

    async def concatenate(self, paths: Sequence[PathLike], out_path: PathLike) -> None:
        """
        Join videos end to end.
        A single input is copied. Several inputs are normalized, listed in a
        manifest next to the output and joined with the concat demuxer; the
        manifest and normalized copies are removed whatever the outcome.
        """
        if not paths:
            raise ConcatError("No videos to concatenate")

        out_path = Path(out_path)
        out_path.parent.mkdir(parents=True, exist_ok=True)

        if len(paths) == 1:
            await self.copy_file(paths[0], out_path)
            return

        token = uuid.uuid4().hex[:8]
        work_dir = out_path.parent
        manifest = work_dir / f".concat_{token}.txt"
        normalized: List[Path] = []
        try:
            for i, source in enumerate(paths):
                target = work_dir / f".concat_{token}_{i}.mp4"
                normalized.append(target)
                try:
                    await self.normalize(source, target)
                except NormalizeError as e:
                    raise ConcatError(
                        f"Cannot read concat input {source}: {e}",
                        e.returncode,
                        e.stderr,
                        failed_inputs=[str(source)],
                    ) from e

            # names relative to the manifest's directory, no escaping needed
            manifest.write_text(
                "".join(f"file '{target.name}'\n" for target in normalized),
                encoding="utf-8"
            )

            cmd = [
                self._ffmpeg_path, "-y", "-hide_banner", "-loglevel", "error",
                "-f", "concat",
                "-safe", "0",
                "-i", str(manifest),
                "-c", "copy",
                "-movflags", "+faststart",
                str(out_path),
            ]
            result = await self._run(cmd)
            if result.returncode != 0:
                out_path.unlink(missing_ok=True)
                failed = [
                    str(source) for source, target in zip(paths, normalized)
                    if target.name in result.stderr
                ]
                tail = _stderr_tail(result.stderr)
                logger.error(f"Concatenation into {out_path} failed (exit {result.returncode}): {tail}")
                detail = f" (unreadable: {', '.join(failed)})" if failed else ""
                raise ConcatError(
                    f"Failed to concatenate {len(paths)} videos{detail}: {tail}",
                    result.returncode,
                    result.stderr,
                    failed_inputs=failed,
                )
            logger.info(f"Concatenated {len(paths)} videos into {out_path}")
        finally:
            manifest.unlink(missing_ok=True)
            for target in normalized:
                target.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # auxiliary transforms
    # ------------------------------------------------------------------

    async def resize(self, input_path: PathLike, out_path: PathLike, width: int, height: int) -> None:
        await self._ffmpeg(
            [
                "-i", input_path,
                "-vf", f"scale={width}:{height},setsar=1",
                *self._x264_args(),
                "-c:a", "aac",
                "-movflags", "+faststart",
                out_path,
            ],
            ResizeError,
            f"Failed to resize {input_path} to {width}x{height}",
            output=out_path,
        )

    async def extract_audio(self, video_path: PathLike, out_path: PathLike) -> None:
        codec = {".wav": "pcm_s16le", ".mp3": "libmp3lame"}.get(Path(out_path).suffix.lower(), "aac")
        await self._ffmpeg(
            ["-i", video_path, "-vn", "-c:a", codec, "-ar", str(self._sample_rate), out_path],
            ExtractAudioError,
            f"Failed to extract audio from {video_path}",
            output=out_path,
        )

    async def merge_audio_with_video(self, video_path: PathLike, audio_path: PathLike, out_path: PathLike,
                                     audio_volume: float = 1.0) -> None:
        """Mix an extra audio track under the video's own audio"""
        if not await self.has_audio(video_path):
            args = [
                "-i", video_path,
                "-i", audio_path,
                "-filter_complex", f"[1:a]volume={audio_volume}[aout]",
                "-map", "0:v:0",
                "-map", "[aout]",
                "-shortest",
            ]
        else:
            args = [
                "-i", video_path,
                "-i", audio_path,
                "-filter_complex",
                f"[1:a]volume={audio_volume}[a1];[0:a][a1]amix=inputs=2:duration=first:dropout_transition=0[aout]",
                "-map", "0:v:0",
                "-map", "[aout]",
            ]
        await self._ffmpeg(
            [*args, "-c:v", "copy", "-c:a", "aac", "-b:a", "192k", "-movflags", "+faststart", out_path],
            MergeAudioError,
            f"Failed to merge {audio_path} into {video_path}",
            output=out_path,
        )

    async def normalize_audio(self, input_path: PathLike, out_path: PathLike) -> None:
        await self._ffmpeg(
            [
                "-i", input_path,
                "-af", "loudnorm=I=-16:TP=-1.5:LRA=11",
                "-c:v", "copy",
                "-c:a", "aac",
                "-ar", str(self._sample_rate),
                out_path,
            ],
            AudioNormalizeError,
            f"Failed to normalize loudness of {input_path}",
            output=out_path,
        )

    async def optimize(self, input_path: PathLike, out_path: PathLike) -> None:
        """Smaller web-friendly encode"""
        await self._ffmpeg(
            [
                "-i", input_path,
                "-c:v", "libx264",
                "-preset", "slow",
                "-crf", "28",
                "-pix_fmt", "yuv420p",
                "-c:a", "aac",
                "-b:a", "128k",
                "-movflags", "+faststart",
                out_path,
            ],
            OptimizeError,
            f"Failed to optimize {input_path}",
            output=out_path,
        )

    # ------------------------------------------------------------------
    # filesystem helpers
    # ------------------------------------------------------------------

    async def copy_file(self, src: PathLike, dst: PathLike) -> None:
        loop = asyncio.get_running_loop()
        Path(dst).parent.mkdir(parents=True, exist_ok=True)
        await loop.run_in_executor(self._executor, shutil.copyfile, str(src), str(dst))

    def shutdown(self):
        self._executor.shutdown(wait=False)
