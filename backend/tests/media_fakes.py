"""
Scripted stand-in for the ffmpeg/ffprobe binaries
Replaces MediaToolAdapter._run so adapter logic runs without a media engine
"""
import json
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from clipforge.services.media_tool import MediaToolAdapter, ToolResult

DEFAULT_PROBE_DURATION = 12.0

FailRule = Callable[[List[str]], Union[bool, str, None]]


class ScriptedMediaTool(MediaToolAdapter):
    """
    ffprobe answers from `durations` (or DEFAULT_PROBE_DURATION for files
    that exist); ffmpeg writes a small file at the output path (last arg).
    `fail_when` may return True or a stderr string to fail a command;
    the output is written first so partial-file cleanup is exercised.
    """

    def __init__(
        self,
        durations: Optional[Dict] = None,
        audio_durations: Optional[Dict] = None,
        fail_when: Optional[FailRule] = None,
        on_command: Optional[Callable[[List[str]], None]] = None,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
    ):
        super().__init__(ffmpeg_path=ffmpeg_path, ffprobe_path=ffprobe_path)
        self.durations = {str(k): v for k, v in (durations or {}).items()}
        self.audio_durations = {str(k): v for k, v in (audio_durations or {}).items()}
        self.fail_when = fail_when
        self.on_command = on_command
        self.commands: List[List[str]] = []
        self.manifests: List[str] = []

    def ffmpeg_commands(self) -> List[List[str]]:
        return [c for c in self.commands if c[0] == self._ffmpeg_path]

    def commands_with(self, token: str) -> List[List[str]]:
        return [c for c in self.commands if any(token in part for part in c)]

    def concat_commands(self) -> List[List[str]]:
        return [c for c in self.commands if "concat" in c]

    async def _run(self, cmd: List[str]) -> ToolResult:
        cmd = [str(part) for part in cmd]
        self.commands.append(cmd)
        if self.on_command is not None:
            self.on_command(cmd)

        if cmd[0] == self._ffprobe_path:
            failure = self.fail_when(cmd) if self.fail_when else None
            if failure:
                return ToolResult(1, "", failure if isinstance(failure, str) else "probe failed")
            return self._probe(cmd[-1])

        if "concat" in cmd:
            manifest = Path(cmd[cmd.index("-i") + 1])
            self.manifests.append(manifest.read_text(encoding="utf-8"))

        output = Path(cmd[-1])
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(f"rendered:{output.name}".encode())

        failure = self.fail_when(cmd) if self.fail_when else None
        if failure:
            stderr = failure if isinstance(failure, str) else f"{output}: simulated failure"
            return ToolResult(1, "", stderr)
        return ToolResult(0, "", "")

    def _probe(self, path: str) -> ToolResult:
        if path in self.durations:
            duration = self.durations[path]
        elif Path(path).exists():
            duration = DEFAULT_PROBE_DURATION
        else:
            return ToolResult(1, "", f"{path}: No such file or directory")

        streams = [{"codec_type": "video", "index": 0}]
        if path in self.audio_durations:
            audio = {"codec_type": "audio", "index": 1}
            if self.audio_durations[path] is not None:
                audio["duration"] = str(self.audio_durations[path])
            streams.append(audio)
        fmt = {"filename": path}
        if duration is not None:
            fmt["duration"] = str(duration)
        return ToolResult(0, json.dumps({"format": fmt, "streams": streams}), "")
