"""
Tests for the media tool adapter
The media engine is replaced by a scripted fake, so these check command
construction, segment planning, fallbacks and temporary-file cleanup
"""
import asyncio
import shutil
import tempfile
from pathlib import Path

import pytest

from clipforge.models.subtitles import ResolvedStyle
from clipforge.services.errors import (
    AudioNormalizeError,
    ConcatError,
    CutError,
    ExtractAudioError,
    MuxError,
    OptimizeError,
    ProbeError,
    ResizeError,
)
from clipforge.services.media_tool import MediaToolAdapter, _escape_filter_path
from media_fakes import ScriptedMediaTool


def _style() -> ResolvedStyle:
    return ResolvedStyle(
        style_id="default",
        font_size=20,
        primary_colour="&H00FFFFFF",
        alignment=2,
        margin_vertical=50,
        outline=True,
        outline_width=2,
    )


class TestSegmentPlanning:
    """Test how many segments a video yields"""

    def setup_method(self):
        self.adapter = MediaToolAdapter()

    @pytest.mark.parametrize("total,segment,expected", [
        (65, 30, 2),
        (10, 30, 0),
        (200, 30, 6),
        (60, 30, 2),
        (29.99, 30, 0),
        (90.5, 15, 6),
    ])
    def test_segment_count_is_floor_of_ratio(self, total, segment, expected):
        """Test segment count equals floor(total / segment)"""
        plan = self.adapter.plan_segments(total, segment)
        assert len(plan) == expected

    def test_segments_start_after_offset_and_do_not_drift(self):
        """Test each cut starts slightly into its slot and ends on the slot boundary"""
        plan = self.adapter.plan_segments(65, 30)
        offset = self.adapter._cut_offset

        for index, start, length in plan:
            assert start == pytest.approx(index * 30 + offset)
            assert start + length == pytest.approx((index + 1) * 30)
            assert start + length <= 65

    def test_non_positive_segment_duration_rejected(self):
        with pytest.raises(ValueError):
            self.adapter.plan_segments(60, 0)


class TestCutByDuration:
    """Test cutting through the scripted engine"""

    def setup_method(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.source = self.test_dir / "source.mp4"
        self.out_dir = self.test_dir / "segments"

    def teardown_method(self):
        if self.test_dir.exists():
            shutil.rmtree(self.test_dir)

    def test_cut_writes_ordered_segments(self):
        tool = ScriptedMediaTool(durations={self.source: 65})

        segments = asyncio.run(tool.cut_by_duration(self.source, 30, self.out_dir))

        assert segments == [str(self.out_dir / "segment_0.mp4"), str(self.out_dir / "segment_1.mp4")]
        assert all(Path(s).exists() for s in segments)

    def test_cut_forces_keyframes_and_pixel_format(self):
        tool = ScriptedMediaTool(durations={self.source: 31})

        asyncio.run(tool.cut_by_duration(self.source, 30, self.out_dir))

        cut = tool.ffmpeg_commands()[0]
        assert cut[cut.index("-ss") + 1] == "0.100"
        assert cut[cut.index("-t") + 1] == "29.900"
        assert cut[cut.index("-g") + 1] == "30"
        assert cut[cut.index("-pix_fmt") + 1] == "yuv420p"
        assert "-sc_threshold" in cut

    def test_short_video_yields_no_segments(self):
        """Test video shorter than one segment is not an error"""
        tool = ScriptedMediaTool(durations={self.source: 10})

        segments = asyncio.run(tool.cut_by_duration(self.source, 30, self.out_dir))

        assert segments == []
        assert tool.ffmpeg_commands() == []

    def test_missing_duration_counts_as_zero(self):
        tool = ScriptedMediaTool(durations={self.source: None})

        assert asyncio.run(tool.duration(self.source)) == 0
        assert asyncio.run(tool.cut_by_duration(self.source, 30, self.out_dir)) == []

    def test_cut_failure_raises_and_removes_partial_output(self):
        tool = ScriptedMediaTool(
            durations={self.source: 65},
            fail_when=lambda cmd: cmd[0] == "ffmpeg" and cmd[-1].endswith("segment_1.mp4"),
        )

        with pytest.raises(CutError) as exc_info:
            asyncio.run(tool.cut_by_duration(self.source, 30, self.out_dir))

        assert exc_info.value.returncode == 1
        assert (self.out_dir / "segment_0.mp4").exists()
        assert not (self.out_dir / "segment_1.mp4").exists()

    def test_unreadable_file_raises_probe_error(self):
        tool = ScriptedMediaTool()

        with pytest.raises(ProbeError):
            asyncio.run(tool.cut_by_duration(self.test_dir / "missing.mp4", 30, self.out_dir))


class TestAudioDuration:
    """Test audio duration fallbacks"""

    def setup_method(self):
        self.path = "/media/track.mp3"

    def test_prefers_audio_stream_duration(self):
        tool = ScriptedMediaTool(durations={self.path: 40}, audio_durations={self.path: 38.5})
        assert asyncio.run(tool.audio_track_duration(self.path)) == 38.5

    def test_falls_back_to_format_duration(self):
        tool = ScriptedMediaTool(durations={self.path: 40}, audio_durations={self.path: None})
        assert asyncio.run(tool.audio_track_duration(self.path)) == 40

    def test_no_audio_and_no_duration_is_zero(self):
        tool = ScriptedMediaTool(durations={self.path: None})
        assert asyncio.run(tool.audio_track_duration(self.path)) == 0

    def test_unreadable_file_is_zero_not_error(self):
        tool = ScriptedMediaTool()
        assert asyncio.run(tool.audio_track_duration(self.path)) == 0


class TestStages:
    """Test mux, subtitle and concat stages"""

    def setup_method(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.video = self.test_dir / "clip.mp4"
        self.video.write_bytes(b"original clip bytes")
        self.other = self.test_dir / "trailer.mp4"
        self.other.write_bytes(b"trailer bytes")
        self.out = self.test_dir / "out" / "final.mp4"

    def teardown_method(self):
        if self.test_dir.exists():
            shutil.rmtree(self.test_dir)

    def _leftovers(self):
        return [p.name for p in self.out.parent.iterdir() if p.name.startswith(".concat_")]

    def test_add_audio_track_uses_shortest(self):
        tool = ScriptedMediaTool()
        audio = self.test_dir / "dub.mp3"

        asyncio.run(tool.add_audio_track(self.video, audio, self.out))

        cmd = tool.ffmpeg_commands()[0]
        assert "-shortest" in cmd
        assert cmd[cmd.index("-c:v") + 1] == "copy"
        assert ["-map", "1:a:0"] == cmd[cmd.index("1:a:0") - 1:cmd.index("1:a:0") + 1]

    def test_add_audio_track_failure_raises_mux_error(self):
        tool = ScriptedMediaTool(fail_when=lambda cmd: cmd[0] == "ffmpeg")

        with pytest.raises(MuxError):
            asyncio.run(tool.add_audio_track(self.video, self.test_dir / "dub.mp3", self.out))
        assert not self.out.exists()

    def test_burn_text_subtitles_with_style(self):
        tool = ScriptedMediaTool()
        subtitle = self.test_dir / "lines.srt"

        burned = asyncio.run(tool.burn_subtitles(self.video, subtitle, self.out, _style()))

        assert burned is True
        vf = tool.ffmpeg_commands()[0][tool.ffmpeg_commands()[0].index("-vf") + 1]
        assert vf.startswith("subtitles=")
        assert "Alignment=2" in vf
        assert "MarginV=50" in vf
        assert "PrimaryColour=&H00FFFFFF" in vf

    def test_burn_scripted_subtitles_uses_native_renderer(self):
        tool = ScriptedMediaTool()
        subtitle = self.test_dir / "karaoke.ass"

        asyncio.run(tool.burn_subtitles(self.video, subtitle, self.out, _style()))

        vf = tool.ffmpeg_commands()[0][tool.ffmpeg_commands()[0].index("-vf") + 1]
        assert vf.startswith("ass=")
        assert "force_style" not in vf

    def test_burn_failure_falls_back_to_copy(self):
        tool = ScriptedMediaTool(fail_when=lambda cmd: cmd[0] == "ffmpeg")

        burned = asyncio.run(tool.burn_subtitles(self.video, self.test_dir / "lines.srt", self.out, _style()))

        assert burned is False
        assert self.out.read_bytes() == self.video.read_bytes()

    def test_concatenate_single_input_is_plain_copy(self):
        tool = ScriptedMediaTool()

        asyncio.run(tool.concatenate([self.video], self.out))

        assert self.out.read_bytes() == self.video.read_bytes()
        assert tool.commands == []

    def test_concatenate_empty_input_rejected(self):
        with pytest.raises(ConcatError):
            asyncio.run(ScriptedMediaTool().concatenate([], self.out))

    def test_concatenate_normalizes_then_stream_copies(self):
        tool = ScriptedMediaTool()

        asyncio.run(tool.concatenate([self.video, self.other], self.out))

        assert self.out.exists()
        normalize_cmds = tool.commands_with("force_original_aspect_ratio")
        assert len(normalize_cmds) == 2
        concat_cmd = tool.concat_commands()[0]
        assert concat_cmd[concat_cmd.index("-c") + 1] == "copy"
        # manifest lists bare file names relative to its own directory
        lines = tool.manifests[0].splitlines()
        assert len(lines) == 2
        assert all(line.startswith("file '.concat_") and "/" not in line for line in lines)
        assert self._leftovers() == []

    def test_normalize_adds_silent_track_when_input_has_no_audio(self):
        tool = ScriptedMediaTool(audio_durations={str(self.other): 5})

        asyncio.run(tool.concatenate([self.video, self.other], self.out))

        normalize_cmds = tool.commands_with("force_original_aspect_ratio")
        assert any("anullsrc" in part for part in normalize_cmds[0])
        assert not any("anullsrc" in part for part in normalize_cmds[1])

    def test_concatenate_failure_cleans_up(self):
        tool = ScriptedMediaTool(fail_when=lambda cmd: "concat" in cmd)

        with pytest.raises(ConcatError):
            asyncio.run(tool.concatenate([self.video, self.other], self.out))

        assert not self.out.exists()
        assert self._leftovers() == []

    def test_concatenate_reports_unreadable_input(self):
        def fail_second_entry(cmd):
            if "concat" not in cmd:
                return None
            manifest = Path(cmd[cmd.index("-i") + 1])
            second = manifest.read_text(encoding="utf-8").splitlines()[1].split("'")[1]
            return f"[concat] {second}: Invalid data found when processing input"

        tool = ScriptedMediaTool(fail_when=fail_second_entry)

        with pytest.raises(ConcatError) as exc_info:
            asyncio.run(tool.concatenate([self.video, self.other], self.out))

        assert exc_info.value.failed_inputs == [str(self.other)]
        assert self._leftovers() == []

    def test_concatenate_normalize_failure_names_input(self):
        tool = ScriptedMediaTool(
            fail_when=lambda cmd: cmd[0] == "ffmpeg" and str(self.other) in cmd and "concat" not in cmd
        )

        with pytest.raises(ConcatError) as exc_info:
            asyncio.run(tool.concatenate([self.video, self.other], self.out))

        assert exc_info.value.failed_inputs == [str(self.other)]
        assert tool.concat_commands() == []
        assert self._leftovers() == []


class TestAuxiliaryTransforms:
    """Test single-pass helpers"""

    def setup_method(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.video = self.test_dir / "clip.mp4"
        self.video.write_bytes(b"clip")
        self.audio = self.test_dir / "music.mp3"

    def teardown_method(self):
        if self.test_dir.exists():
            shutil.rmtree(self.test_dir)

    def test_resize_scales_to_requested_size(self):
        tool = ScriptedMediaTool()

        asyncio.run(tool.resize(self.video, self.test_dir / "small.mp4", 360, 640))

        cmd = tool.ffmpeg_commands()[0]
        assert cmd[cmd.index("-vf") + 1].startswith("scale=360:640")

    def test_extract_audio_codec_follows_extension(self):
        tool = ScriptedMediaTool()

        asyncio.run(tool.extract_audio(self.video, self.test_dir / "track.wav"))
        asyncio.run(tool.extract_audio(self.video, self.test_dir / "track.m4a"))

        codecs = [cmd[cmd.index("-c:a") + 1] for cmd in tool.ffmpeg_commands()]
        assert codecs == ["pcm_s16le", "aac"]
        assert all("-vn" in cmd for cmd in tool.ffmpeg_commands())

    def test_merge_mixes_with_existing_audio(self):
        tool = ScriptedMediaTool(audio_durations={str(self.video): 10})

        asyncio.run(tool.merge_audio_with_video(self.video, self.audio, self.test_dir / "mixed.mp4", 0.5))

        graph = tool.ffmpeg_commands()[0][tool.ffmpeg_commands()[0].index("-filter_complex") + 1]
        assert "amix=inputs=2" in graph
        assert "volume=0.5" in graph

    def test_merge_into_silent_video_uses_added_track_only(self):
        tool = ScriptedMediaTool()

        asyncio.run(tool.merge_audio_with_video(self.video, self.audio, self.test_dir / "mixed.mp4"))

        cmd = tool.ffmpeg_commands()[0]
        assert "amix" not in cmd[cmd.index("-filter_complex") + 1]
        assert "-shortest" in cmd

    def test_normalize_audio_and_optimize(self):
        tool = ScriptedMediaTool()

        asyncio.run(tool.normalize_audio(self.video, self.test_dir / "loud.mp4"))
        asyncio.run(tool.optimize(self.video, self.test_dir / "web.mp4"))

        loud, web = tool.ffmpeg_commands()
        assert loud[loud.index("-af") + 1].startswith("loudnorm")
        assert web[web.index("-crf") + 1] == "28"

    @pytest.mark.parametrize("method,error", [
        ("resize", ResizeError),
        ("extract_audio", ExtractAudioError),
        ("normalize_audio", AudioNormalizeError),
        ("optimize", OptimizeError),
    ])
    def test_failures_raise_stage_errors(self, method, error):
        tool = ScriptedMediaTool(fail_when=lambda cmd: cmd[0] == "ffmpeg")
        out = self.test_dir / "out.mp4"
        args = (self.video, out, 360, 640) if method == "resize" else (self.video, out)

        with pytest.raises(error):
            asyncio.run(getattr(tool, method)(*args))
        assert not out.exists()


class TestToolInvocation:
    """Test how binaries and filter arguments are put on the command line"""

    def setup_method(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.source = self.test_dir / "source.mp4"

    def teardown_method(self):
        if self.test_dir.exists():
            shutil.rmtree(self.test_dir)

    def test_configured_binaries_are_invoked(self):
        tool = ScriptedMediaTool(
            durations={self.source: 31},
            ffmpeg_path="/opt/media/bin/ffmpeg",
            ffprobe_path="/opt/media/bin/ffprobe",
        )

        segments = asyncio.run(tool.cut_by_duration(self.source, 30, self.test_dir / "out"))

        assert len(segments) == 1
        assert [cmd[0] for cmd in tool.commands] == ["/opt/media/bin/ffprobe", "/opt/media/bin/ffmpeg"]
        assert tool.commands[1][1:4] == ["-y", "-hide_banner", "-loglevel"]

    def test_concat_uses_configured_ffmpeg(self):
        first = self.test_dir / "a.mp4"
        second = self.test_dir / "b.mp4"
        first.write_bytes(b"a")
        second.write_bytes(b"b")
        tool = ScriptedMediaTool(ffmpeg_path="/opt/media/bin/ffmpeg")

        asyncio.run(tool.concatenate([first, second], self.test_dir / "joined.mp4"))

        assert tool.concat_commands()[0][0] == "/opt/media/bin/ffmpeg"

    def test_filter_path_quotes_are_closed_and_reopened(self):
        assert _escape_filter_path("/subs/it's.srt") == "'/subs/it'\\''s.srt'"

    def test_filter_path_escapes_colons_and_backslashes(self):
        assert _escape_filter_path("C:\\subs\\a.srt") == "'C\\:/subs/a.srt'"

    def test_subtitle_with_quote_in_name_is_burned(self):
        video = self.test_dir / "clip.mp4"
        video.write_bytes(b"clip")
        tool = ScriptedMediaTool()

        burned = asyncio.run(tool.burn_subtitles(video, self.test_dir / "it's.srt", self.test_dir / "out.mp4", _style()))

        assert burned is True
        vf = tool.ffmpeg_commands()[0][tool.ffmpeg_commands()[0].index("-vf") + 1]
        assert "it'\\''s.srt" in vf
