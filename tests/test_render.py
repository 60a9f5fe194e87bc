"""
End-to-end tests for render orchestration and the frame sinks.
"""

from __future__ import annotations

import io

import pytest
from PIL import Image

from pxlsrender.assembly import ImageSequenceSink, RawStreamSink, open_sink
from pxlsrender.config import Destination, RenderConfig
from pxlsrender.exceptions import BackgroundError, ConfigError, OutputError, PaletteError
from pxlsrender.frames import RgbaFrame
from pxlsrender.pixel import WHITE, Rgba
from pxlsrender.render import RenderCommand, RenderStats, run_renders
from pxlsrender.types import Action, ActionKind, PixelFormat, Region, Step, StepKind, Style

WHITE_PX = bytes([255, 255, 255, 255])
BLACK_PX = bytes([0, 0, 0, 255])


def _make_action(time, x, y, index=0):
    return Action(time=time, x=x, y=y, index=index, kind=ActionKind.PLACE)


def _make_config(**overrides) -> RenderConfig:
    options = {"step": Step(StepKind.TIME, 1000)}
    options.update(overrides)
    return RenderConfig(**options)


def _run_to_bytes(command: RenderCommand, actions) -> tuple[bytes, RenderStats]:
    stream = io.BytesIO()
    stats = command.run(actions, RawStreamSink(stream))
    return stream.getvalue(), stats


# ---------------------------------------------------------------------------
# Raw stream output
# ---------------------------------------------------------------------------

class TestRawStream:
    def test_background_then_one_frame_per_slice(self, sample_actions):
        command = RenderCommand(_make_config(), bounds=(0, 0, 2, 2), quiet=True)
        data, stats = _run_to_bytes(command, sample_actions)

        frame0 = WHITE_PX * 4
        frame1 = BLACK_PX + WHITE_PX * 3
        frame2 = BLACK_PX + WHITE_PX * 2 + BLACK_PX
        frame3 = BLACK_PX + WHITE_PX + WHITE_PX + BLACK_PX
        assert data == frame0 + frame1 + frame2 + frame3
        assert stats.frames == 4
        assert stats.actions == 3

    def test_count_step(self, sample_actions):
        config = _make_config(step=Step(StepKind.COUNT, 2))
        data, stats = _run_to_bytes(RenderCommand(config, (0, 0, 2, 2), quiet=True),
                                    sample_actions)
        assert stats.frames == 3
        assert len(data) == 3 * 16

    def test_skip(self, sample_actions):
        config = _make_config(skip=2)
        data, stats = _run_to_bytes(RenderCommand(config, (0, 0, 2, 2), quiet=True),
                                    sample_actions)
        assert stats.frames == 2
        assert data[:16] == BLACK_PX + WHITE_PX * 2 + BLACK_PX

    def test_screenshot(self, sample_actions):
        config = RenderConfig.from_options({"screenshot": True})
        data, stats = _run_to_bytes(RenderCommand(config, (0, 0, 2, 2), quiet=True),
                                    sample_actions)
        assert stats.frames == 1
        assert data == BLACK_PX + WHITE_PX + WHITE_PX + BLACK_PX

    def test_rgb_format(self, sample_actions):
        config = _make_config(format=PixelFormat.RGB)
        data, _ = _run_to_bytes(RenderCommand(config, (0, 0, 2, 2), quiet=True),
                                sample_actions)
        assert len(data) == 4 * 12
        assert data[:12] == bytes([255] * 12)

    def test_yuv_stream_length(self, sample_actions):
        config = _make_config(format=PixelFormat.YUV420P, style=Style.HEAT)
        data, stats = _run_to_bytes(RenderCommand(config, (0, 0, 2, 2), quiet=True),
                                    sample_actions)
        assert len(data) == stats.frames * 6

    def test_fill_gaps(self):
        actions = [_make_action(500, 0, 0), _make_action(3500, 1, 0)]
        plain = RenderCommand(_make_config(), (0, 0, 2, 1), quiet=True)
        filled = RenderCommand(_make_config(fill_gaps=True), (0, 0, 2, 1), quiet=True)
        assert _run_to_bytes(plain, actions)[1].frames == 3
        assert _run_to_bytes(filled, actions)[1].frames == 5

    def test_default_sink_uses_stream(self, sample_actions):
        stream = io.BytesIO()
        command = RenderCommand(_make_config(), (0, 0, 2, 2), quiet=True, stream=stream)
        command.run(sample_actions)
        assert len(stream.getvalue()) == 4 * 16

    @pytest.mark.parametrize("style", list(Style))
    def test_every_style_runs(self, style, sample_actions):
        config = _make_config(style=style)
        data, stats = _run_to_bytes(RenderCommand(config, (0, 0, 2, 2), quiet=True),
                                    sample_actions)
        assert len(data) == stats.frames * 16
        assert data[:16] == WHITE_PX * 4


# ---------------------------------------------------------------------------
# Canvas setup
# ---------------------------------------------------------------------------

class TestCanvas:
    def test_bounds_offset(self):
        actions = [_make_action(1, 11, 10)]
        command = RenderCommand(_make_config(), bounds=(10, 10, 12, 12), quiet=True)
        data, _ = _run_to_bytes(command, actions)
        assert data[16:] == WHITE_PX + BLACK_PX + WHITE_PX * 2

    def test_region_drops_outside_actions(self):
        actions = [_make_action(1, 0, 0), _make_action(2, 50, 50)]
        config = _make_config(region=Region(0, 0, 2, 2))
        data, stats = _run_to_bytes(RenderCommand(config, (0, 0, 51, 51), quiet=True), actions)
        assert stats.actions == 1
        assert stats.dropped == 1
        assert len(data) == 2 * 16

    def test_background_color(self):
        config = _make_config(background_color=Rgba(1, 2, 3, 4))
        data, _ = _run_to_bytes(RenderCommand(config, (0, 0, 1, 1), quiet=True), [])
        assert data == bytes([1, 2, 3, 4])

    def test_background_image_cropped_and_padded(self, tmp_path):
        path = tmp_path / "bg.png"
        Image.new("RGBA", (4, 4), (255, 0, 0, 255)).save(path)
        config = _make_config(background_path=path, region=Region(2, 2, 6, 6))
        command = RenderCommand(config, quiet=True)
        assert command.background.get(0, 0) == Rgba(255, 0, 0, 255)
        assert command.background.get(1, 1) == Rgba(255, 0, 0, 255)
        assert command.background.get(2, 2) == WHITE
        assert command.background.dimensions() == (4, 4)

    def test_background_image_region_translates_actions(self, tmp_path):
        path = tmp_path / "bg.png"
        Image.new("RGBA", (8, 8), (255, 0, 0, 255)).save(path)
        config = _make_config(background_path=path, region=Region(2, 2, 6, 6))
        command = RenderCommand(config, quiet=True)
        moved = command.prepare_actions([_make_action(0, 3, 4), _make_action(0, 1, 1)])
        assert [(a.x, a.y) for a in moved] == [(1, 2)]

    def test_background_image_without_region_covers_image(self, tmp_path):
        path = tmp_path / "bg.png"
        Image.new("RGB", (3, 5), (0, 0, 255)).save(path)
        command = RenderCommand(_make_config(background_path=path), bounds=(1, 1, 2, 2), quiet=True)
        assert command.region == Region(0, 0, 3, 5)
        assert command.background.get(2, 4) == Rgba(0, 0, 255, 255)

    def test_unreadable_background(self, tmp_path):
        path = tmp_path / "bg.png"
        path.write_text("not an image", encoding="utf-8")
        with pytest.raises(BackgroundError):
            RenderCommand(_make_config(background_path=path), quiet=True)

    def test_empty_log_needs_size(self):
        with pytest.raises(ConfigError):
            RenderCommand(_make_config(), bounds=None)

    def test_yuv_odd_dimensions(self):
        config = _make_config(format=PixelFormat.YUV420P)
        with pytest.raises(ConfigError):
            RenderCommand(config, bounds=(0, 0, 3, 2))

    def test_yuv_to_file(self, tmp_path):
        config = _make_config(format=PixelFormat.YUV420P,
                              destination=Destination(tmp_path / "f.png"))
        with pytest.raises(ConfigError):
            RenderCommand(config, bounds=(0, 0, 2, 2))

    def test_read_only_format_rejected(self, tmp_path):
        config = _make_config(destination=Destination(tmp_path / "f.psd"))
        with pytest.raises(ConfigError):
            RenderCommand(config, bounds=(0, 0, 2, 2))

    def test_rgba_to_jpeg_rejected(self, tmp_path):
        config = _make_config(destination=Destination(tmp_path / "f.jpg"))
        with pytest.raises(ConfigError):
            RenderCommand(config, bounds=(0, 0, 2, 2))
        assert list(tmp_path.iterdir()) == []

    def test_missing_palette(self, tmp_path):
        with pytest.raises(PaletteError):
            RenderCommand(_make_config(palette_path=tmp_path / "none.gpl"), (0, 0, 1, 1))

    def test_plan(self, sample_actions):
        command = RenderCommand(_make_config(skip=1), (0, 0, 2, 2), quiet=True)
        assert command.plan(sample_actions) == 3


# ---------------------------------------------------------------------------
# File output
# ---------------------------------------------------------------------------

class TestImageSequence:
    def test_numbered_files(self, tmp_path, sample_actions):
        dest = Destination(tmp_path / "out" / "canvas.png")
        stats = RenderCommand(_make_config(destination=dest), (0, 0, 2, 2),
                              quiet=True).run(sample_actions)
        names = sorted(p.name for p in (tmp_path / "out").iterdir())
        assert names == [f"canvas_{i}.png" for i in range(4)]
        assert stats.frames == 4
        with Image.open(tmp_path / "out" / "canvas_3.png") as img:
            assert img.mode == "RGBA"
            assert img.getpixel((1, 1)) == (0, 0, 0, 255)
            assert img.getpixel((0, 1)) == (255, 255, 255, 255)

    def test_skip_renumbers_from_zero(self, tmp_path, sample_actions):
        dest = Destination(tmp_path / "c.png")
        RenderCommand(_make_config(destination=dest, skip=3), (0, 0, 2, 2),
                      quiet=True).run(sample_actions)
        assert sorted(p.name for p in tmp_path.iterdir()) == ["c_0.png"]

    def test_unwritable_directory(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        with pytest.raises(OutputError):
            ImageSequenceSink(Destination(blocker / "x.png"))

    def test_open_sink(self, tmp_path):
        assert isinstance(open_sink(Destination(), io.BytesIO()), RawStreamSink)
        assert isinstance(open_sink(Destination(tmp_path / "a.png")), ImageSequenceSink)

    def test_rgb_jpeg_files(self, tmp_path, sample_actions):
        config = _make_config(format=PixelFormat.RGB,
                              destination=Destination(tmp_path / "c.jpg"))
        RenderCommand(config, (0, 0, 2, 2), quiet=True).run(sample_actions)
        with Image.open(tmp_path / "c_0.jpg") as img:
            assert img.mode == "RGB"

    def test_unwritable_format(self, tmp_path):
        sink = ImageSequenceSink(Destination(tmp_path / "x.psd"))
        with pytest.raises(OutputError):
            sink.write(RgbaFrame.from_pixel(1, 1, WHITE))


class TestRawStreamSink:
    def test_counts(self):
        stream = io.BytesIO()
        sink = RawStreamSink(stream)
        sink.write(RgbaFrame.from_pixel(2, 2, WHITE))
        sink.write(RgbaFrame.from_pixel(2, 2, WHITE))
        assert sink.frames_written == 2
        assert sink.bytes_written == 32

    def test_closed_stream(self):
        stream = io.BytesIO()
        stream.close()
        with pytest.raises((OutputError, ValueError)):
            RawStreamSink(stream).write(RgbaFrame.from_pixel(1, 1, WHITE))


# ---------------------------------------------------------------------------
# Several renders
# ---------------------------------------------------------------------------

class TestRunRenders:
    @pytest.mark.parametrize("jobs", [1, 2])
    def test_failure_is_isolated(self, tmp_path, sample_actions, jobs):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        bad = RenderCommand(_make_config(destination=Destination(blocker / "x.png")),
                            (0, 0, 2, 2), quiet=True)
        good = RenderCommand(_make_config(destination=Destination(tmp_path / "ok.png")),
                             (0, 0, 2, 2), quiet=True)
        results = run_renders([bad, good], sample_actions, jobs=jobs)
        assert [r.ok for r in results] == [False, True]
        assert isinstance(results[0].error, OutputError)
        assert results[1].stats.frames == 4
        assert (tmp_path / "ok_3.png").exists()

    def test_shared_actions_untouched(self, sample_actions):
        before = list(sample_actions)
        commands = [RenderCommand(_make_config(style=s, destination=Destination()),
                                  (0, 0, 2, 2), quiet=True, stream=io.BytesIO())
                    for s in (Style.NORMAL, Style.HEAT)]
        results = run_renders(commands, sample_actions, jobs=2)
        assert all(r.ok for r in results)
        assert sample_actions == before


class TestRenderStats:
    def test_summary(self):
        stats = RenderStats("stdout", frames=10, actions=100, elapsed_s=2.0)
        assert stats.fps == 5.0
        assert "10 frames" in stats.summary()

    def test_zero_elapsed(self):
        assert RenderStats("stdout").fps == 0.0
