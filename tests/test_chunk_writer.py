"""Tests for the ffmpeg chunk writer."""

import re
from datetime import datetime

import pytest

from conftest import requires_ffmpeg
from capture.chunk_writer import ChunkWriter, ChunkWriterError, new_chunk_path
from transform.ffmpeg_tools import probe_duration


def make_writer(tmp_path, **kwargs):
    options = dict(source_width=64, source_height=48, output_width=32, output_height=24, fps=1, bitrate=200_000)
    options.update(kwargs)
    return ChunkWriter(tmp_path / "chunk.mp4", **options)


def test_new_chunk_path_is_unique_and_timestamped(tmp_path):
    ts = datetime(2025, 3, 10, 9, 5, 7).timestamp()
    first = new_chunk_path(tmp_path / "recordings", ts)
    second = new_chunk_path(tmp_path / "recordings", ts)

    assert first != second
    assert first.parent.is_dir()
    assert re.fullmatch(r"20250310_090507_[0-9a-f]{8}\.mp4", first.name)


def test_build_command(tmp_path):
    cmd = make_writer(tmp_path).build_command()

    def value(flag):
        return cmd[cmd.index(flag) + 1]

    assert value('-f') == 'rawvideo'
    assert value('-s') == '64x48'
    assert value('-i') == '-'
    assert value('-vf') == 'scale=32:24'
    assert value('-c:v') == 'libx264'
    assert value('-profile:v') == 'baseline'
    assert value('-g') == '1'
    assert value('-b:v') == '200000'
    assert 'yuv420p' in cmd
    assert '+faststart' in cmd
    assert '-an' in cmd
    assert cmd[-1] == str(tmp_path / "chunk.mp4")


def test_write_before_start_fails(tmp_path):
    with pytest.raises(ChunkWriterError):
        make_writer(tmp_path).write_frame(b"\x00" * 64 * 48 * 4)


def test_finish_without_start_is_invalid(tmp_path):
    assert make_writer(tmp_path).finish() is False


def test_missing_ffmpeg_binary(tmp_path):
    writer = make_writer(tmp_path, ffmpeg_bin=str(tmp_path / "no-such-ffmpeg"))
    with pytest.raises(ChunkWriterError):
        writer.start()


@requires_ffmpeg
class TestEncoding:

    def test_encodes_frames_into_mp4(self, tmp_path):
        writer = make_writer(tmp_path)
        writer.start()
        for shade in (0, 80, 160, 240):
            writer.write_frame(bytes([shade]) * writer.frame_size)

        assert writer.finish() is True
        assert writer.file_path.stat().st_size > 0
        assert probe_duration(writer.file_path) == pytest.approx(4.0, abs=1.0)

    def test_rejects_wrong_frame_size(self, tmp_path):
        writer = make_writer(tmp_path)
        writer.start()
        try:
            with pytest.raises(ChunkWriterError):
                writer.write_frame(b"\x00" * 10)
        finally:
            writer.abort()

    def test_abort_removes_file(self, tmp_path):
        writer = make_writer(tmp_path)
        writer.start()
        writer.write_frame(b"\x00" * writer.frame_size)
        writer.abort()
        assert not writer.file_path.exists()
