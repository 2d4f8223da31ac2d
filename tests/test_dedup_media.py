"""Tests for media kind detection and still-frame extraction."""

import io

import pytest
from PIL import Image

from tagsaver.dedup.hash import HashEngine, dct_fingerprint
from tagsaver.dedup.media import (
    MediaDecodeError,
    _animation_frame_index,
    detect_media_kind,
    load_image_frame,
    load_still_frame_from_path,
    load_video_frame,
)
from tests.helpers.media_factory import half_white_image, make_gif_bytes, make_video


def mean_brightness(img: Image.Image) -> float:
    gray = img.convert('L')
    return sum(gray.getdata()) / (gray.size[0] * gray.size[1])


class TestDetectMediaKind:
    @pytest.mark.parametrize("name,expected", [
        ("clip.mp4", "video"),
        ("https://cdn.example.test/a/clip.webm?x=1", "video"),
        ("movie.MOV", "video"),
        ("anim.gif", "image"),
        ("photo.jpg", "image"),
        (None, "image"),
    ])
    def test_by_extension(self, name, expected):
        assert detect_media_kind(name) == expected

    def test_content_type_wins_over_extension(self):
        assert detect_media_kind("file.jpg", content_type="video/mp4") == "video"
        assert detect_media_kind("file.mp4", content_type="image/gif; charset=binary") == "image"

    def test_sniffs_container_signatures(self):
        assert detect_media_kind(data=b"\x00\x00\x00\x18ftypmp42rest") == "video"
        assert detect_media_kind(data=b"\x1a\x45\xdf\xa3webm") == "video"
        assert detect_media_kind(data=b"GIF89a...") == "image"


class TestAnimatedFrames:
    def test_frame_index_follows_offset(self):
        """The frame on screen at 0.1s is the second one when the first lasts 100ms."""
        data = make_gif_bytes([Image.new('RGB', (32, 32), 'black'), half_white_image((32, 32))], [100, 100])
        with Image.open(io.BytesIO(data)) as img:
            assert _animation_frame_index(img, 50) == 0
            assert _animation_frame_index(img, 100) == 1
            assert _animation_frame_index(img, 10_000) == 1

    def test_blank_leading_frame_is_skipped(self):
        data = make_gif_bytes([Image.new('RGB', (64, 64), 'black'), half_white_image()], [100, 100])
        frame = load_image_frame(data, offset_seconds=0.1)
        assert frame.convert('RGB').getpixel((5, 5)) == (255, 255, 255)

    def test_gif_hashes_like_its_second_frame(self):
        second = half_white_image()
        data = make_gif_bytes([Image.new('RGB', (64, 64), 'black'), second], [100, 100])
        fp = HashEngine().fingerprint_bytes(data, "anim.gif")
        assert fp == dct_fingerprint(second)

    def test_still_image_ignores_offset(self):
        img = half_white_image()
        buffer = io.BytesIO()
        img.save(buffer, format='PNG')
        frame = load_image_frame(buffer.getvalue(), offset_seconds=5.0)
        assert frame.size == img.size

    def test_undecodable_image(self):
        with pytest.raises(MediaDecodeError):
            load_image_frame(b"definitely not an image")


class TestVideoFrames:
    def test_frame_after_blank_start(self, tmp_path):
        """Seeking to 0.1s skips a black first frame."""
        frames = [Image.new('RGB', (64, 64), 'black')] + [half_white_image()] * 9
        path = make_video(tmp_path / "clip.avi", frames, fps=10.0)
        if path is None:
            pytest.skip("OpenCV build cannot write MJPG video")

        frame = load_video_frame(path, offset_seconds=0.1)
        assert frame.mode == 'RGB'
        assert frame.size == (64, 64)
        assert mean_brightness(frame) > 60

    def test_path_dispatches_to_video_decoder(self, tmp_path):
        frames = [half_white_image()] * 5
        path = make_video(tmp_path / "clip.avi", frames, fps=10.0)
        if path is None:
            pytest.skip("OpenCV build cannot write MJPG video")
        assert mean_brightness(load_still_frame_from_path(path)) > 60

    def test_unreadable_video(self, tmp_path):
        bogus = tmp_path / "broken.mp4"
        bogus.write_bytes(b"\x00\x00\x00\x18ftypmp42 but nothing else")
        with pytest.raises(MediaDecodeError):
            load_video_frame(bogus)

    def test_missing_path(self, tmp_path):
        with pytest.raises(MediaDecodeError):
            load_still_frame_from_path(tmp_path / "absent.webm")
