"""Tests for render parameter validation."""

import pytest
from pydantic import ValidationError

from framecast.schemas.render import AudioTrackSpec, RenderJobParameters

BASE = {"width": 640, "height": 360, "duration": 3, "render": "() => '<p></p>'"}


class TestRenderJobParameters:
    """Tests for job parameter rules."""

    def test_defaults(self):
        params = RenderJobParameters(**BASE)

        assert params.fps == 24
        assert params.quality == "medium"
        assert params.args is None
        assert params.audio is None

    @pytest.mark.parametrize(
        "field,value",
        [
            ("width", 0),
            ("height", -1),
            ("duration", 0),
            ("fps", 0.5),
            ("fps", 61),
            ("quality", "ultra"),
            ("render", ""),
            ("render", "   "),
        ],
    )
    def test_invalid_fields(self, field, value):
        with pytest.raises(ValidationError):
            RenderJobParameters(**{**BASE, field: value})

    def test_missing_render(self):
        data = dict(BASE)
        del data["render"]
        with pytest.raises(ValidationError):
            RenderJobParameters(**data)

    def test_parameters_are_frozen(self):
        params = RenderJobParameters(**BASE)
        with pytest.raises(ValidationError):
            params.width = 10

    def test_audio_start_must_be_inside_video(self):
        """A track starting at or after the video end is rejected."""
        with pytest.raises(ValidationError, match=r"audio\[0\]\.start"):
            RenderJobParameters(**BASE, audio=[{"url": "https://example.com/a.mp3", "start": 3}])

    def test_audio_end_cannot_exceed_duration(self):
        with pytest.raises(ValidationError, match=r"audio\[1\]\.end"):
            RenderJobParameters(
                **BASE,
                audio=[
                    {"url": "https://example.com/a.mp3", "start": 0},
                    {"url": "https://example.com/b.mp3", "start": 1, "end": 3.5},
                ],
            )

    def test_audio_end_equal_to_duration_is_allowed(self):
        params = RenderJobParameters(**BASE, audio=[{"url": "/tmp/a.mp3", "start": 0, "end": 3}])
        assert params.audio[0].end == 3


class TestAudioTrackSpec:
    """Tests for single track rules."""

    def test_default_volume(self):
        assert AudioTrackSpec(url="/tmp/a.mp3", start=0).volume == 1.0

    @pytest.mark.parametrize("volume", [-0.1, 1.5])
    def test_volume_range(self, volume):
        with pytest.raises(ValidationError):
            AudioTrackSpec(url="/tmp/a.mp3", start=0, volume=volume)

    def test_negative_start(self):
        with pytest.raises(ValidationError):
            AudioTrackSpec(url="/tmp/a.mp3", start=-1)

    def test_end_must_follow_start(self):
        with pytest.raises(ValidationError, match="must be greater than start"):
            AudioTrackSpec(url="/tmp/a.mp3", start=2, end=2)

    def test_blank_url(self):
        with pytest.raises(ValidationError):
            AudioTrackSpec(url="  ", start=0)
