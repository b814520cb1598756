"""Tests for the submit / poll / list entry points."""

import asyncio
from unittest.mock import patch

import pytest

from framecast.exceptions import RenderParameterError
from framecast.schemas.render import RenderedVideo, RenderResult
from framecast.services.render_service import (
    get_render_status,
    list_render_tasks,
    parse_parameters,
    submit_render,
    wait_for_render,
)
from framecast.services.task_manager import RenderStatus

VALID = {"width": 320, "height": 240, "duration": 1, "render": "() => '<p>hi</p>'"}


def _fake_perform_render(delay: float = 0.01):
    async def fake(task_id, params, manager=None, settings=None):
        manager.set_status(task_id, RenderStatus.PROCESSING, 10)
        await asyncio.sleep(delay)
        result = RenderResult(
            success=True,
            video=RenderedVideo(
                url=f"http://testserver/api/video/video_{task_id}.mp4",
                path=f"/tmp/video_{task_id}.mp4",
                size=1,
                frames=24,
                duration=params.duration,
                fps=params.fps,
                width=params.width,
                height=params.height,
            ),
        )
        manager.set_result(task_id, result)
        return result

    return fake


class TestParseParameters:
    """Tests for parameter validation."""

    def test_valid_dict(self):
        params = parse_parameters(VALID)
        assert params.width == 320
        assert params.fps == 24

    def test_errors_name_the_fields(self):
        with pytest.raises(RenderParameterError) as exc_info:
            parse_parameters({**VALID, "width": 0, "quality": "ultra"})

        errors = exc_info.value.errors
        assert any(e.startswith("width:") for e in errors)
        assert any(e.startswith("quality:") for e in errors)
        assert exc_info.value.code == "VALIDATION_ERROR"

    def test_audio_outside_duration(self):
        with pytest.raises(RenderParameterError, match=r"audio\[0\]\.start"):
            parse_parameters({**VALID, "audio": [{"url": "/tmp/a.mp3", "start": 5}]})


class TestSubmit:
    """Tests for submit_render and polling."""

    @pytest.mark.asyncio
    async def test_invalid_parameters_create_no_task(self, manager, settings):
        with pytest.raises(RenderParameterError):
            submit_render({**VALID, "render": ""}, manager=manager, settings=settings)

        assert manager.list_all() == []

    @pytest.mark.asyncio
    async def test_submit_returns_before_completion(self, manager, settings):
        with patch("framecast.services.render_service.perform_render", _fake_perform_render(delay=0.2)):
            task_id = submit_render(VALID, manager=manager, settings=settings)

            status = get_render_status(task_id, manager)
            assert status.status == "pending"
            assert status.progress == 0

            final = await wait_for_render(task_id, poll_interval_s=0.01, timeout_s=5, manager=manager)

        assert final.status == "completed"
        assert final.progress == 100
        assert final.result.video.frames == 24
        assert final.error is None

    @pytest.mark.asyncio
    async def test_escaped_exception_fails_task(self, manager, settings):
        async def broken(task_id, params, manager=None, settings=None):
            raise RuntimeError("worker exploded")

        with patch("framecast.services.render_service.perform_render", broken):
            task_id = submit_render(VALID, manager=manager, settings=settings)
            final = await wait_for_render(task_id, poll_interval_s=0.01, timeout_s=5, manager=manager)

        assert final.status == "failed"
        assert final.error.details == "worker exploded"

    @pytest.mark.asyncio
    async def test_list_newest_first_with_parameters(self, manager, settings):
        with patch("framecast.services.render_service.perform_render", _fake_perform_render()):
            first = submit_render(VALID, manager=manager, settings=settings)
            second = submit_render({**VALID, "width": 640}, manager=manager, settings=settings)
            await wait_for_render(second, poll_interval_s=0.01, timeout_s=5, manager=manager)
            await wait_for_render(first, poll_interval_s=0.01, timeout_s=5, manager=manager)

        listed = list_render_tasks(manager)

        assert [s.task_id for s in listed] == [second, first]
        assert listed[0].parameters.width == 640

    def test_status_of_unknown_task(self, manager):
        assert get_render_status("task_nope", manager) is None

    @pytest.mark.asyncio
    async def test_wait_for_unknown_task(self, manager):
        with pytest.raises(KeyError):
            await wait_for_render("task_nope", manager=manager)

    @pytest.mark.asyncio
    async def test_wait_times_out(self, manager, settings):
        with patch("framecast.services.render_service.perform_render", _fake_perform_render(delay=0.5)):
            task_id = submit_render(VALID, manager=manager, settings=settings)
            with pytest.raises(asyncio.TimeoutError):
                await wait_for_render(task_id, poll_interval_s=0.01, timeout_s=0.1, manager=manager)

            final = await wait_for_render(task_id, poll_interval_s=0.01, timeout_s=5, manager=manager)
        assert final.status == "completed"
