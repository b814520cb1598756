"""Render a short sample video end to end and print where it landed.

Usage:
    python scripts/render_example.py [audio_url_or_path]
"""

import asyncio
import json
import sys

from framecast.config import configure_logging
from framecast.services.diagnostics import get_process_info
from framecast.services.render_service import submit_render, wait_for_render

RENDER_FUNCTION = """
(ctx) => {
    const hue = Math.round((ctx.time / ctx.duration) * 360);
    return {
        html: `
            <div id="stage" style="width:${ctx.width}px;height:${ctx.height}px;
                 display:flex;align-items:center;justify-content:center;
                 background:hsl(${hue}, 70%, 45%);color:white;font:bold 64px sans-serif">
              ${ctx.title} ${ctx.frame}
            </div>
            <script>document.getElementById('stage').dataset.ready = '1';</script>`,
        waitUntil: () => document.getElementById('stage')?.dataset.ready === '1',
    };
}
"""


async def render_example(audio: str | None = None):
    parameters = {
        "width": 640,
        "height": 360,
        "duration": 3,
        "fps": 24,
        "quality": "low",
        "render": RENDER_FUNCTION,
        "args": {"title": "framecast"},
    }
    if audio:
        parameters["audio"] = [{"url": audio, "start": 0.5, "end": 3, "volume": 0.8}]

    task_id = submit_render(parameters)
    print(f"Submitted {task_id}")

    status = await wait_for_render(task_id, poll_interval_s=0.5)
    if status.status == "completed":
        video = status.result.video
        print(f"\nVideo: {video.path} ({video.size} bytes, {video.frames} frames)")
        print(f"URL:   {video.url}")
        return

    print(f"\nRender failed: {status.error.details}")
    print(json.dumps(await get_process_info(), indent=2))
    sys.exit(1)


if __name__ == "__main__":
    configure_logging()
    asyncio.run(render_example(sys.argv[1] if len(sys.argv) > 1 else None))
