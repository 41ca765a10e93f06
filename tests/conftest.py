import pytest

from realtime_agent.dispatcher import create_tool_registry


class FrameRecorder:
    """Async emit callback that keeps every frame it receives."""

    def __init__(self, on_frame=None):
        self.frames = []
        self.on_frame = on_frame

    async def __call__(self, frame):
        self.frames.append(frame)
        if self.on_frame:
            self.on_frame(frame)

    def types(self):
        return [f["type"] for f in self.frames]

    def of_type(self, frame_type):
        return [f for f in self.frames if f["type"] == frame_type]

    def statuses(self):
        return [f["status"] for f in self.of_type("status")]


@pytest.fixture
def recorder():
    return FrameRecorder()


@pytest.fixture
def static_registry():
    return create_tool_registry(live=False)
