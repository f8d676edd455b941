import pytest

from diff_feed.main import app
from diff_feed.services.activity_log import recent_activity
from diff_feed.services.buffer import RecencyBuffer
from diff_feed.services.feed_ingestion import IngestionPipeline


class TestLifespan:
    @pytest.mark.asyncio
    async def test_startup_wires_state_and_shutdown_tears_down(self, test_settings):
        # no upstream and no ping target: nothing leaves the process
        test_settings.SOURCE_FEED_URL = ""
        test_settings.PUBLIC_BASE_URL = ""
        try:
            async with app.router.lifespan_context(app):
                buffer = app.state.buffer
                pipeline = app.state.pipeline
                scheduler = app.state.scheduler
                assert isinstance(buffer, RecencyBuffer)
                assert buffer.capacity == test_settings.FEED_ITEM_MAX
                assert isinstance(pipeline, IngestionPipeline)
                assert pipeline.buffer is buffer
                assert scheduler.running
                assert scheduler.get_job("poll_job") is not None
                assert scheduler.get_job("ping_job") is None
                assert not pipeline.client.is_closed

            assert not scheduler.running
            assert pipeline.client.is_closed
            assert any(
                a["message"] == "Started, initial poll queued" for a in recent_activity(200)
            )
        finally:
            for name in ("buffer", "pipeline", "scheduler"):
                if hasattr(app.state, name):
                    delattr(app.state, name)
