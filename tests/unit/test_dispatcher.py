"""Unit tests for AlertDispatcher fan-out."""

import asyncio

import pytest

from faultline.dispatcher import AlertDispatcher, DispatchResult, SinkResult


class TestAlertDispatcher:
    """Test per-sink isolation and result reporting."""

    @pytest.mark.asyncio
    async def test_all_sinks_receive_batch(self, fake_sink, make_batch):
        sinks = [fake_sink("one"), fake_sink("two")]
        dispatcher = AlertDispatcher(sinks)
        batch = make_batch(("A", 3), ("B", 1))

        result = await dispatcher.dispatch(batch)

        assert result.all_succeeded
        assert result.batch_size == 2
        assert result.total_count == 4
        assert [r.sink_name for r in result.results] == ["one", "two"]
        assert result.results[0].response_data == {"delivered": 2}
        assert result.completed_at >= result.started_at
        for sink in sinks:
            assert sink.batches == [batch]

    @pytest.mark.asyncio
    async def test_failing_sink_isolated(self, fake_sink, make_batch):
        """Sink #2 failing does not stop sinks #1 and #3."""
        first, second, third = fake_sink("first"), fake_sink("second", fail=True), fake_sink("third")
        dispatcher = AlertDispatcher([first, second, third])

        result = await dispatcher.dispatch(make_batch(("A", 1)))

        assert not result.all_succeeded
        assert [r.sink_name for r in result.succeeded] == ["first", "third"]
        assert [r.sink_name for r in result.failed] == ["second"]
        assert result.failed[0].error_message == "second is down"
        assert len(first.batches) == 1
        assert len(third.batches) == 1

    @pytest.mark.asyncio
    async def test_slow_sink_times_out_independently(self, fake_sink, make_batch):
        slow = fake_sink("slow", delay=5.0, timeout_seconds=0.05)
        fast = fake_sink("fast")
        dispatcher = AlertDispatcher([slow, fast])

        result = await asyncio.wait_for(dispatcher.dispatch(make_batch(("A", 1))), timeout=2.0)

        failed = result.failed
        assert [r.sink_name for r in failed] == ["slow"]
        assert "did not complete within 0.05s" in failed[0].error_message
        assert len(fast.batches) == 1

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_failed_result(self, fake_sink, make_batch):
        broken = fake_sink("broken")

        async def explode(batch):
            raise KeyError("missing template field")

        broken.send = explode
        dispatcher = AlertDispatcher([broken, fake_sink("ok")])

        result = await dispatcher.dispatch(make_batch(("A", 1)))

        assert [r.sink_name for r in result.failed] == ["broken"]
        assert "missing template field" in result.failed[0].error_message
        assert [r.sink_name for r in result.succeeded] == ["ok"]

    @pytest.mark.asyncio
    async def test_no_sinks(self, make_batch):
        dispatcher = AlertDispatcher([])

        result = await dispatcher.dispatch(make_batch(("A", 1)))

        assert result.results == []
        assert result.all_succeeded
        assert result.batch_size == 1

    def test_disabled_sinks_skipped(self, fake_sink):
        dispatcher = AlertDispatcher([fake_sink("on"), fake_sink("off", enabled=False)])

        assert [sink.name for sink in dispatcher.sinks] == ["on"]

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, fake_sink, make_batch):
        dispatcher = AlertDispatcher([fake_sink("slow", delay=5.0, timeout_seconds=10.0)])

        task = asyncio.create_task(dispatcher.dispatch(make_batch(("A", 1))))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_close_closes_sinks(self, fake_sink):
        sinks = [fake_sink("a"), fake_sink("b")]
        dispatcher = AlertDispatcher(sinks)

        await dispatcher.close()

        assert all(sink.closed for sink in sinks)


class TestDispatchResult:
    """Test result helpers."""

    def test_empty_result(self):
        result = DispatchResult()

        assert result.all_succeeded
        assert result.succeeded == []
        assert result.failed == []

    def test_partition(self):
        result = DispatchResult(results=[
            SinkResult(sink_name="a", sink_kind="slack", success=True),
            SinkResult(sink_name="b", sink_kind="teams", success=False, error_message="HTTP 500"),
        ])

        assert [r.sink_name for r in result.succeeded] == ["a"]
        assert [r.sink_name for r in result.failed] == ["b"]
        assert not result.all_succeeded
