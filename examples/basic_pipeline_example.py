#!/usr/bin/env python3
"""
Basic error aggregation example for Faultline.

Records a burst of failures from simulated request handlers, then flushes
the aggregated batch. With FAULTLINE_SLACK_WEBHOOK_URL or
FAULTLINE_TEAMS_WEBHOOK_URL set, the summary is posted to that channel;
otherwise only the flush summary is printed.
"""

import asyncio
import logging
import random

from faultline import FaultlineSettings, RequestInfo, create_pipeline


async def checkout(order_id: int) -> None:
    """Simulated handler failing in two distinct ways."""
    if order_id % 3 == 0:
        raise ConnectionError("payment gateway unreachable")
    raise ValueError(f"invalid quantity for order {order_id % 2}")


async def main():
    logging.basicConfig(level=logging.INFO)

    settings = FaultlineSettings.from_environment()
    pipeline = create_pipeline(settings)

    async with pipeline:
        for order_id in random.sample(range(100), 20):
            request = RequestInfo.build(
                url=f"https://shop.example.com/orders/{order_id}/checkout",
                method="POST",
                headers={"Authorization": "Bearer demo-token", "Accept": "application/json"},
            )
            try:
                await checkout(order_id)
            except Exception as e:
                await pipeline.record(e, request)

        print(f"\nPending fingerprints: {await pipeline.store.pending_count()}")

        result = await pipeline.flush()
        print(f"Flushed {result.total_count} errors as {result.batch_size} entries")
        for sink_result in result.results:
            status = "ok" if sink_result.success else f"failed ({sink_result.error_message})"
            print(f"- {sink_result.sink_name}: {status}")

    stats = pipeline.get_stats()
    print(f"\nFlush cycles: {stats.cycles}, batches dispatched: {stats.dispatched_batches}")


if __name__ == "__main__":
    asyncio.run(main())
