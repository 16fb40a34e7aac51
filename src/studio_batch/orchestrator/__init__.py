"""In-process job orchestrator for batch image generation.

Each submitted image becomes a job that moves ``pending -> processing ->
success | error``. The dispatcher starts one asyncio task per eligible job
with no concurrency cap; every task calls the generation gateway (bounded
exponential backoff on rate limits and transient outages) and normalizes the
result to a fixed-size JPEG.

There is no broker and no persistence: the queue lives in memory for the
lifetime of one process, which is the scope of a single interactive batch.
"""
