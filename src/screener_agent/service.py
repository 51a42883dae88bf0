from __future__ import annotations

import asyncio

import uvicorn

from .api import app
from .config import load_config
from .main import build_runtime, run


async def serve() -> None:
    config = load_config()
    runtime = build_runtime(config)

    server = uvicorn.Server(
        uvicorn.Config(
            app=app,
            host="0.0.0.0",
            port=config.port,
            log_level="info",
        )
    )

    async with asyncio.TaskGroup() as tg:
        feed_task = tg.create_task(run(runtime))
        await server.serve()
        feed_task.cancel()


if __name__ == "__main__":
    asyncio.run(serve())
