# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Mirrowel

"""
Dashboard backend entry point.

Runs an AccountMonitor inside a FastAPI app and exposes its change stream
on a single WebSocket endpoint:

    /ws     first message is the full snapshot ("initial"), then every
            published event in order; {"type": "ping"} is answered with
            {"type": "pong"}

A subscriber that falls too far behind is disconnected (close code 1013)
and is expected to reconnect, which gives it a fresh snapshot.
"""

import asyncio
import json
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from monitor_library import AccountMonitor, MonitorConfig, Subscription

logger = logging.getLogger("dashboard_app")

WS_CLOSE_GOING_AWAY = 1001
WS_CLOSE_LAGGING = 1013  # "try again later"


async def _forward(
    websocket: WebSocket, subscription: Subscription, send_lock: asyncio.Lock
) -> None:
    async for envelope in subscription:
        async with send_lock:
            await websocket.send_text(envelope.to_json())


async def _receive(websocket: WebSocket, send_lock: asyncio.Lock) -> None:
    while True:
        data = await websocket.receive_text()
        try:
            message = json.loads(data)
        except ValueError:
            continue
        if isinstance(message, dict) and message.get("type") == "ping":
            async with send_lock:
                await websocket.send_text(
                    json.dumps({"type": "pong", "timestamp": int(time.time() * 1000)})
                )


def create_app(monitor: Optional[AccountMonitor] = None) -> FastAPI:
    """
    Build the FastAPI app around ``monitor``.

    The app's lifespan starts the monitor on startup and stops it on
    shutdown.
    """
    if monitor is None:
        monitor = AccountMonitor(MonitorConfig.from_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await monitor.start()
        logger.info(f"Monitor running: {monitor.describe()}")
        yield
        await monitor.stop()

    app = FastAPI(title="Account Monitor", lifespan=lifespan)
    app.state.monitor = monitor

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await websocket.accept()
        subscription = monitor.subscribe()
        logger.info(
            f"Dashboard client connected ({monitor.subscriber_count} connected)"
        )

        send_lock = asyncio.Lock()
        forward_task = asyncio.create_task(_forward(websocket, subscription, send_lock))
        receive_task = asyncio.create_task(_receive(websocket, send_lock))
        try:
            done, _ = await asyncio.wait(
                {forward_task, receive_task}, return_when=asyncio.FIRST_COMPLETED
            )
            for task in done:
                error = task.exception()
                if error is not None and not isinstance(error, WebSocketDisconnect):
                    logger.error(f"WebSocket error: {type(error).__name__}: {error}")
            if (
                forward_task in done
                and receive_task not in done
                and forward_task.exception() is None
            ):
                # Subscription ended on the server side
                if subscription.dropped:
                    logger.warning(
                        f"Dashboard client {subscription.id} fell behind, disconnecting"
                    )
                await websocket.close(
                    code=WS_CLOSE_LAGGING if subscription.dropped else WS_CLOSE_GOING_AWAY
                )
        finally:
            for task in (forward_task, receive_task):
                task.cancel()
            await asyncio.gather(forward_task, receive_task, return_exceptions=True)
            subscription.close()
            logger.info(
                f"Dashboard client disconnected ({monitor.subscriber_count} connected)"
            )

    return app


def _configure_logging() -> None:
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def run() -> None:
    """Console entry point: load .env, print the banner, serve."""
    load_dotenv()
    _configure_logging()

    config = MonitorConfig.from_env()
    console = Console()
    console.print(
        Panel(
            f"[bold]Registry:[/bold] {config.accounts_file}\n"
            f"[bold]WebSocket:[/bold] ws://{config.host}:{config.port}/ws\n"
            f"[bold]Quota polling:[/bold] "
            + (
                f"every {config.quota_poll_interval:g}s"
                if config.quota_poll_enabled
                else "[yellow]disabled[/yellow]"
            ),
            title="Account Monitor",
            style="cyan",
        )
    )

    app = create_app(AccountMonitor(config))
    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level=os.environ.get("LOG_LEVEL", "INFO").lower(),
        ws_ping_interval=20,
        ws_ping_timeout=10,
    )


if __name__ == "__main__":
    run()
