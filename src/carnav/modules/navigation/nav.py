from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Dict, Set, Tuple

from ...event_bus import (
    EventBus,
    TOPIC_NAV_CAMERA,
    TOPIC_NAV_COMMAND,
    TOPIC_NAV_ERROR,
    TOPIC_NAV_STATE,
)
from ...models import ErrorNotice, SessionEvent, StateChanged
from .session import NavigationSession

logger = logging.getLogger(__name__)


class Navigation:
    """Runs one NavigationSession for the lifetime of the service.

    - Requests location permission and subscribes the session to the Position Source
    - Republishes session output on `nav.state`, `nav.camera` and `nav.error`
    - Accepts commands on `nav.command`: { action: 'submit_destination'|'clear_destination'|
      'start'|'toggle_tracking'|'center'|'retry_route'|'retry_permission', query?: str }
    """

    def __init__(self, events: EventBus, session: NavigationSession) -> None:
        self._events = events
        self._session = session
        self._task: asyncio.Task | None = None
        self._outbox: asyncio.Queue[Tuple[str, Dict[str, Any]]] = asyncio.Queue()
        self._pending: Set[asyncio.Task[Any]] = set()
        self._unsubscribe = session.subscribe(self._on_session_event)

    @property
    def session(self) -> NavigationSession:
        return self._session

    def snapshot(self) -> Dict[str, Any]:
        return self._session.snapshot().to_dict()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="navigation")

    async def stop(self) -> None:
        self._unsubscribe()
        self._session.close()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    def _on_session_event(self, event: SessionEvent) -> None:
        if isinstance(event, StateChanged):
            self._outbox.put_nowait((TOPIC_NAV_STATE, event.snapshot.to_dict()))
        elif isinstance(event, ErrorNotice):
            self._outbox.put_nowait((TOPIC_NAV_ERROR, event.to_dict()))
        else:
            self._outbox.put_nowait((TOPIC_NAV_CAMERA, event.to_dict()))

    async def _run(self) -> None:
        logger.info("Navigation module started")

        async def publish_outbox() -> None:
            while True:
                topic, payload = await self._outbox.get()
                await self._events.publish(topic, payload)

        async def handle_commands() -> None:
            async for cmd in self._events.subscribe(TOPIC_NAV_COMMAND):
                try:
                    await self.handle_command(cmd)
                except Exception:
                    logger.exception("Navigation command failed: %s", cmd)

        publisher = asyncio.create_task(publish_outbox(), name="navigation-outbox")
        commands = asyncio.create_task(handle_commands(), name="navigation-commands")
        try:
            await self._session.request_permission_and_begin()
            await asyncio.gather(publisher, commands)
        finally:
            publisher.cancel()
            commands.cancel()
            for task in list(self._pending):
                task.cancel()

    async def handle_command(self, cmd: Dict[str, Any]) -> None:
        action = (cmd.get("action") or "").lower()
        session = self._session
        if action == "submit_destination":
            # Runs detached so a newer search can supersede this one
            self._spawn(session.submit_destination(str(cmd.get("query") or "")))
        elif action == "clear_destination":
            session.clear_destination()
        elif action == "start":
            self._spawn(session.start())
        elif action == "toggle_tracking":
            session.toggle_tracking()
        elif action == "center":
            session.center_on_me()
        elif action == "retry_route":
            self._spawn(session.fetch_route())
        elif action == "retry_permission":
            await session.request_permission_and_begin()
        else:
            logger.warning("Unknown navigation command: %s", action or cmd)

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Navigation task failed", exc_info=task.exception())
