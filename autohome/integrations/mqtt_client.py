"""Async MQTT client for configuration events and telemetry."""

from __future__ import annotations

import asyncio
import json
import logging
import ssl
import time
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any

import aiomqtt

from autohome.models.enums import SyncOperation

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class ConfigEvent:
    """Incremental configuration update received on the subscription channel."""

    zone_id: str
    operation: str
    payload: Any
    topic: str = ""
    timestamp: float = field(default_factory=time.time)


Callback = Callable[[ConfigEvent], Awaitable[None] | None]


def config_topics(home_id: str) -> list[str]:
    """Subscription filters for every incremental operation of *home_id*."""
    return [f"homes/{home_id}/zones/+/{operation.value}" for operation in SyncOperation]


def parse_config_topic(topic: str, home_id: str) -> tuple[str, str] | None:
    """Split ``homes/{home}/zones/{zone}/{operation}`` into ``(zone, operation)``.

    Returns ``None`` for topics outside this home's zone namespace.  The
    operation is returned verbatim; validating it is the sync engine's job.
    """
    parts = topic.strip("/").split("/")
    if len(parts) != 5 or parts[0] != "homes" or parts[2] != "zones":
        return None
    if parts[1] != home_id or not parts[3] or not parts[4]:
        return None
    return parts[3], parts[4]


def telemetry_topic(home_id: str, zone_id: str, device_id: str, kind: str) -> str:
    return f"homes/{home_id}/zones/{zone_id}/devices/{device_id}/{kind}"


# ---------------------------------------------------------------------------
# MQTT Client
# ---------------------------------------------------------------------------


class MQTTClient:
    """aiomqtt-based client with automatic reconnection, subscription
    restore, and callback dispatch of configuration events."""

    _RECONNECT_DELAYS = (1, 2, 5, 10, 30, 60)
    _POLL_INTERVAL = 1.0

    def __init__(
        self,
        *,
        broker: str,
        home_id: str,
        port: int = 1883,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = False,
        keepalive: int = 60,
    ) -> None:
        # Connection parameters
        self._broker = broker
        self._port = port
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._keepalive = keepalive
        self._home_id = home_id

        # Internal state
        self._client_cm: aiomqtt.Client | None = None
        self._client: aiomqtt.Client | None = None
        self._connected = asyncio.Event()
        self._stop = False
        self._lock = asyncio.Lock()
        self._message_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None

        # Callbacks
        self._callbacks: list[Callback] = []

        # Subscriptions to restore after reconnect
        self._subscriptions: set[str] = set()

    @property
    def connected(self) -> bool:
        return self._connected.is_set()

    # ------------------------------------------------------------------
    # Public API: lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Start the background connection loop and return immediately.

        The loop keeps retrying with backoff (the last delay in
        ``_RECONNECT_DELAYS`` repeats forever) until the broker accepts the
        connection, and reconnects whenever it is lost.  Subscriptions and
        callbacks registered before the first successful connect are
        restored on every (re)connect.
        """
        async with self._lock:
            if self._reconnect_task is not None and not self._reconnect_task.done():
                return
            self._stop = False
            self._reconnect_task = asyncio.create_task(
                self._reconnect_loop(), name="mqtt-reconnect-loop"
            )

    async def disconnect(self) -> None:
        """Cleanly disconnect from the broker and cancel background tasks."""
        self._stop = True
        self._connected.clear()
        await self._shutdown_tasks()
        async with self._lock:
            if self._client_cm:
                with suppress(Exception):
                    await self._client_cm.__aexit__(None, None, None)
            self._client_cm = None
            self._client = None
            logger.info("MQTT disconnected from %s:%s", self._broker, self._port)

    # ------------------------------------------------------------------
    # Public API: subscribe / publish
    # ------------------------------------------------------------------

    async def subscribe(self, topics: str | list[str], *, qos: int = 1) -> None:
        """Subscribe now if connected; always remembered for the next connect."""
        if isinstance(topics, str):
            topics = [topics]

        for topic in topics:
            self._subscriptions.add(topic)
            if self._client is not None and self._connected.is_set():
                await self._client.subscribe(topic, qos=qos)
                logger.debug("Subscribed to %s", topic)
            else:
                logger.debug("Subscription to %s deferred until connected", topic)

    async def subscribe_config(self) -> None:
        """Subscribe to all incremental configuration operations of this home."""
        await self.subscribe(config_topics(self._home_id))

    async def publish(
        self,
        topic: str,
        payload: dict[str, Any] | str | bytes,
        *,
        qos: int = 1,
        retain: bool = True,
    ) -> None:
        """Publish a message.  Dicts are JSON-serialized automatically."""
        if self._client is None or not self._connected.is_set():
            raise RuntimeError("MQTT client not connected")

        if isinstance(payload, bytes):
            data = payload
        elif isinstance(payload, str):
            data = payload.encode()
        else:
            data = json.dumps(payload, separators=(",", ":"), default=str).encode()

        await self._client.publish(topic, payload=data, qos=qos, retain=retain)
        logger.debug("Published to %s (%d bytes)", topic, len(data))
    # ------------------------------------------------------------------
    # Public API: callbacks
    # ------------------------------------------------------------------

    def add_callback(self, callback: Callback) -> None:
        """Register a callback invoked for every configuration event."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def remove_callback(self, callback: Callback) -> None:
        with suppress(ValueError):
            self._callbacks.remove(callback)

    # ------------------------------------------------------------------
    # Message handling
    # ------------------------------------------------------------------

    def _handle_message(self, topic: str, payload: bytes) -> None:
        """Turn a raw message on a configuration topic into a ``ConfigEvent``.

        Undecodable payloads still produce an event (with ``payload=None``)
        so the sync engine can log and drop it in one place.
        """
        parsed = parse_config_topic(topic, self._home_id)
        if parsed is None:
            logger.debug("Ignoring message on %s", topic)
            return
        zone_id, operation = parsed
        event = ConfigEvent(
            zone_id=zone_id, operation=operation, payload=self._decode(payload), topic=topic
        )
        self._dispatch(event)

    # ------------------------------------------------------------------
    # Background loops
    # ------------------------------------------------------------------

    async def _message_loop(self) -> None:
        if self._client is None:
            raise RuntimeError("MQTT client not connected")
        client = self._client
        try:
            async for message in client.messages:
                try:
                    self._handle_message(
                        message.topic.value,
                        message.payload if isinstance(message.payload, bytes) else b"",
                    )
                except Exception:
                    logger.exception("Error handling message on %s", message.topic.value)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("MQTT message loop error; will trigger reconnect")
            self._connected.clear()
        finally:
            self._message_task = None

    async def _reconnect_loop(self) -> None:
        """Connect, then monitor the connection and reconnect with backoff."""
        attempt = 0
        while not self._stop:
            if self._connected.is_set():
                attempt = 0
                await asyncio.sleep(self._POLL_INTERVAL)
                continue

            try:
                await self._reopen()
            except Exception as exc:
                delay = self._RECONNECT_DELAYS[min(attempt, len(self._RECONNECT_DELAYS) - 1)]
                attempt += 1
                logger.warning(
                    "MQTT connect attempt %d failed (%s), retrying in %ss", attempt, exc, delay
                )
                await asyncio.sleep(delay)
            else:
                logger.info(
                    "MQTT connected to %s:%s (attempt %d)", self._broker, self._port, attempt + 1
                )

    # ------------------------------------------------------------------
    # Internal helpers: connection management
    # ------------------------------------------------------------------

    async def _open_connection(self) -> None:
        tls_ctx = ssl.create_default_context() if self._use_tls else None
        self._client_cm = aiomqtt.Client(
            hostname=self._broker,
            port=self._port,
            username=self._username,
            password=self._password,
            keepalive=self._keepalive,
            tls_context=tls_ctx,
        )
        self._client = await self._client_cm.__aenter__()
        self._connected.set()

    async def _reopen(self) -> None:
        """Tear down the old connection and establish a fresh one,
        restoring all active subscriptions."""
        async with self._lock:
            self._connected.clear()
            if self._client_cm:
                with suppress(Exception):
                    await self._client_cm.__aexit__(None, None, None)
            self._client_cm = None
            self._client = None

            await self._open_connection()

            if self._client is None:
                raise RuntimeError("MQTT client not connected")
            for topic in sorted(self._subscriptions):
                try:
                    await self._client.subscribe(topic, qos=1)
                except Exception as exc:
                    logger.warning("Could not restore subscription %s: %s", topic, exc)

            if self._message_task is None or self._message_task.done():
                self._message_task = asyncio.create_task(
                    self._message_loop(), name="mqtt-message-loop"
                )

    async def _shutdown_tasks(self) -> None:
        await self._cancel(self._message_task)
        await self._cancel(self._reconnect_task)
        self._message_task = None
        self._reconnect_task = None

    @staticmethod
    async def _cancel(task: asyncio.Task[None] | None) -> None:
        if not task or task.done():
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    # ------------------------------------------------------------------
    # Internal helpers: decoding & dispatch
    # ------------------------------------------------------------------

    @staticmethod
    def _decode(payload: bytes) -> Any:
        """Decode raw MQTT bytes to a Python object; ``None`` when not JSON."""
        if not payload:
            return None
        try:
            return json.loads(payload.decode())
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None

    def _dispatch(self, event: ConfigEvent) -> None:
        for callback in list(self._callbacks):
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    task = asyncio.create_task(result)
                    task.add_done_callback(_log_task_failure)
            except Exception:
                logger.exception("MQTT callback raised an exception")


def _log_task_failure(task: asyncio.Task[Any]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("MQTT callback task failed", exc_info=exc)


__all__ = [
    "ConfigEvent",
    "MQTTClient",
    "config_topics",
    "parse_config_topic",
    "telemetry_topic",
]
