from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from starlette.websockets import WebSocket, WebSocketState

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class Connection(Protocol):
    """Anything that can push a JSON payload to one client."""

    @property
    def closed(self) -> bool: ...

    async def send_json(self, payload: dict) -> None: ...

    async def close(self) -> None: ...


class WebSocketConnection:
    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    @property
    def closed(self) -> bool:
        return (
            self.websocket.client_state != WebSocketState.CONNECTED
            or self.websocket.application_state != WebSocketState.CONNECTED
        )

    async def send_json(self, payload: dict) -> None:
        await self.websocket.send_json(payload)

    async def close(self) -> None:
        # 1001 going away
        if self.websocket.application_state == WebSocketState.CONNECTED:
            await self.websocket.close(code=1001)


@dataclass
class PendingMessage:
    payload: dict
    queued_at: datetime


@dataclass
class _Binding:
    connection_id: str
    connection: Connection
    alive: bool
    last_activity: datetime


@dataclass
class SessionRegistry:
    """Live connections and undelivered messages, keyed by session id.

    All mutation happens on the event loop. Every read-modify-write of the two
    stores below completes without an intervening await, so a pending batch is
    handed to exactly one connection even when several register at once.
    Connections dropped by the registry are closed so the client reconnects.
    """

    clock: Clock = datetime.utcnow
    _connections: dict[str, dict[str, _Binding]] = field(default_factory=dict)
    _pending: dict[str, list[PendingMessage]] = field(default_factory=dict)

    async def register(self, session_id: str, connection: Connection) -> str:
        connection_id = uuid.uuid4().hex
        await connection.send_json(
            {'type': 'session_established', 'sessionId': session_id, 'connectionId': connection_id}
        )

        while True:
            batch = self._pending.pop(session_id, None)
            if not batch:
                break
            try:
                await self._flush(session_id, connection, batch)
            except Exception:
                # Tabs that registered during the flush are already live.
                await self._redeliver(session_id)
                raise

        now = self.clock()
        self._connections.setdefault(session_id, {})[connection_id] = _Binding(
            connection_id=connection_id,
            connection=connection,
            alive=True,
            last_activity=now,
        )
        logger.info(
            'connection registered',
            extra={'event': 'connection_registered', 'session_id': session_id, 'connection_id': connection_id},
        )
        return connection_id

    @staticmethod
    def _queued_payload(item: PendingMessage) -> dict:
        payload = dict(item.payload)
        payload['deliveryMode'] = 'queued_delivery'
        payload['queuedAt'] = item.queued_at.isoformat()
        return payload

    def _requeue(self, session_id: str, remainder: list[PendingMessage]) -> None:
        self._pending[session_id] = remainder + self._pending.get(session_id, [])

    async def _flush(self, session_id: str, connection: Connection, batch: list[PendingMessage]) -> None:
        for index, item in enumerate(batch):
            try:
                await connection.send_json(self._queued_payload(item))
            except Exception:
                remainder = batch[index:]
                self._requeue(session_id, remainder)
                logger.warning(
                    'queued delivery failed; requeued remainder',
                    extra={'event': 'queued_delivery_failed', 'session_id': session_id, 'requeued': len(remainder)},
                )
                raise
        logger.info(
            'delivered queued messages',
            extra={'event': 'queued_delivery', 'session_id': session_id, 'count': len(batch)},
        )

    async def _redeliver(self, session_id: str) -> None:
        """Fan the pending queue out to the session's live connections, oldest first."""
        while self._connections.get(session_id):
            batch = self._pending.pop(session_id, None)
            if not batch:
                return
            for index, item in enumerate(batch):
                if not await self._fan_out(session_id, self._queued_payload(item)):
                    self._requeue(session_id, batch[index:])
                    return

    async def _drop(self, session_id: str, binding: _Binding) -> None:
        self.unregister(session_id, binding.connection_id)
        try:
            await binding.connection.close()
        except Exception as exc:
            logger.debug(
                'close failed on dropped connection',
                extra={'event': 'close_failed', 'session_id': session_id, 'error': str(exc)},
            )

    def unregister(self, session_id: str, connection_id: str) -> None:
        bindings = self._connections.get(session_id)
        if not bindings or connection_id not in bindings:
            return
        del bindings[connection_id]
        if not bindings:
            del self._connections[session_id]
        logger.info(
            'connection unregistered',
            extra={'event': 'connection_unregistered', 'session_id': session_id, 'connection_id': connection_id},
        )

    def mark_alive(self, session_id: str, connection_id: str) -> None:
        binding = self._connections.get(session_id, {}).get(connection_id)
        if binding is not None:
            binding.alive = True
            binding.last_activity = self.clock()

    def _enqueue(self, session_id: str, message: dict) -> None:
        self._pending.setdefault(session_id, []).append(PendingMessage(payload=message, queued_at=self.clock()))

    async def _fan_out(self, session_id: str, message: dict) -> int:
        delivered = 0
        for binding in list(self._connections.get(session_id, {}).values()):
            if binding.connection.closed:
                await self._drop(session_id, binding)
                continue
            try:
                await binding.connection.send_json(message)
            except Exception:
                logger.warning(
                    'send failed; dropping connection',
                    extra={'event': 'send_failed', 'session_id': session_id, 'connection_id': binding.connection_id},
                )
                await self._drop(session_id, binding)
                continue
            binding.last_activity = self.clock()
            delivered += 1
        return delivered

    async def send(self, session_id: str, message: dict) -> bool:
        if await self._fan_out(session_id, message):
            return True
        self._enqueue(session_id, message)
        logger.info(
            'no open connection; message queued',
            extra={'event': 'message_queued', 'session_id': session_id, 'queued': len(self._pending[session_id])},
        )
        return False

    async def broadcast(self, message: dict) -> int:
        delivered = 0
        for session_id, bindings in list(self._connections.items()):
            for binding in list(bindings.values()):
                try:
                    await binding.connection.send_json(message)
                    delivered += 1
                except Exception:
                    await self._drop(session_id, binding)
        return delivered

    async def sweep(self) -> int:
        """Close connections that missed the last ping, then ping the rest."""
        pruned = 0
        for session_id, bindings in list(self._connections.items()):
            for binding in list(bindings.values()):
                if binding.connection.closed or not binding.alive:
                    await self._drop(session_id, binding)
                    pruned += 1
                    continue
                binding.alive = False
                try:
                    await binding.connection.send_json({'type': 'ping'})
                except Exception:
                    await self._drop(session_id, binding)
                    pruned += 1
        if pruned:
            logger.info('liveness sweep pruned connections', extra={'event': 'liveness_sweep', 'pruned': pruned})
        return pruned

    async def run_liveness_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.sweep()
            except Exception:
                logger.exception('liveness sweep failed', extra={'event': 'liveness_sweep_failed'})

    def connection_count(self, session_id: str) -> int:
        return len(self._connections.get(session_id, {}))

    def pending_count(self, session_id: str) -> int:
        return len(self._pending.get(session_id, []))

    def snapshot(self) -> dict[str, Any]:
        session_ids = sorted(set(self._connections) | set(self._pending))
        sessions = []
        for session_id in session_ids:
            bindings = self._connections.get(session_id, {})
            sessions.append(
                {
                    'session_id': session_id,
                    'connections': [
                        {
                            'connection_id': b.connection_id,
                            'alive': b.alive,
                            'closed': b.connection.closed,
                            'last_activity': b.last_activity.isoformat(),
                        }
                        for b in bindings.values()
                    ],
                    'pending': len(self._pending.get(session_id, [])),
                }
            )
        return {
            'total_sessions': len(self._connections),
            'total_connections': sum(len(b) for b in self._connections.values()),
            'total_pending': sum(len(q) for q in self._pending.values()),
            'sessions': sessions,
        }
