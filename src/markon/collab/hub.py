"""Collaboration hub: shared annotations and viewed state over WebSockets.

Protocol, per connection:

1. The client's first frame is the bare path of the document it views.
2. The hub replies with ``all_annotations`` then ``viewed_state`` for that path.
3. Client mutations (``new_annotation``, ``delete_annotation``,
   ``clear_annotations``, ``update_viewed_state``) are written to the store
   and, once committed, broadcast to every session viewing the same path.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Annotated, Any, Dict, Literal, Protocol, Union

from fastapi import WebSocketDisconnect
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from markon.collab.broadcast import Broadcaster, Subscription, run_until_first_exit
from markon.collab.store import AnnotationStore
from markon.errors import MessageParseError, StorageError
from markon.models import Annotation

LOGGER = logging.getLogger(__name__)

MAX_FILE_PATH_LENGTH = 4096
POLICY_VIOLATION = 1008


class Connection(Protocol):
    async def receive_text(self) -> str: ...

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class AnnotationBody(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = Field(min_length=1)


class NewAnnotation(BaseModel):
    type: Literal["new_annotation"]
    annotation: AnnotationBody


class DeleteAnnotation(BaseModel):
    type: Literal["delete_annotation"]
    id: str


class ClearAnnotations(BaseModel):
    type: Literal["clear_annotations"]


class UpdateViewedState(BaseModel):
    type: Literal["update_viewed_state"]
    state: Dict[str, Any]


ClientMessage = Annotated[
    Union[NewAnnotation, DeleteAnnotation, ClearAnnotations, UpdateViewedState],
    Field(discriminator="type"),
]
_CLIENT_MESSAGE = TypeAdapter(ClientMessage)


def parse_client_message(raw: str) -> ClientMessage:
    try:
        return _CLIENT_MESSAGE.validate_json(raw)
    except ValidationError as exc:
        raise MessageParseError(str(exc)) from exc


def parse_subscription(raw: str) -> str:
    """Validate the first client frame: a bare, non-empty file path."""
    file_path = raw.strip()
    if not file_path or len(file_path) > MAX_FILE_PATH_LENGTH or "\0" in file_path:
        raise MessageParseError("Expected a file path as the first message")
    if file_path.startswith("{"):
        raise MessageParseError("Expected a file path, got a tagged message")
    return file_path


@dataclass(eq=False)
class ClientSession:
    file_path: str
    subscription: Subscription


class CollaborationHub:
    """Owns the durable store and the fan-out channel for live sessions."""

    def __init__(
        self,
        store: AnnotationStore,
        *,
        broadcaster: Broadcaster | None = None,
        annotations_enabled: bool = True,
        viewed_enabled: bool = True,
    ) -> None:
        self.store = store
        self.broadcaster = broadcaster if broadcaster is not None else Broadcaster()
        self.annotations_enabled = annotations_enabled
        self.viewed_enabled = viewed_enabled
        self._write_lock = asyncio.Lock()

    @property
    def session_count(self) -> int:
        return self.broadcaster.receiver_count

    def snapshot(self, file_path: str) -> list[dict]:
        """Messages replayed to a new session for ``file_path``."""
        annotations = self.store.get_annotations(file_path)
        viewed = self.store.get_viewed_state(file_path)
        return [
            {"type": "all_annotations", "annotations": [a.payload for a in annotations]},
            {"type": "viewed_state", "state": viewed.state},
        ]

    def persist(self, file_path: str, message: ClientMessage) -> dict | None:
        """Apply ``message`` to the store; returns the event to broadcast."""
        if isinstance(message, NewAnnotation):
            if not self.annotations_enabled:
                return None
            payload = message.annotation.model_dump()
            self.store.add_annotation(Annotation(id=message.annotation.id, file_path=file_path, payload=payload))
            return {"type": "new_annotation", "annotation": payload}
        if isinstance(message, DeleteAnnotation):
            if not self.annotations_enabled:
                return None
            self.store.delete_annotation(message.id)
            return {"type": "delete_annotation", "id": message.id}
        if isinstance(message, ClearAnnotations):
            if not self.annotations_enabled:
                return None
            self.store.clear_annotations(file_path)
            return {"type": "clear_annotations"}
        if not self.viewed_enabled:
            return None
        viewed = self.store.save_viewed_state(file_path, message.state)
        return {"type": "viewed_state", "state": viewed.state}

    async def apply(self, file_path: str, message: ClientMessage) -> dict | None:
        """Persist then broadcast; nothing is broadcast if the write failed.

        Writes and their broadcasts are serialised so every subscriber sees
        events in commit order.
        """
        async with self._write_lock:
            try:
                event = await asyncio.to_thread(self.persist, file_path, message)
            except StorageError as exc:
                LOGGER.error("Failed to persist %s for %s: %s", message.type, file_path, exc)
                return None
            if event is None:
                LOGGER.debug("Ignoring disabled message type %s", message.type)
                return None
            self.broadcaster.publish(event, topic=file_path)
            return event

    async def _receive_subscription(self, connection: Connection) -> str | None:
        try:
            return parse_subscription(await connection.receive_text())
        except WebSocketDisconnect:
            return None
        except (MessageParseError, KeyError) as exc:
            LOGGER.info("Closing connection with malformed first message: %s", exc)
            await connection.close(code=POLICY_VIOLATION)
            return None

    async def _inbound(self, connection: Connection, session: ClientSession) -> None:
        while True:
            try:
                raw = await connection.receive_text()
            except WebSocketDisconnect:
                return
            except KeyError:
                LOGGER.debug("Ignoring non-text frame from %s", session.file_path)
                continue
            try:
                message = parse_client_message(raw)
            except MessageParseError as exc:
                LOGGER.debug("Ignoring malformed message: %s", exc)
                continue
            await self.apply(session.file_path, message)

    async def _outbound(self, connection: Connection, session: ClientSession) -> None:
        while True:
            event = await session.subscription.get()
            await connection.send_text(json.dumps(event))

    async def handle(self, connection: Connection) -> None:
        """Serve one accepted connection until either direction ends."""
        file_path = await self._receive_subscription(connection)
        if file_path is None:
            return

        session = ClientSession(file_path, self.broadcaster.subscribe(topic=file_path))
        LOGGER.info("Session joined %s (%d connected)", file_path, self.session_count)
        try:
            try:
                replay = await asyncio.to_thread(self.snapshot, file_path)
            except StorageError as exc:
                LOGGER.error("Failed to load shared state for %s: %s", file_path, exc)
                replay = [
                    {"type": "all_annotations", "annotations": []},
                    {"type": "viewed_state", "state": {}},
                ]
            for message in replay:
                await connection.send_text(json.dumps(message))
            await run_until_first_exit(self._inbound(connection, session), self._outbound(connection, session))
        except (WebSocketDisconnect, RuntimeError) as exc:
            LOGGER.debug("Session for %s ended during replay: %r", file_path, exc)
        finally:
            self.broadcaster.unsubscribe(session.subscription)
            LOGGER.info("Session left %s (%d connected)", file_path, self.session_count)
