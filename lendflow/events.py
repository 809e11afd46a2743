"""Progress events and the emitter that folds them into session state."""

from __future__ import annotations

import inspect
import logging
from typing import (
    TYPE_CHECKING,
    Annotated,
    Any,
    Callable,
    Dict,
    List,
    Literal,
    Optional,
    Sequence,
    Union,
)

from pydantic import BaseModel, Field, TypeAdapter

from .contracts import (
    FlowSession,
    FlowStatus,
    PartyPatch,
    StatePatch,
    StepRecord,
    utc_now,
)

if TYPE_CHECKING:
    from .transports import BaseTransport

logger = logging.getLogger(__name__)


class ReportPayload(BaseModel):
    report: str


class ErrorPayload(BaseModel):
    message: str
    report: str


class StateUpdateEvent(BaseModel):
    type: Literal["state_update"] = "state_update"
    data: StatePatch


class StepUpdateEvent(BaseModel):
    type: Literal["step_update"] = "step_update"
    data: StepRecord


class PartyUpdateEvent(BaseModel):
    type: Literal["party_update"] = "party_update"
    data: PartyPatch


class FlowCompleteEvent(BaseModel):
    type: Literal["flow_complete"] = "flow_complete"
    data: ReportPayload


class FlowErrorEvent(BaseModel):
    type: Literal["flow_error"] = "flow_error"
    data: ErrorPayload


FlowEvent = Annotated[
    Union[
        StateUpdateEvent,
        StepUpdateEvent,
        PartyUpdateEvent,
        FlowCompleteEvent,
        FlowErrorEvent,
    ],
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[FlowEvent] = TypeAdapter(FlowEvent)

TERMINAL_EVENTS = ("flow_complete", "flow_error")


def parse_event(data: Union[str, bytes, Dict[str, Any]]) -> FlowEvent:
    """Validate a serialized event back into its typed model."""
    if isinstance(data, (str, bytes)):
        return _event_adapter.validate_json(data)
    return _event_adapter.validate_python(data)


def redact_seeds(event: FlowEvent) -> FlowEvent:
    """Return ``event`` with any party seed removed."""
    if isinstance(event, PartyUpdateEvent) and event.data.seed is not None:
        data = event.data.model_copy(update={"seed": "<redacted>"})
        return event.model_copy(update={"data": data})
    return event


def apply_event(session: FlowSession, event: FlowEvent) -> FlowSession:
    """Fold ``event`` into ``session`` and return the new snapshot."""
    if isinstance(event, StepUpdateEvent):
        return session.upsert_step(event.data)
    if isinstance(event, PartyUpdateEvent):
        return session.merge_party(event.data)
    if isinstance(event, StateUpdateEvent):
        return session.merge_state(event.data)
    if isinstance(event, FlowCompleteEvent):
        return session.model_copy(
            update={
                "status": FlowStatus.COMPLETED,
                "completed_at": session.completed_at or utc_now(),
                "report": tuple(event.data.report.split("\n")),
            }
        )
    if isinstance(event, FlowErrorEvent):
        return session.model_copy(
            update={
                "status": FlowStatus.ERROR,
                "completed_at": session.completed_at or utc_now(),
                "error_message": event.data.message,
                "report": tuple(event.data.report.split("\n")),
            }
        )
    raise TypeError(f"Unsupported event: {type(event).__name__}")


Listener = Callable[[FlowEvent, FlowSession], Any]


class ProgressEmitter:
    """Single-direction progress channel for one run.

    Holds the current session snapshot, replaces it on every event and fans
    the event out to transports and listeners. Listeners receive the event
    together with the snapshot it produced and may be coroutine functions.
    """

    def __init__(
        self,
        session: FlowSession,
        transports: Optional[Sequence["BaseTransport"]] = None,
        listeners: Optional[Sequence[Listener]] = None,
    ) -> None:
        self._session = session
        self._transports: List["BaseTransport"] = list(transports or [])
        self._listeners: List[Listener] = list(listeners or [])

    @property
    def session(self) -> FlowSession:
        return self._session

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def emit(self, event: FlowEvent) -> FlowSession:
        self._session = apply_event(self._session, event)
        session = self._session
        for transport in self._transports:
            await transport.publish(event)
        for listener in list(self._listeners):
            outcome = listener(event, session)
            if inspect.isawaitable(outcome):
                await outcome
        return session

    async def step(self, record: StepRecord) -> FlowSession:
        return await self.emit(StepUpdateEvent(data=record))

    async def party(self, patch: PartyPatch) -> FlowSession:
        return await self.emit(PartyUpdateEvent(data=patch))

    async def state(self, **changes: Any) -> FlowSession:
        return await self.emit(StateUpdateEvent(data=StatePatch(**changes)))

    async def complete(self, report: str) -> FlowSession:
        return await self.emit(FlowCompleteEvent(data=ReportPayload(report=report)))

    async def fail(self, message: str, report: str) -> FlowSession:
        return await self.emit(
            FlowErrorEvent(data=ErrorPayload(message=message, report=report))
        )
