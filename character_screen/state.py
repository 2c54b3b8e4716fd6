"""Screen state machine for the character list.

The screen is a single immutable ``ScreenState`` whose ``phase`` is exactly one of
``Loading``, ``Failed`` or ``Loaded``. User gestures and fetch completions are
events; ``reduce()`` maps ``(state, event)`` to the next state plus, at most, one
``StartFetch`` command for the controller to execute. Nothing here performs I/O,
so the whole machine is testable without a network or a rendering surface.

Every issued fetch gets a monotonically increasing sequence number. With the
``latest_issued`` policy a completion is applied only if it belongs to the most
recently issued fetch; ``last_settled`` reproduces the older behavior where
whichever fetch settles last wins.
"""

from typing import Annotated, Literal, NamedTuple, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from .schemas import Character

StalePolicy = Literal["latest_issued", "last_settled"]


class Loading(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["loading"] = "loading"


class Failed(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["error"] = "error"
    message: str


class Loaded(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["loaded"] = "loaded"
    characters: Tuple[Character, ...] = ()


Phase = Annotated[Union[Loading, Failed, Loaded], Field(discriminator="kind")]


class ScreenState(BaseModel):
    """Everything the screen knows.

    Attributes:
        query: Current name filter; ``""`` means unfiltered.
        phase: Loading, Failed(message) or Loaded(characters).
        latest_seq: Sequence number of the most recently issued fetch (0 = none yet).
    """

    model_config = ConfigDict(frozen=True)

    query: str = ""
    phase: Phase = Loading()
    latest_seq: int = 0

    @property
    def busy(self) -> bool:
        return isinstance(self.phase, Loading)


# ---------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------


class Mounted(NamedTuple):
    """Screen created; load the unfiltered list."""


class SearchSubmitted(NamedTuple):
    text: str


class SearchCleared(NamedTuple):
    pass


class Refreshed(NamedTuple):
    """Pull-to-refresh, toolbar refresh or a retry action."""


class FetchSucceeded(NamedTuple):
    seq: int
    characters: Tuple[Character, ...]


class FetchFailed(NamedTuple):
    seq: int
    message: str


Event = Union[Mounted, SearchSubmitted, SearchCleared, Refreshed, FetchSucceeded, FetchFailed]


class StartFetch(NamedTuple):
    """Command: issue fetch number ``seq`` with ``query`` (``None`` = unfiltered)."""

    seq: int
    query: Optional[str]


class Transition(NamedTuple):
    state: ScreenState
    command: Optional[StartFetch] = None
    stale: bool = False


def _start(state: ScreenState, query: str) -> Transition:
    seq = state.latest_seq + 1
    nxt = ScreenState(query=query, phase=Loading(), latest_seq=seq)
    return Transition(nxt, StartFetch(seq, query or None))


def reduce(
    state: ScreenState, event: Event, policy: StalePolicy = "latest_issued"
) -> Transition:
    """Apply one event to the screen state.

    Args:
        state: Current state.
        event: The event to apply.
        policy: How to treat completions of superseded fetches.

    Returns:
        The next state, an optional fetch command, and whether the event was a
        stale completion that got discarded.
    """
    if isinstance(event, (Mounted, Refreshed)):
        return _start(state, state.query)

    if isinstance(event, SearchSubmitted):
        # stored trimmed: whitespace-only text means "no filter", same as clear
        return _start(state, event.text.strip())

    if isinstance(event, SearchCleared):
        return _start(state, "")

    if isinstance(event, (FetchSucceeded, FetchFailed)):
        if policy == "latest_issued" and event.seq != state.latest_seq:
            return Transition(state, stale=True)
        if isinstance(event, FetchSucceeded):
            phase = Loaded(characters=tuple(event.characters))
        else:
            phase = Failed(message=event.message)
        return Transition(state.model_copy(update={"phase": phase}))

    raise TypeError(f"unknown screen event: {event!r}")
