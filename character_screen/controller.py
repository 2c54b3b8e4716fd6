"""View controller for the character list screen.

Owns the single ``ScreenState``, turns user gestures into events, runs the fetch
commands produced by the reducer and derives the view document the presentation
layer draws. All mutation happens on the event loop thread; each fetch is an
``asyncio`` task that is never cancelled, only (possibly) ignored when it settles.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Protocol, Set

from . import metrics
from .errors import FetchError
from .schemas import (
    Character,
    CharacterItem,
    DetailView,
    EmptyView,
    ErrorView,
    ListView,
    LoadingView,
    ScreenOut,
)
from .state import (
    Event,
    FetchFailed,
    FetchSucceeded,
    Failed,
    Loaded,
    Loading,
    Mounted,
    Refreshed,
    ScreenState,
    SearchCleared,
    SearchSubmitted,
    StalePolicy,
    StartFetch,
    reduce,
)

log = logging.getLogger(__name__)


class CharacterSource(Protocol):
    async def fetch_characters(self, name: Optional[str] = None) -> List[Character]:
        ...


def to_item(c: Character) -> CharacterItem:
    """Map a character to its list tile (subtitle + accessibility label)."""
    return CharacterItem(
        character=c,
        subtitle=f"{c.species} • {c.status}",
        label=f"Character: {c.name}, {c.species}, status {c.status}",
    )


class CharacterListController:
    """State holder and command runner for the character list screen.

    Args:
        service: Anything with an async ``fetch_characters(name)``.
        policy: ``latest_issued`` drops completions of superseded fetches;
            ``last_settled`` lets the last one to finish win.
    """

    def __init__(
        self, service: CharacterSource, policy: StalePolicy = "latest_issued"
    ) -> None:
        self._service = service
        self._policy = policy
        self._state = ScreenState()
        self._tasks: Dict[int, asyncio.Task] = {}
        self._in_flight: Set[int] = set()

    @property
    def state(self) -> ScreenState:
        return self._state

    @property
    def in_flight(self) -> List[int]:
        """Sequence numbers of fetches that have not settled yet."""
        return sorted(self._in_flight)

    # -----------------------------------------------------------------
    # Commands
    # -----------------------------------------------------------------

    def dispatch(self, event: Event) -> Optional[asyncio.Task]:
        """Apply an event and start the fetch it asks for, if any.

        Must be called from the running event loop.

        Returns:
            The fetch task when the event started one, else ``None``.
        """
        t = reduce(self._state, event, self._policy)
        if t.stale:
            metrics.record_stale_result()
            log.info(
                "fetch.stale_ignored seq=%d latest=%d",
                event.seq,
                self._state.latest_seq,
            )
        self._state = t.state
        if t.command is None:
            return None
        return self._start_fetch(t.command)

    def mount(self) -> asyncio.Task:
        return self.dispatch(Mounted())

    def search(self, text: str) -> asyncio.Task:
        return self.dispatch(SearchSubmitted(text))

    def clear_search(self) -> asyncio.Task:
        return self.dispatch(SearchCleared())

    def refresh(self) -> asyncio.Task:
        return self.dispatch(Refreshed())

    # the retry button on the error and empty views does the same as refresh
    retry = refresh

    def _start_fetch(self, cmd: StartFetch) -> asyncio.Task:
        log.info("fetch.start seq=%d query=%r", cmd.seq, cmd.query)
        self._in_flight.add(cmd.seq)
        task = asyncio.create_task(self._run(cmd), name=f"character-fetch-{cmd.seq}")
        self._tasks[cmd.seq] = task
        task.add_done_callback(lambda _t, seq=cmd.seq: self._tasks.pop(seq, None))
        return task

    async def _run(self, cmd: StartFetch) -> None:
        try:
            characters = await self._service.fetch_characters(cmd.query)
        except FetchError as exc:
            log.info("fetch.failed seq=%d kind=%s message=%s", cmd.seq, exc.kind, exc.message)
            self.dispatch(FetchFailed(cmd.seq, exc.message))
        except Exception as exc:
            log.exception("fetch.crashed seq=%d", cmd.seq)
            # logged with traceback above; the screen shows it like any failure
            self.dispatch(FetchFailed(cmd.seq, f"Unexpected error: {exc!r}"))
        else:
            log.info("fetch.succeeded seq=%d returned=%d", cmd.seq, len(characters))
            self.dispatch(FetchSucceeded(cmd.seq, tuple(characters)))
        finally:
            self._in_flight.discard(cmd.seq)

    async def wait_idle(self) -> None:
        """Wait until every issued fetch has settled (success or failure)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def aclose(self) -> None:
        """Tear the screen down once in-flight fetches have settled."""
        await self.wait_idle()

    # -----------------------------------------------------------------
    # Presentation
    # -----------------------------------------------------------------

    @property
    def title(self) -> str:
        q = self._state.query
        return f'Search: "{q}"' if q else "Characters"

    def present(self) -> ScreenOut:
        """Derive what to draw from the current state.

        Precedence: error, then loading, then empty, then the list.
        """
        phase = self._state.phase
        if isinstance(phase, Failed):
            view = ErrorView(message=phase.message)
        elif isinstance(phase, Loading):
            view = LoadingView()
        elif not phase.characters:
            view = EmptyView()
        else:
            view = ListView(items=[to_item(c) for c in phase.characters])
        return ScreenOut(
            query=self._state.query, title=self.title, phase=phase.kind, view=view
        )

    def detail(self, character_id: int) -> Optional[DetailView]:
        """Return the detail overlay for a listed character, if it is listed.

        Opening or closing the overlay leaves the screen state untouched.
        """
        phase = self._state.phase
        if not isinstance(phase, Loaded):
            return None
        for c in phase.characters:
            if c.id == character_id:
                return DetailView(name=c.name, species=c.species, status=c.status)
        return None
