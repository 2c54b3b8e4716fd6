"""Pydantic schemas for upstream payloads and screen view documents."""

from typing import Optional, List, Literal, Union, Annotated

from pydantic import BaseModel, ConfigDict, Field


class Character(BaseModel):
    """One character record as returned by the upstream API.

    All five fields are required; unknown upstream fields are ignored.
    """

    model_config = ConfigDict(frozen=True, strict=True)

    id: int
    name: str
    status: str
    species: str
    image: str


class CharacterListResponse(BaseModel):
    """Envelope of ``GET /character``; only ``results`` is consumed."""

    results: List[Character]


# ---------------------------------------------------------------------
# View documents (what the presentation layer draws)
# ---------------------------------------------------------------------


class CharacterItem(BaseModel):
    character: Character
    subtitle: str
    label: str


class ErrorView(BaseModel):
    kind: Literal["error"] = "error"
    headline: str = "Failed to load characters."
    message: str
    action: str = "Retry"


class LoadingView(BaseModel):
    kind: Literal["loading"] = "loading"
    label: str = "Loading characters"


class EmptyView(BaseModel):
    kind: Literal["empty"] = "empty"
    message: str = "No characters found."
    action: str = "Try again"


class ListView(BaseModel):
    kind: Literal["list"] = "list"
    items: List[CharacterItem]


View = Annotated[
    Union[ErrorView, LoadingView, EmptyView, ListView], Field(discriminator="kind")
]


class ScreenOut(BaseModel):
    query: str
    title: str
    phase: Literal["loading", "error", "loaded"]
    view: View


class DetailView(BaseModel):
    """Transient overlay for one record; opening or closing it changes nothing."""

    name: str
    species: str
    status: str


class SearchIn(BaseModel):
    query: str = ""


class HealthcheckOut(BaseModel):
    status: Literal["ok", "degraded"]
    upstream_ok: bool
    phase: Literal["loading", "error", "loaded"]
    character_count: int


class ProblemDetail(BaseModel):
    """RFC 7807-style problem response (simplified)."""

    type: str = "about:blank"
    title: str
    status: int
    detail: Optional[str] = None
    instance: Optional[str] = None
