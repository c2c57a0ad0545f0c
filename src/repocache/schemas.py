from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Literal, TypeAlias, TypeGuard

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProviderModel(BaseModel):
    """Base for payloads coming from the search API; unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class RepoOwner(ProviderModel):
    login: str


class RepoRecord(ProviderModel):
    id: int
    name: str
    repo_url: str = Field(alias="html_url")
    owner: RepoOwner
    owner_login: str = ""
    description: str | None = None
    language: str | None = None
    stars: int = Field(default=0, ge=0, alias="stargazers_count")
    forks: int = Field(default=0, ge=0, alias="forks_count")

    @field_validator("stars", "forks", mode="before")
    @classmethod
    def default_missing_counts(cls, value: object) -> object:
        if value is None:
            return 0
        return value

    def with_owner_login(self) -> RepoRecord:
        """Return a copy whose flattened owner_login mirrors the nested owner."""
        return self.model_copy(update={"owner_login": self.owner.login})


class SearchResponse(ProviderModel):
    total_count: int = 0
    incomplete_results: bool = False
    items: list[RepoRecord]


class FailureKind(StrEnum):
    NETWORK = "network"
    EMPTY = "empty"


@dataclass(slots=True, frozen=True)
class FetchSuccess:
    records: tuple[RepoRecord, ...]


@dataclass(slots=True, frozen=True)
class FetchFailure:
    reason: str
    kind: FailureKind = FailureKind.NETWORK


FetchOutcome: TypeAlias = FetchSuccess | FetchFailure


@dataclass(slots=True, frozen=True)
class Pending:
    pass


@dataclass(slots=True, frozen=True)
class Ready:
    records: tuple[RepoRecord, ...]
    source: Literal["remote", "cache"] = "remote"
    cache_error: str | None = None


@dataclass(slots=True, frozen=True)
class Failed:
    reason: str


QueryResult: TypeAlias = Pending | Ready | Failed


def is_terminal(result: QueryResult) -> TypeGuard[Ready | Failed]:
    return isinstance(result, (Ready, Failed))
