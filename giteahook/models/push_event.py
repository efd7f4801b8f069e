"""Push event data models."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator


class PushRepository(BaseModel):
    """Repository section of a Gitea/Gogs push payload."""

    model_config = ConfigDict(extra="ignore")

    full_name: str
    id: Optional[int] = None
    name: Optional[str] = None
    html_url: Optional[str] = None
    clone_url: Optional[str] = None


class PushCommit(BaseModel):
    """Commit entry of a push payload."""

    model_config = ConfigDict(extra="ignore")

    id: str = ""
    message: str = ""
    url: Optional[str] = None

    @field_validator("id", "message", mode="before")
    @classmethod
    def null_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class PushEvent(BaseModel):
    """Push notification from a Gitea or Gogs webhook."""

    model_config = ConfigDict(extra="ignore")

    repository: PushRepository
    secret: str = ""  # shared secret configured on the hook, may be absent or null
    ref: Optional[str] = None
    before: Optional[str] = None
    after: Optional[str] = None
    compare_url: Optional[str] = None
    commits: List[PushCommit] = []
    pusher: Optional[Dict[str, Any]] = None
    sender: Optional[Dict[str, Any]] = None

    @field_validator("secret", mode="before")
    @classmethod
    def null_secret_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("commits", mode="before")
    @classmethod
    def null_commits_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def repository_full_name(self) -> str:
        return self.repository.full_name
