"""Repository rule and configuration document models."""

from typing import List

from pydantic import BaseModel, ConfigDict, Field


class RepositoryRule(BaseModel):
    """A configured repository: name pattern, optional secret, commands."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(alias="Name")  # regular expression, searched unanchored
    secret: str = Field(default="", alias="Secret")  # empty disables the check
    commands: List[str] = Field(default_factory=list, alias="Commands")


class WebhookConfig(BaseModel):
    """The configuration document: listen address, log file and rules."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    address: str = Field(default="", alias="Address")
    port: int = Field(default=8080, alias="Port", ge=1, le=65535)
    logfile: str = Field(default="", alias="Logfile")
    repositories: List[RepositoryRule] = Field(default_factory=list, alias="Repositories")

    @property
    def listen_address(self) -> str:
        """Address in the form used for logging, e.g. ``:8080``."""
        return f"{self.address}:{self.port}"
