"""Container status models parsed from ``docker compose ps``."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ContainerStatus(BaseModel):
    """One row of ``docker compose ps --format json``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = Field(..., alias="Name")
    service: str = Field(default="", alias="Service")
    state: str = Field(default="", alias="State")
    status: str = Field(default="", alias="Status")
    ports: str = Field(default="", alias="Ports")

    @property
    def is_running(self) -> bool:
        """Whether the container is up."""
        return self.state == "running"
