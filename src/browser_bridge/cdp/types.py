"""Types for the Chrome DevTools endpoint."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

PAGE_TYPE = "page"


class Target(BaseModel):
    """An entry of the CDP ``/json/list`` listing (usually a tab)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    type: str = PAGE_TYPE
    title: str = ""
    url: str = ""
    control_socket_url: str | None = Field(default=None, alias="webSocketDebuggerUrl")

    @property
    def is_page(self) -> bool:
        return self.type == PAGE_TYPE

    def summary(self) -> dict[str, Any]:
        """The id/title/url view handed to tool callers."""
        return {"id": self.id, "title": self.title, "url": self.url}


@dataclass
class ConsoleEntry:
    """A buffered console message from an attached target."""

    type: str
    text: str
    timestamp: str  # ISO8601
    target_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
