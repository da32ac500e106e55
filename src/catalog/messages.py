"""Request/response metadata exchanged between the HTTP layer and the catalog."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Request:
    """An inbound request as seen after routing.

    `route` is the matched route template (e.g. "api/products/{id}"), `path`
    the concrete path.
    """

    method: str
    route: str
    path: str = ""
    scheme: str = "http"
    host: str = "localhost"
    content_length: int | None = None
    headers: dict[str, str] = field(default_factory=dict)
    path_params: dict[str, str] = field(default_factory=dict)
    body: dict[str, Any] | None = None


@dataclass(frozen=True)
class Response:
    status_code: int
    body: Any = None

    @property
    def status_class(self) -> str:
        return status_class(self.status_code)


def status_class(status_code: int) -> str:
    """Low-cardinality status dimension ("2xx", "4xx", ...)."""
    return f"{status_code // 100}xx"
