from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol
from uuid import uuid4


class CancelToken(Protocol):
    def cancel(self) -> None: ...


def _new_handle() -> str:
    return str(uuid4())


@dataclass(eq=False)
class FileRecord:
    """Registry entry for one uploaded file.

    ``location`` is the blob key in storage and never derives from
    ``display_name``, which is client-supplied and only echoed back.
    """

    location: str
    display_name: str
    created_at: float
    expires_at: float
    size: int = 0
    handle: str = field(default_factory=_new_handle)
    cancel_token: CancelToken | None = field(default=None, repr=False)

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now

    def remaining(self, now: float) -> float:
        return self.expires_at - now
