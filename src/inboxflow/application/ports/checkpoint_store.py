from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class SyncCursor:
    # Opaque provider page token for one mailbox grant
    grant_id: str
    token: Optional[str]


class CheckpointStore(Protocol):
    async def load(self, grant_id: str) -> Optional[SyncCursor]: ...
    async def save(self, user_id: str, cursor: SyncCursor) -> None: ...
