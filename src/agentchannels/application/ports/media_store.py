from __future__ import annotations
from typing import Literal, Optional, Protocol

from agentchannels.domain.entities.attachment import SavedMedia

class MediaStore(Protocol):
    def save(
        self,
        data: bytes,
        content_type: Optional[str],
        direction: Literal["inbound", "outbound"],
        max_bytes: int,
    ) -> SavedMedia: ...
