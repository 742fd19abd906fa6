from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

@dataclass(frozen=True)
class SavedMedia:
    path: str
    content_type: Optional[str] = None


@dataclass(frozen=True)
class SmsMedia:
    url: str
    content_type: Optional[str] = None
