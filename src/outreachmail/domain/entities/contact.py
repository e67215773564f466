from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

@dataclass(frozen=True)
class Contact:
    # public_id is the stable external identifier (e.g. the business page URL)
    id: str
    public_id: str
    name: str
    email: Optional[str]
