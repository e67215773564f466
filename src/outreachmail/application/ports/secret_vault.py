from __future__ import annotations
from typing import Optional, Protocol

class SecretVault(Protocol):
    def put(self, scope: str, key: str, plaintext: str) -> None: ...
    def get(self, scope: str, key: str) -> Optional[str]: ...
    def delete(self, scope: str, key: str) -> None: ...
