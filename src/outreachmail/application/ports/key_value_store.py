from __future__ import annotations
from typing import Optional, Protocol

class KeyValueStore(Protocol):
    def get_setting(self, key: str) -> Optional[str]: ...
    def upsert_setting(self, key: str, value: str) -> None: ...
    def delete_setting(self, key: str) -> None: ...
    def delete_settings_with_suffix(self, suffix: str) -> int: ...
