from __future__ import annotations
from typing import Dict, Optional

from ..debug_util import dbg


class ResourceIdCache:
    """instance id -> DbiResourceId, scoped to the hosting process.

    The handler module owns one instance for the life of the runtime (a warm
    Lambda container reuses it across invocations); tests and the runner pass
    their own.
    """

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._ids: Dict[str, str] = dict(initial or {})

    def get_or_resolve(self, instance_id: str, resolver) -> str:
        rid = self._ids.get(instance_id)
        if rid is None:
            rid = resolver.resolve(instance_id)
            self._ids[instance_id] = rid
            dbg(f'resource_id_resolved instance={instance_id} resource_id={rid}')
        return rid

    def snapshot(self) -> Dict[str, str]:
        return dict(self._ids)

    def clear(self) -> None:
        self._ids.clear()

    def __contains__(self, instance_id: str) -> bool:
        return instance_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)


__all__ = ["ResourceIdCache"]
