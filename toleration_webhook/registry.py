import logging
from typing import Iterable

log = logging.getLogger("toleration-webhook")


class TargetResourceRegistry:
    """
    Set of extended resource names (e.g. ``vendor.com/gpu``) whose pods must
    carry a toleration keyed by the same name.

    Configure once before the server accepts traffic; afterwards handlers only
    read it through ``snapshot()``. ``configure`` is not safe to call while
    requests are being served.
    """

    def __init__(self, names: Iterable[str] = ()) -> None:
        self._names: frozenset[str] = frozenset()
        self.configure(names)

    def configure(self, names: Iterable[str]) -> None:
        self._names = frozenset(n.strip() for n in names if n and n.strip())
        log.info("Target resources configured: %s", sorted(self._names))

    def snapshot(self) -> frozenset[str]:
        return self._names

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __len__(self) -> int:
        return len(self._names)

    def __repr__(self) -> str:
        return f"TargetResourceRegistry({sorted(self._names)!r})"
