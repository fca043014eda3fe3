"""Request tokens for discarding superseded remote results."""

from collections import defaultdict


class RequestSequencer:
    """Issues increasing tokens per resource; only the newest token is current."""

    def __init__(self) -> None:
        self._latest: defaultdict[str, int] = defaultdict(int)

    def issue(self, resource: str) -> int:
        self._latest[resource] += 1
        return self._latest[resource]

    def is_current(self, resource: str, token: int) -> bool:
        return self._latest[resource] == token
