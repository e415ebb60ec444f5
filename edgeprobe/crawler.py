from collections import deque
from typing import Callable, Iterable, List, Optional, Set

BOT_USER_AGENT = "Mozilla/5.0 (compatible; BotSim/1.0)"


def no_links(url: str) -> List[str]:
    """
    Link discovery stub. The crawler simulation only measures how the
    target treats a crawler-like client; it does not parse HTML, so the
    frontier never grows past the seed.
    """
    return []


class Frontier:
    """
    Breadth-first, depth-capped, de-duplicated URL frontier.

    ``visited`` is local to one Frontier, i.e. to one probe invocation.
    """

    def __init__(self, seed: str, max_depth: int, max_breadth: int = 50,
                 discover: Callable[[str], Iterable[str]] = no_links):
        self.max_depth = max(1, max_depth)
        self.max_breadth = max(1, max_breadth)
        self.discover = discover
        self.visited: Set[str] = set()
        self._level: deque = deque([seed])
        self.depth = 0

    def next_level(self) -> Optional[List[str]]:
        """URLs to fetch at the current depth, or None when the walk is over."""
        if self.depth >= self.max_depth or not self._level:
            return None
        batch = []
        while self._level and len(batch) < self.max_breadth:
            url = self._level.popleft()
            if url in self.visited:
                continue
            self.visited.add(url)
            batch.append(url)
        self._level.clear()
        self.depth += 1
        return batch

    def expand(self, urls: Iterable[str]):
        """Queues links found on the current level for the next one."""
        for url in urls:
            for link in self.discover(url):
                if link not in self.visited and link not in self._level:
                    self._level.append(link)

    def walk(self, fetch: Callable[[str], None]) -> int:
        """Fetches level by level until the depth cap. Returns URLs fetched."""
        fetched = 0
        while True:
            batch = self.next_level()
            if batch is None:
                return fetched
            for url in batch:
                fetch(url)
                fetched += 1
            self.expand(batch)
