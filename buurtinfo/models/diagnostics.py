"""Per-request diagnostic trail.

One Diagnostics object is created per lookup and handed to every component
call. Lines are collected in order and returned to the caller as
``debug_info`` when debug output was requested.
"""

import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class Diagnostics:
    lines: list[str] = field(default_factory=list)

    def add(self, line: str) -> None:
        self.lines.append(line)
        logger.debug(line)

    def __len__(self) -> int:
        return len(self.lines)
