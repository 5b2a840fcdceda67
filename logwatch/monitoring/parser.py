"""
Log Parser - turns one raw line into at most one ParsedEvent.
"""

import re
from typing import Any, Callable, Protocol, runtime_checkable

from logwatch.monitoring.errors import ParseError
from logwatch.monitoring.events import EventBus, ParserEvent
from logwatch.monitoring.patterns import Handler, Matcher, PatternRegistry
from logwatch.monitoring.schemas import ParsedEvent
from logwatch.shared.logger import get_logger

logger = get_logger()

# [HH:MM:SS] [Thread/LEVEL]: message
METADATA_RE = re.compile(r"^\[(\d{2}:\d{2}:\d{2})\]\s+\[([^\]]+)/(INFO|WARN|ERROR|DEBUG)\]:")
TIMESTAMP_RE = re.compile(r"^\[(\d{2}:\d{2}:\d{2})\]")


@runtime_checkable
class LogParser(Protocol):
    """Anything that can turn a raw line into a structured event."""

    def parse(self, line: str) -> ParsedEvent | None:
        ...


def extract_metadata(line: str) -> dict[str, str | None]:
    """Pull timestamp/thread/level out of a bracketed log prefix."""
    match = METADATA_RE.match(line)
    if match:
        return {"timestamp": match.group(1), "thread": match.group(2), "level": match.group(3)}

    match = TIMESTAMP_RE.match(line)
    if match:
        return {"timestamp": match.group(1), "thread": None, "level": None}

    return {"timestamp": None, "thread": None, "level": None}


class PatternLogParser:
    """Registry-backed parser.

    Handler failures never propagate: the line is treated as unparsed, the
    failure is logged and published as a ``parse_error`` notification.
    """

    def __init__(
        self,
        registry: PatternRegistry | None = None,
        include_metadata: bool = True,
        default_priority: int = 1,
    ):
        self.registry = registry if registry is not None else PatternRegistry()
        self.include_metadata = include_metadata
        self.default_priority = default_priority
        self.events = EventBus("parser")

    def parse(self, line: str) -> ParsedEvent | None:
        if not line or not isinstance(line, str):
            return None

        trimmed = line.strip()
        if not trimmed:
            return None

        try:
            result = self.registry.match(trimmed)
        except ParseError as e:
            logger.warning(f"Unparsed line ({e.pattern}): {e.cause}")
            self.events.emit(ParserEvent.PARSE_ERROR, e)
            return None

        if result is None:
            return None

        metadata = extract_metadata(trimmed) if self.include_metadata else {}
        return ParsedEvent(type=result.name, data=result.data, raw=trimmed, **metadata)

    def add_pattern(
        self,
        name: str,
        matcher: Matcher,
        handler: Handler,
        priority: int | None = None,
    ) -> None:
        self.registry.add_pattern(
            name, matcher, handler, self.default_priority if priority is None else priority
        )

    def remove_pattern(self, name: str) -> bool:
        return self.registry.remove_pattern(name)

    def get_patterns(self) -> list[str]:
        return self.registry.names()

    def clone(self) -> "PatternLogParser":
        """Parser with a cloned registry, for isolated fixtures."""
        return PatternLogParser(
            registry=self.registry.clone(),
            include_metadata=self.include_metadata,
            default_priority=self.default_priority,
        )


# =============================================================================
# Minecraft server patterns
# =============================================================================


def _xyz(match: re.Match, first: int) -> dict[str, float]:
    return {
        "x": float(match.group(first)),
        "y": float(match.group(first + 1)),
        "z": float(match.group(first + 2)),
    }


def _death(cause: str) -> Callable[[re.Match], dict[str, Any]]:
    return lambda m: {"player": m.group(1), "cause": cause}


def _empty(match: re.Match) -> dict[str, Any]:
    return {}


# (name, regex, handler, priority)
MINECRAFT_PATTERNS: list[tuple[str, str, Handler, int]] = [
    # Movement
    (
        "movement.teleport",
        r"Teleported\s+(\w+)\s+from\s+([\d.-]+),\s*([\d.-]+),\s*([\d.-]+)\s+to\s+([\d.-]+),\s*([\d.-]+),\s*([\d.-]+)",
        lambda m: {"player": m.group(1), "from": _xyz(m, 2), "to": _xyz(m, 5)},
        10,
    ),
    # Deaths
    ("entity.death.slain", r"(\w+)\s+was\s+slain\s+by\s+(.+)",
     lambda m: {"player": m.group(1), "killer": m.group(2), "cause": "entity_attack"}, 8),
    ("entity.death.fall", r"(\w+)\s+fell\s+from\s+a\s+high\s+place", _death("fall"), 8),
    ("entity.death.fire", r"(\w+)\s+(?:burned\s+to\s+death|was\s+burnt\s+to\s+a\s+crisp)", _death("fire"), 8),
    (
        "entity.death.lava",
        r"(\w+)\s+(?:tried\s+to\s+swim\s+in\s+lava|was\s+killed\s+by\s+(?:Magma|Lava)(?:\s+Block)?)",
        _death("lava"),
        8,
    ),
    ("entity.death.drown", r"(\w+)\s+drowned", _death("drown"), 8),
    ("entity.death.sprint", r"(\w+)\s+splatted\s+against\s+a\s+wall", _death("sprint_into_wall"), 8),
    ("entity.death.generic", r"(\w+)\s+died", _death("unknown"), 8),
    # Player actions
    ("entity.join", r"([^\s]+)\s+joined\s+the\s+game", lambda m: {"player": m.group(1)}, 6),
    (
        "entity.leave",
        r"(\w+)\s+(?:lost\s+connection:\s*(.+)|left\s+the\s+game)",
        lambda m: {"player": m.group(1), "reason": (m.group(2) or "").strip() or "Left the game"},
        6,
    ),
    ("command.issued", r"(\w+)\s+issued\s+server\s+command:\s*(.+)",
     lambda m: {"player": m.group(1), "command": m.group(2).strip()}, 6),
    ("entity.spawn", r"UUID\s+of\s+player\s+(\w+)\s+is\s+([a-f0-9-]{36})",
     lambda m: {"player": m.group(1), "uuid": m.group(2)}, 6),
    # World
    ("world.time", r"Changing\s+the\s+time\s+to\s+(\d+)", lambda m: {"time": int(m.group(1))}, 4),
    ("world.weather", r"Changing\s+the\s+weather\s+to\s+(\w+)", lambda m: {"weather": m.group(1)}, 4),
    ("world.difficulty", r"Changing\s+the\s+difficulty\s+to\s+(\w+)", lambda m: {"difficulty": m.group(1)}, 4),
    ("world.gamemode", r"(?:The\s+game\s+mode|Gamemode)\s+has\s+been\s+updated\s+to\s+(\w+)",
     lambda m: {"gamemode": m.group(1)}, 4),
    ("world.save.start", r"Saving\s+(?:the\s+game|chunks\s+for\s+level)", _empty, 4),
    ("world.save.complete", r"Saved\s+the\s+game", _empty, 4),
    # Server status
    ("status.start", r"Starting\s+minecraft\s+server\s+version\s+(.+)", lambda m: {"version": m.group(1).strip()}, 2),
    ("status.starting", r"Starting\s+(?:minecraft\s+server|server)", _empty, 2),
    ("status.loading", r"Loading\s+(?:properties|chunks|world)", _empty, 2),
    ("status.gametype", r"Default\s+game\s+type:\s+(\w+)", lambda m: {"gameType": m.group(1)}, 2),
    ("status.keypair", r"Generating\s+keypair", _empty, 2),
    ("status.preparing", r'Preparing\s+(?:level\s+"([^"]+)"|start\s+region)',
     lambda m: {"level": m.group(1)} if m.group(1) else {}, 2),
    ("status.done", r'Done\s+\([^)]+\)!\s+For\s+help,\s+type\s+"help"', _empty, 2),
    ("status.elapsed", r"Time\s+elapsed:\s+(\d+)\s+ms", lambda m: {"elapsed": int(m.group(1))}, 2),
]


def create_minecraft_parser(include_metadata: bool = True) -> PatternLogParser:
    """Parser preloaded with Minecraft server log patterns.

    Custom patterns added later default to priority 1, so they are tested
    before every built-in pattern.
    """
    parser = PatternLogParser(include_metadata=include_metadata, default_priority=1)
    for name, regex, handler, priority in MINECRAFT_PATTERNS:
        parser.add_pattern(name, regex, handler, priority)
    return parser
