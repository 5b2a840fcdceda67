"""
Command Router - decides which channel should deliver an outbound command.

Decision order:
1. ``use_rcon`` option -> RCON
2. ``expect_log_response`` option -> LOG
3. Custom rules in registration order (string = literal prefix,
   compiled pattern = regex search)
4. BOT
"""

import asyncio
import inspect
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Mapping, Protocol, runtime_checkable

from logwatch.monitoring.errors import RoutingError
from logwatch.monitoring.monitor import EventPredicate, LogMonitor
from logwatch.monitoring.schemas import Channel, ParsedEvent, RoutingDecision
from logwatch.shared.logger import get_logger

logger = get_logger()

RulePattern = str | re.Pattern


@dataclass
class RoutingContext:
    """Per-command routing input."""

    options: dict[str, Any] = field(default_factory=dict)
    username: str | None = None


@dataclass(frozen=True)
class RoutingRule:
    pattern: RulePattern
    channel: Channel

    def matches(self, command: str) -> bool:
        if isinstance(self.pattern, re.Pattern):
            return self.pattern.search(command) is not None
        return command.startswith(self.pattern)


def _same_pattern(a: RulePattern, b: RulePattern) -> bool:
    if isinstance(a, re.Pattern) and isinstance(b, re.Pattern):
        return a.pattern == b.pattern and a.flags == b.flags
    return type(a) is type(b) and a == b


def _channel(value: Channel | str) -> Channel:
    try:
        return Channel(value)
    except ValueError as e:
        valid = ", ".join(c.value for c in Channel)
        raise RoutingError(
            f"Invalid channel: {value}. Must be one of: {valid}", {"channel": str(value)}
        ) from e


@runtime_checkable
class CommandRouter(Protocol):
    """Chooses a delivery channel for a command."""

    def route(self, command: str, context: RoutingContext | Mapping[str, Any] | None = None) -> RoutingDecision:
        ...


class DefaultCommandRouter:
    """Option- and rule-driven router."""

    def __init__(
        self,
        rules: Mapping[RulePattern, Channel | str] | Iterable[tuple[RulePattern, Channel | str]] | None = None,
    ):
        self._rules: list[RoutingRule] = []
        items = rules.items() if isinstance(rules, Mapping) else (rules or ())
        for pattern, channel in items:
            self.add_rule(pattern, channel)

    def route(
        self,
        command: str,
        context: RoutingContext | Mapping[str, Any] | None = None,
    ) -> RoutingDecision:
        """Route a command.

        Args:
            command: Command text
            context: Routing context, or a plain ``{"options": {...}}`` mapping

        Returns:
            The chosen channel plus the options it was routed with
        """
        if isinstance(context, RoutingContext):
            options = dict(context.options)
        else:
            options = dict((context or {}).get("options") or {})

        if options.get("use_rcon"):
            return RoutingDecision(Channel.RCON, options)
        if options.get("expect_log_response"):
            return RoutingDecision(Channel.LOG, options)

        for rule in self._rules:
            if rule.matches(command):
                return RoutingDecision(rule.channel, options)

        return RoutingDecision(Channel.BOT, options)

    def add_rule(self, pattern: RulePattern, channel: Channel | str) -> None:
        """Add a rule, replacing any rule with the same pattern.

        Raises:
            RoutingError: ``channel`` is not a known channel
        """
        if not isinstance(pattern, (str, re.Pattern)):
            raise RoutingError("Rule pattern must be a string prefix or compiled pattern", {"pattern": repr(pattern)})
        resolved = _channel(channel)
        self.remove_rule(pattern)
        self._rules.append(RoutingRule(pattern, resolved))

    def remove_rule(self, pattern: RulePattern) -> bool:
        """Remove the rule with this pattern. Returns False if none matched."""
        before = len(self._rules)
        self._rules = [r for r in self._rules if not _same_pattern(r.pattern, pattern)]
        return len(self._rules) < before

    def get_rules(self) -> list[RoutingRule]:
        """Copy of the rules in registration order."""
        return list(self._rules)


# =============================================================================
# Log-confirmed delivery
# =============================================================================


async def await_confirmation(
    monitor: LogMonitor,
    send: Callable[[str], Awaitable[Any] | Any],
    command: str,
    predicate: EventPredicate | str,
    timeout: float,
) -> ParsedEvent:
    """Send a command, then wait for the log event confirming it.

    The waiter is registered before ``send`` runs, so a confirmation logged
    immediately after delivery is not missed.

    Args:
        monitor: Running monitor observing the target's log
        send: Delivers the command (sync or async)
        command: Command text
        predicate: Matches the confirming event (callable or event type)
        timeout: Seconds to wait for the confirmation

    Raises:
        ResponseTimeout: No confirming event within ``timeout``
    """
    confirmation = asyncio.create_task(monitor.wait_for_event(predicate, timeout, command=command))
    await asyncio.sleep(0)

    try:
        result = send(command)
        if inspect.isawaitable(result):
            await result
    except Exception:
        confirmation.cancel()
        raise

    event = await confirmation
    logger.debug(f"Command confirmed by {event.type}: {command}")
    return event
