"""
Action alias registry for the Ability Layer.
"""

from typing import Dict, FrozenSet, Iterable, List, Set

from shared.logging import get_logger


MANAGE = "manage"

DEFAULT_ALIASES: Dict[str, Iterable[str]] = {
    "read": ("index", "show"),
    "create": ("new",),
    "update": ("edit",),
}


class AliasRegistry:
    """Maps alias actions to the actions they stand for.

    ``manage`` is a wildcard matching every action until something is
    explicitly aliased to it, after which it expands like any other alias.
    """

    def __init__(self):
        self.logger = get_logger("abilities.aliases")
        self._aliases: Dict[str, Set[str]] = {}
        self._manage_bound = False
        self.reset()

    def reset(self):
        """Restore the default aliases."""
        self._aliases = {target: set(actions) for target, actions in DEFAULT_ALIASES.items()}
        self._manage_bound = False

    def clear(self):
        """Drop every alias, including the defaults."""
        self._aliases = {}
        self._manage_bound = False

    @property
    def manage_is_wildcard(self) -> bool:
        return not self._manage_bound

    def alias_action(self, *actions: str, to: str):
        """Register ``actions`` as members of the ``to`` alias."""
        if not isinstance(to, str) or not to:
            raise TypeError(f"alias target must be a non-empty string, got {to!r}")
        if not actions:
            raise TypeError("alias_action requires at least one action")
        for action in actions:
            if not isinstance(action, str) or not action:
                raise TypeError(f"aliased action must be a non-empty string, got {action!r}")
            if action == to or to in self.expand([action]):
                raise ValueError(f"aliasing {action!r} to {to!r} would create a cycle")

        if to == MANAGE and not self._manage_bound:
            # First explicit binding replaces the wildcard meaning.
            self._aliases[MANAGE] = set()
            self._manage_bound = True

        self._aliases.setdefault(to, set()).update(actions)
        self.logger.debug("Action alias registered", alias=to, actions=sorted(actions))

    def expand(self, actions: Iterable[str]) -> FrozenSet[str]:
        """Actions plus everything they alias, transitively."""
        expanded: Set[str] = set()
        pending: List[str] = list(actions)
        while pending:
            action = pending.pop()
            if action in expanded:
                continue
            expanded.add(action)
            pending.extend(self._aliases.get(action, ()))
        return frozenset(expanded)

    def matches(self, rule_actions: Iterable[str], action: str) -> bool:
        """Whether a rule declared for ``rule_actions`` applies to a query for ``action``.

        Both sides are expanded; any shared action makes the rule relevant.
        """
        expanded = self.expand(rule_actions)
        if MANAGE in expanded and not self._manage_bound:
            return True
        return not expanded.isdisjoint(self.expand([action]))

    def aliased_actions(self) -> Dict[str, List[str]]:
        """Snapshot of the registered aliases."""
        return {target: sorted(actions) for target, actions in self._aliases.items()}
