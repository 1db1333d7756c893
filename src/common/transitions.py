"""Closed state machines for the status enums.

Every status field that moves through a lifecycle declares a ``TransitionTable``
next to its ``TextChoices``. The table must list every state, so adding a new
enum member without deciding its transitions fails at import time.
"""

import typing as t

from django.core.exceptions import ImproperlyConfigured
from django.db import models
from django.utils.translation import gettext as _


class InvalidTransitionError(Exception):
    """Raised when a status change is not allowed by its transition table."""

    def __init__(self, machine: str, current: str, target: str) -> None:
        """Store the rejected transition."""
        self.machine = machine
        self.current = current
        self.target = target
        super().__init__(
            _("Cannot change %(machine)s from %(current)s to %(target)s.")
            % {"machine": machine, "current": current, "target": target}
        )


class TransitionTable:
    def __init__(
        self,
        name: str,
        choices: type[models.TextChoices],
        transitions: t.Mapping[str, t.Iterable[str]],
    ) -> None:
        """Validate and freeze the transition map.

        Args:
            name: Human-readable machine name, used in error messages.
            choices: The enum whose members are the states.
            transitions: Mapping of every state to the states it may move to.

        Raises:
            ImproperlyConfigured: If a state is missing or a target is unknown.
        """
        states = set(choices.values)
        missing = states - set(transitions)
        if missing:
            raise ImproperlyConfigured(f"{name} transition table is missing states: {sorted(missing)}")
        allowed: dict[str, frozenset[str]] = {}
        for state, targets in transitions.items():
            frozen = frozenset(targets)
            unknown = (frozen | {state}) - states
            if unknown:
                raise ImproperlyConfigured(f"{name} transition table references unknown states: {sorted(unknown)}")
            allowed[state] = frozen
        self.name = name
        self._allowed = allowed

    def targets(self, current: str) -> frozenset[str]:
        """Return the states reachable from ``current`` in one step."""
        return self._allowed[current]

    def sources(self, target: str) -> list[str]:
        """Return the states that may move to ``target``, for filtering bulk updates."""
        return sorted(state for state, targets in self._allowed.items() if target in targets)

    def can_transition(self, current: str, target: str) -> bool:
        """Return whether moving from ``current`` to ``target`` is allowed."""
        return target in self._allowed[current]

    def assert_can_transition(self, current: str, target: str) -> None:
        """Raise InvalidTransitionError unless the move is allowed."""
        if not self.can_transition(current, target):
            raise InvalidTransitionError(self.name, current, target)

    def is_terminal(self, state: str) -> bool:
        """A state with no outgoing transitions."""
        return not self._allowed[state]
