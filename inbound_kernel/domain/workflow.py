"""
Canonical workflow types (``inbound_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for state machine definitions.  Receipt and unit
lifecycles are both declared with these types, so Guard, Transition and
Workflow are defined once.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the calling layer does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow."""
    from_state: Hashable
    to_state: Hashable
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for an entity lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: ``initial_state`` is a member of ``states``.
    """
    name: str
    description: str
    initial_state: Hashable
    states: tuple[Hashable, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[Hashable, ...] = ()

    def __post_init__(self):
        known = set(self.states)
        if self.initial_state not in known:
            raise ValueError(f"{self.name}: initial state {self.initial_state} is not a state")
        for t in self.transitions:
            if t.from_state not in known or t.to_state not in known:
                raise ValueError(
                    f"{self.name}: transition {t.from_state} -> {t.to_state} "
                    f"references an unknown state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(f"{self.name}: terminal state {t.from_state} has an exit")

    def allowed_targets(self) -> Mapping[Hashable, tuple[Hashable, ...]]:
        """from-state -> allowed to-states, in declaration order."""
        table: dict[Hashable, list[Hashable]] = {state: [] for state in self.states}
        for t in self.transitions:
            if t.to_state not in table[t.from_state]:
                table[t.from_state].append(t.to_state)
        return MappingProxyType({state: tuple(targets) for state, targets in table.items()})

    def find_transition(self, from_state: Hashable, to_state: Hashable) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None
