"""Read-only view of colony characters consumed by the scheduler.

The scheduler never owns character state. Callers hand in anything that satisfies
``Character`` (usually a ``CharacterSnapshot`` built from their entity store) and,
where the scheduler needs to resolve ids, a ``CharacterDirectory``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from colonysched.tasks.models import SkillType, Vector3


@runtime_checkable
class Character(Protocol):
    """Capability data the scheduler reads about an agent."""

    @property
    def id(self) -> int: ...

    @property
    def position(self) -> Vector3 | None: ...

    @property
    def skills(self) -> Mapping[SkillType, int]: ...

    @property
    def critical_needs(self) -> tuple[str, ...]: ...

    @property
    def happiness(self) -> float: ...

    @property
    def has_critical_needs(self) -> bool: ...

    def skill_level(self, skill: SkillType) -> int: ...

    def overall_skill(self) -> float: ...


@dataclass(frozen=True)
class CharacterSnapshot:
    """Immutable capability snapshot of one character."""

    id: int
    skills: Mapping[SkillType, int] = field(default_factory=dict)
    position: Vector3 | None = None
    critical_needs: tuple[str, ...] = ()
    happiness: float = 1.0

    @property
    def has_critical_needs(self) -> bool:
        return len(self.critical_needs) > 0

    def skill_level(self, skill: SkillType) -> int:
        return self.skills.get(skill, 0)

    def overall_skill(self) -> float:
        if not self.skills:
            return 0.0
        return sum(self.skills.values()) / len(self.skills)


class CharacterDirectory(Protocol):
    """Resolves character ids to capability data."""

    def get_character(self, character_id: int) -> Character | None: ...

    def all_characters(self) -> list[Character]: ...


class StaticRoster:
    """Dict-backed ``CharacterDirectory``."""

    def __init__(self, characters: Iterable[Character] = ()) -> None:
        self._characters: dict[int, Character] = {c.id: c for c in characters}

    def add(self, character: Character) -> None:
        """Add or replace a character snapshot."""
        self._characters[character.id] = character

    def remove(self, character_id: int) -> bool:
        return self._characters.pop(character_id, None) is not None

    def get_character(self, character_id: int) -> Character | None:
        return self._characters.get(character_id)

    def all_characters(self) -> list[Character]:
        return list(self._characters.values())

    def __len__(self) -> int:
        return len(self._characters)

    def __contains__(self, character_id: object) -> bool:
        return character_id in self._characters
