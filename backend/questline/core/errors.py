from __future__ import annotations

from typing import List


class GameRuleError(ValueError):
    """A mutation was rejected by the rules engine; nothing was applied."""


class PhaseTransitionBlocked(GameRuleError):
    pass


class RoleConfigError(GameRuleError):
    def __init__(self, errors: List[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = list(errors)


class GameNotFound(KeyError):
    pass
