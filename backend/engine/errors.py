"""
Errors raised by game actions.

Every rejected action raises a GameError subclass before touching state.
The message is meant to be shown to the player as-is; `code` is stable and
machine readable.
"""


class GameError(ValueError):
    """Base class for rejected game actions."""
    code = "game_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotYourTurnError(GameError):
    code = "not_your_turn"

    def __init__(self, message: str = "It is not your turn."):
        super().__init__(message)


class WrongPhaseError(GameError):
    code = "wrong_phase"


class WrongSetupStepError(GameError):
    code = "wrong_setup_step"


class InsufficientResourcesError(GameError):
    code = "insufficient_resources"

    def __init__(self, message: str = "Not enough resources."):
        super().__init__(message)


class IllegalPlacementError(GameError):
    code = "illegal_placement"


class InvalidTargetError(GameError):
    code = "invalid_target"


class StaleActionError(GameError):
    code = "stale_action"


class BoardError(GameError):
    """Unknown map shape or an unusable map template."""
    code = "invalid_board"
