"""Declined-action errors raised by the game core.

Every error is recoverable: the gateway reports it to the connection that
sent the action and the room is left untouched.
"""


class GameError(Exception):
    code = "GameError"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class RoomNotFound(GameError):
    code = "RoomNotFound"


class RoomNotJoinable(GameError):
    code = "RoomNotJoinable"


class InvalidState(GameError):
    code = "InvalidState"


class NotHost(GameError):
    code = "NotHost"


class UnknownPlayer(GameError):
    code = "UnknownPlayer"


class UnknownQuestion(GameError):
    code = "UnknownQuestion"


class UnknownQuestionSet(GameError):
    code = "UnknownQuestionSet"


class UnknownUpgrade(GameError):
    code = "UnknownUpgrade"


class InsufficientFunds(GameError):
    code = "InsufficientFunds"


class NoQuestionsAvailable(GameError):
    code = "NoQuestionsAvailable"


class RegistryFull(GameError):
    code = "RegistryFull"
