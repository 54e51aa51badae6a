"""
Error taxonomy for the arena engine with short user-facing reasons.

Every core operation raises one of these synchronously; nothing is retried
internally. The command layer shows ``user_message`` to the player.
"""

class ArenaError(Exception):
    """Base exception for arena engine errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.message = message
        self.user_message = user_message or message


# Unknown identifiers

class NotFound(ArenaError):
    """Raised when an id does not refer to a known object."""


class UnknownBattle(NotFound):
    """Raised when a battle id is not active (and was never resolved)."""
    def __init__(self, battle_id: str):
        super().__init__(
            f"Battle '{battle_id}' not found",
            f"❌ Battle `{battle_id}` is not an active battle."
        )
        self.battle_id = battle_id


class TournamentNotFound(NotFound):
    """Raised when a tournament or bracket match id is unknown."""
    def __init__(self, tournament_id: str):
        super().__init__(
            f"Tournament '{tournament_id}' not found",
            f"❌ Tournament `{tournament_id}` does not exist."
        )
        self.tournament_id = tournament_id


class PlayerNotFound(NotFound):
    """Raised when the player directory has no profile for an id."""
    def __init__(self, player_id: str):
        super().__init__(
            f"Player '{player_id}' not found",
            "❌ You haven't joined the arena yet! Use `/arena-join` first."
        )
        self.player_id = player_id


class UnknownTournamentType(NotFound):
    """Raised when scheduling a tournament type that is not configured."""
    def __init__(self, tournament_type: str):
        super().__init__(
            f"Unknown tournament type: {tournament_type}",
            f"❌ Unknown tournament type `{tournament_type}`."
        )


class NoSuitableMonster(NotFound):
    """Raised when no monster template is close enough to the requested level."""
    def __init__(self, level: int):
        super().__init__(
            f"No suitable monster found for level {level}",
            f"❌ No monster roams near level {level}."
        )


# Lifecycle violations

class InvalidState(ArenaError):
    """Raised when an operation is not legal in the current lifecycle state."""


class RegistrationClosed(InvalidState):
    def __init__(self, tournament_id: str, status: str):
        super().__init__(
            f"Tournament '{tournament_id}' registration is closed (status={status})",
            "❌ Registration for this tournament is closed."
        )


class NotAParticipant(InvalidState):
    def __init__(self, battle_id: str, actor_id: str):
        super().__init__(
            f"'{actor_id}' is not a participant of battle '{battle_id}'",
            "❌ You are not fighting in this battle."
        )


class InvalidParticipants(InvalidState):
    def __init__(self, reason: str):
        super().__init__(
            f"Invalid battle participants: {reason}",
            f"❌ {reason}"
        )


class CapacityExceeded(ArenaError):
    """Raised when a tournament or bracket is full."""


class TournamentFull(CapacityExceeded):
    def __init__(self, tournament_id: str, max_participants: int):
        super().__init__(
            f"Tournament '{tournament_id}' is full ({max_participants} participants)",
            f"❌ This tournament is full ({max_participants}/{max_participants})."
        )


class InsufficientParticipants(ArenaError):
    """Raised when a bracket cannot be built from too few entrants."""
    def __init__(self, tournament_id: str, registered: int, minimum: int):
        super().__init__(
            f"Tournament '{tournament_id}' has {registered} participants, needs {minimum}",
            f"❌ Not enough participants to start ({registered}/{minimum})."
        )
        self.registered = registered
        self.minimum = minimum


class AlreadyExists(ArenaError):
    """Raised on duplicate registration or queue entry."""


class AlreadyRegistered(AlreadyExists):
    def __init__(self, tournament_id: str, player_id: str):
        super().__init__(
            f"Player '{player_id}' already registered for '{tournament_id}'",
            "❌ You are already registered for this tournament."
        )


class AlreadyQueued(AlreadyExists):
    def __init__(self, player_id: str):
        super().__init__(
            f"Player '{player_id}' already has an active match request",
            "❌ You are already waiting for an opponent."
        )


class BattleAlreadyResolved(ArenaError):
    """Raised when acting on a battle that has completed."""
    def __init__(self, battle_id: str):
        super().__init__(
            f"Battle '{battle_id}' is already resolved",
            "❌ That battle is already over."
        )
        self.battle_id = battle_id


class InvalidOptions(ArenaError):
    """Raised when tournament options are inconsistent."""
    def __init__(self, reason: str):
        super().__init__(
            f"Invalid tournament options: {reason}",
            f"❌ {reason}"
        )
