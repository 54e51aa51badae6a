import os
from dataclasses import dataclass, fields
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Bot configuration settings"""

    # Discord settings
    DISCORD_TOKEN = os.getenv('DISCORD_TOKEN')
    DISCORD_GUILD_ID = int(os.getenv('DISCORD_GUILD_ID', 0))
    DISCORD_GUILD_IDS = os.getenv('DISCORD_GUILD_IDS', '')  # Comma-separated, one guild per network
    OWNER_DISCORD_ID = int(os.getenv('OWNER_DISCORD_ID', 0))
    ANNOUNCEMENT_CHANNEL_IDS = os.getenv('ANNOUNCEMENT_CHANNEL_IDS', '')

    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///arena.db')

    # Bot settings
    COMMAND_PREFIX = os.getenv('COMMAND_PREFIX', '!')
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    LOG_DIR = os.getenv('LOG_DIR', 'logs')
    LOG_TO_FILE = os.getenv('LOG_TO_FILE', 'True').lower() == 'true'

    # Progression settings
    MAX_LEVEL = int(os.getenv('MAX_LEVEL', 9999))
    BASE_PLAYER_HP = 100
    HP_PER_LEVEL = 10

    # Matchmaking settings
    LEVEL_BRACKET_SIZE = int(os.getenv('LEVEL_BRACKET_SIZE', 10))
    ENABLE_RANKING = os.getenv('ENABLE_RANKING', 'True').lower() == 'true'
    MAX_MATCHMAKING_WAIT_SECONDS = int(os.getenv('MAX_MATCHMAKING_WAIT_SECONDS', 300))
    MATCHMAKING_INTERVAL_SECONDS = 2
    DEFAULT_LEVEL_WINDOW = 5
    DEFAULT_RATING_RANGE = 100
    ANTI_REPEAT_WINDOW = 5        # Last N opponents that cannot be re-matched
    MATCH_HISTORY_LIMIT = 50
    ACTIVITY_WINDOW_SECONDS = 24 * 60 * 60
    ALLOW_REQUEST_REPLACEMENT = True

    # Rating settings
    STARTING_RATING = 1000
    RATING_K_FACTOR = 32
    RATING_DECAY = float(os.getenv('RATING_DECAY', 0.95))

    # Battle settings
    BASE_ACTION_DAMAGE = 50
    CRITICAL_HIT_CHANCE = 0.10
    ITEM_DROP_CHANCE = 0.30
    MONSTER_LEVEL_RANGE = 10
    BATTLE_TIMEOUT_SECONDS = int(os.getenv('BATTLE_TIMEOUT_SECONDS', 900))

    # Tournament settings
    MIN_TOURNAMENT_PARTICIPANTS = 4
    TOURNAMENT_START_DELAY_SECONDS = 300
    AUTO_SCHEDULE_TOURNAMENTS = os.getenv('AUTO_SCHEDULE_TOURNAMENTS', 'True').lower() == 'true'

    @classmethod
    def get_guild_ids(cls):
        """Get list of guild IDs for command syncing"""
        if cls.DISCORD_GUILD_IDS:
            try:
                return [int(guild_id.strip()) for guild_id in cls.DISCORD_GUILD_IDS.split(',') if guild_id.strip()]
            except ValueError:
                raise ValueError("DISCORD_GUILD_IDS must be comma-separated integers")
        elif cls.DISCORD_GUILD_ID:
            return [cls.DISCORD_GUILD_ID]
        else:
            # Global sync
            return []

    @classmethod
    def get_announcement_channel_ids(cls):
        """Get list of channel IDs that receive arena announcements"""
        try:
            return [int(channel_id.strip()) for channel_id in cls.ANNOUNCEMENT_CHANNEL_IDS.split(',') if channel_id.strip()]
        except ValueError:
            raise ValueError("ANNOUNCEMENT_CHANNEL_IDS must be comma-separated integers")

    @classmethod
    def validate(cls):
        """Validate that required configuration is present"""
        if not cls.DISCORD_TOKEN:
            raise ValueError("DISCORD_TOKEN is required")
        if not cls.OWNER_DISCORD_ID:
            raise ValueError("OWNER_DISCORD_ID is required")
        if cls.LEVEL_BRACKET_SIZE <= 0:
            raise ValueError("LEVEL_BRACKET_SIZE must be positive")
        if not 0 < cls.RATING_DECAY <= 1:
            raise ValueError("RATING_DECAY must be in (0, 1]")


# Runtime override keys understood by ArenaSettings.from_config, mapped to field names
SETTING_KEYS = {
    'progression.max_level': 'max_level',
    'progression.base_player_hp': 'base_player_hp',
    'progression.hp_per_level': 'hp_per_level',
    'matchmaking.level_bracket_size': 'level_bracket_size',
    'matchmaking.enable_ranking': 'enable_ranking',
    'matchmaking.max_wait_seconds': 'max_wait_seconds',
    'matchmaking.interval_seconds': 'matchmaking_interval_seconds',
    'matchmaking.level_window': 'level_window',
    'matchmaking.rating_range': 'rating_range',
    'matchmaking.anti_repeat_window': 'anti_repeat_window',
    'matchmaking.history_limit': 'match_history_limit',
    'matchmaking.activity_window_seconds': 'activity_window_seconds',
    'matchmaking.allow_request_replacement': 'allow_request_replacement',
    'rating.starting_rating': 'starting_rating',
    'rating.k_factor': 'rating_k_factor',
    'rating.decay': 'rating_decay',
    'battle.base_action_damage': 'base_action_damage',
    'battle.critical_chance': 'critical_chance',
    'battle.item_drop_chance': 'item_drop_chance',
    'battle.monster_level_range': 'monster_level_range',
    'battle.timeout_seconds': 'battle_timeout_seconds',
    'tournament.min_participants': 'min_tournament_participants',
    'tournament.start_delay_seconds': 'tournament_start_delay_seconds',
    'tournament.auto_schedule': 'auto_schedule_tournaments',
}

# Keys shaping structures built once at startup (level brackets, history
# buffers, tournament minimums); a stored override takes effect on restart
RESTART_ONLY_KEYS = frozenset({
    'progression.max_level',
    'matchmaking.level_bracket_size',
    'matchmaking.history_limit',
    'tournament.min_participants',
})

# Lower bounds for numeric settings; a value below is rejected
SETTING_MINIMUMS = {
    'max_level': 1,
    'base_player_hp': 1,
    'level_bracket_size': 1,
    'max_wait_seconds': 1,
    'matchmaking_interval_seconds': 0.1,
    'match_history_limit': 1,
    'anti_repeat_window': 0,
    'level_window': 0,
    'rating_range': 0,
    'rating_k_factor': 0,
    'base_action_damage': 0,
    'monster_level_range': 0,
    'battle_timeout_seconds': 1,
    'min_tournament_participants': 2,
    'tournament_start_delay_seconds': 0,
}


@dataclass
class ArenaSettings:
    """Engine tunables shared by the rating store, queue, resolver and orchestrator."""
    max_level: int = Config.MAX_LEVEL
    base_player_hp: int = Config.BASE_PLAYER_HP
    hp_per_level: int = Config.HP_PER_LEVEL
    level_bracket_size: int = Config.LEVEL_BRACKET_SIZE
    enable_ranking: bool = Config.ENABLE_RANKING
    max_wait_seconds: float = float(Config.MAX_MATCHMAKING_WAIT_SECONDS)
    matchmaking_interval_seconds: float = float(Config.MATCHMAKING_INTERVAL_SECONDS)
    level_window: int = Config.DEFAULT_LEVEL_WINDOW
    rating_range: int = Config.DEFAULT_RATING_RANGE
    anti_repeat_window: int = Config.ANTI_REPEAT_WINDOW
    match_history_limit: int = Config.MATCH_HISTORY_LIMIT
    activity_window_seconds: float = float(Config.ACTIVITY_WINDOW_SECONDS)
    allow_request_replacement: bool = Config.ALLOW_REQUEST_REPLACEMENT
    starting_rating: int = Config.STARTING_RATING
    rating_k_factor: int = Config.RATING_K_FACTOR
    rating_decay: float = Config.RATING_DECAY
    base_action_damage: int = Config.BASE_ACTION_DAMAGE
    critical_chance: float = Config.CRITICAL_HIT_CHANCE
    item_drop_chance: float = Config.ITEM_DROP_CHANCE
    monster_level_range: int = Config.MONSTER_LEVEL_RANGE
    battle_timeout_seconds: float = float(Config.BATTLE_TIMEOUT_SECONDS)
    min_tournament_participants: int = Config.MIN_TOURNAMENT_PARTICIPANTS
    tournament_start_delay_seconds: float = float(Config.TOURNAMENT_START_DELAY_SECONDS)
    auto_schedule_tournaments: bool = Config.AUTO_SCHEDULE_TOURNAMENTS

    def apply_override(self, key: str, value):
        """
        Set the field behind a dotted override key, cast to the field's declared type.

        Raises:
            KeyError: Unknown key
            ValueError: Value cannot be cast (booleans accept true/false strings)
                or is out of range
        """
        field_name = SETTING_KEYS[key]
        field_type = {f.name: f.type for f in fields(self)}[field_name]
        try:
            if field_type is bool and isinstance(value, str):
                if value.lower() not in ('true', 'false'):
                    raise ValueError(value)
                cast = value.lower() == 'true'
            else:
                cast = field_type(value)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid value for {key}: {value!r}")

        minimum = SETTING_MINIMUMS.get(field_name)
        if minimum is not None and cast < minimum:
            raise ValueError(f"{key} must be at least {minimum}, got {cast!r}")
        if field_name in ('critical_chance', 'item_drop_chance') and not 0 <= cast <= 1:
            raise ValueError(f"{key} must be between 0 and 1, got {cast!r}")
        if field_name == 'rating_decay' and not 0 < cast <= 1:
            raise ValueError(f"{key} must be in (0, 1], got {cast!r}")
        setattr(self, field_name, cast)

    @classmethod
    def from_config(cls, config_service=None) -> 'ArenaSettings':
        """
        Build settings from Config defaults plus runtime overrides.

        Args:
            config_service: Optional ConfigurationService holding dotted-key overrides

        Returns:
            ArenaSettings instance
        """
        settings = cls()
        if config_service is None:
            return settings

        for key in SETTING_KEYS:
            value = config_service.get(key)
            if value is not None:
                settings.apply_override(key, value)
        return settings
