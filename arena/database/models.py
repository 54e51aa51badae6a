from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text, Float, BigInteger
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

class PlayerProfileRecord(Base):
    __tablename__ = 'player_profiles'

    player_id = Column(String(150), primary_key=True)   # "<network>:<local id>"
    name = Column(String(100), nullable=False)
    network_id = Column(String(50), nullable=False, index=True)

    # Progression
    level = Column(Integer, default=1)
    hp = Column(Integer, nullable=True)                  # Explicit max HP, NULL derives from level
    experience = Column(BigInteger, default=0)
    gold = Column(BigInteger, default=0)
    items = Column(Text, default='[]')                   # JSON list of item dicts

    # Metadata
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<PlayerProfileRecord(player_id='{self.player_id}', level={self.level})>"

class PlayerRatingRecord(Base):
    __tablename__ = 'player_ratings'

    player_id = Column(String(150), primary_key=True)
    rating = Column(Integer, nullable=False, default=1000)
    wins = Column(Integer, default=0)
    losses = Column(Integer, default=0)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    @property
    def matches_played(self) -> int:
        return (self.wins or 0) + (self.losses or 0)

    def __repr__(self):
        return f"<PlayerRatingRecord(player_id='{self.player_id}', rating={self.rating})>"

class MatchRequestRecord(Base):
    __tablename__ = 'match_requests'

    id = Column(String(50), primary_key=True)
    player_id = Column(String(150), nullable=False, index=True)
    level = Column(Integer, nullable=False)
    level_bracket = Column(String(50), nullable=False)
    criteria = Column(Text, nullable=False)              # JSON MatchCriteria
    status = Column(String(20), nullable=False, index=True)
    submitted_at = Column(Float, nullable=False)         # Engine clock seconds

    def __repr__(self):
        return f"<MatchRequestRecord(id='{self.id}', player_id='{self.player_id}', status='{self.status}')>"

class BattleRecord(Base):
    __tablename__ = 'battle_records'

    id = Column(String(50), primary_key=True)
    kind = Column(String(10), nullable=False)
    participants = Column(Text, nullable=False)          # JSON list of player ids
    opponent = Column(String(150), nullable=True)        # Monster entity id for PvE
    ranked = Column(Boolean, default=False)
    status = Column(String(20), nullable=False, index=True)
    winner = Column(String(150), nullable=True)
    loser = Column(String(150), nullable=True)
    outcome = Column(String(20), nullable=True)
    turns = Column(Text, default='[]')                   # JSON turn log
    rewards = Column(Text, default='{}')
    context = Column(Text, default='{}')
    started_at = Column(Float, nullable=False)
    ended_at = Column(Float, nullable=True)

    def __repr__(self):
        return f"<BattleRecord(id='{self.id}', kind='{self.kind}', status='{self.status}')>"

class TournamentSnapshot(Base):
    __tablename__ = 'tournament_snapshots'

    id = Column(String(50), primary_key=True)
    type = Column(String(50), nullable=False)
    name = Column(String(200), nullable=False)
    status = Column(String(20), nullable=False, index=True)
    entry_fee = Column(Integer, default=0)
    max_participants = Column(Integer)
    participants = Column(Text, default='[]')
    bracket = Column(Text, default='[]')                 # JSON rounds of matches
    champion = Column(String(150), nullable=True)
    prizes = Column(Text, default='[]')
    start_time = Column(Float, nullable=False)
    ended_at = Column(Float, nullable=True)

    def __repr__(self):
        return f"<TournamentSnapshot(id='{self.id}', name='{self.name}', status='{self.status}')>"

class Configuration(Base):
    __tablename__ = 'configurations'

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)                 # JSON-encoded
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Configuration(key='{self.key}')>"

class AuditLog(Base):
    __tablename__ = 'audit_logs'

    id = Column(Integer, primary_key=True)
    user_id = Column(BigInteger, nullable=False)
    action = Column(String(50), nullable=False)
    details = Column(Text)
    created_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return f"<AuditLog(action='{self.action}', user_id={self.user_id})>"
