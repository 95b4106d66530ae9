"""Database models for the Scoreboard Tracker."""
from sqlalchemy import (
    Column, Integer, String, Float, Text, ForeignKey, Index
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Game(Base):
    """Game table storing one row per ingested log file."""
    __tablename__ = 'games'
    __table_args__ = (
        Index('idx_games_timestamp', 'timestamp'),
        Index('idx_games_result', 'result'),
        Index('idx_games_difficulty', 'difficulty'),
        Index('idx_games_mission_id', 'mission_id'),
        {'sqlite_autoincrement': True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    filename = Column(String, unique=True, nullable=False)
    timestamp = Column(Integer, nullable=False)
    mission_id = Column(String, nullable=False)
    mission_name = Column(String, nullable=False)
    difficulty = Column(Integer, nullable=False)
    modifier = Column(String, nullable=False, default='', server_default='')
    result = Column(String, nullable=False)
    duration_seconds = Column(Integer, nullable=False)

    # Relationships
    roster = relationship("GamePlayer", back_populates="game")
    scores = relationship("Score", back_populates="game")


class Player(Base):
    """Player table storing participant identities shared across games."""
    __tablename__ = 'players'

    id = Column(String, primary_key=True)
    is_bot = Column(Integer, nullable=False, default=0, server_default='0')


class GamePlayer(Base):
    """Roster table joining games and players with per-match name and slot."""
    __tablename__ = 'game_players'
    __table_args__ = (
        Index('idx_game_players_player', 'player_id'),
    )

    game_id = Column(Integer, ForeignKey('games.id'), primary_key=True)
    player_id = Column(String, primary_key=True)
    slot = Column(Integer, nullable=False)  # -1 when absent from the roster block
    name = Column(String, nullable=False)
    quitter = Column(Integer, nullable=False, default=0, server_default='0')

    # Relationships
    game = relationship("Game", back_populates="roster")


class Property(Base):
    """Property table storing scoreboard row metadata."""
    __tablename__ = 'properties'

    id = Column(String, primary_key=True)
    display_name = Column(String, nullable=False)
    group_id = Column(String, nullable=False)
    group_name = Column(String, nullable=False)
    sort_direction = Column(String, nullable=False)
    is_summary = Column(Integer, nullable=False, default=0, server_default='0')
    parent_id = Column(String, nullable=True)
    child_ids = Column(Text, nullable=True)  # Raw colon-delimited list
    row_order = Column(Integer, nullable=False, default=0, server_default='0')
    visible = Column(Integer, nullable=False, default=1, server_default='1')


class Score(Base):
    """Score table storing one value per game, player and property."""
    __tablename__ = 'scores'
    __table_args__ = (
        Index('idx_scores_property', 'property_id'),
        Index('idx_scores_player_property', 'player_id', 'property_id'),
        Index('idx_scores_game_property', 'game_id', 'property_id'),
    )

    game_id = Column(Integer, ForeignKey('games.id'), primary_key=True)
    player_id = Column(String, primary_key=True)
    property_id = Column(String, primary_key=True)
    value = Column(Float, nullable=False)

    # Relationships
    game = relationship("Game", back_populates="scores")


class PlayerSettings(Base):
    """Per-player display customization."""
    __tablename__ = 'player_settings'

    player_id = Column(String, primary_key=True)
    custom_name = Column(String, nullable=True)
    color = Column(String, nullable=True)
    is_main = Column(Integer, nullable=False, default=0, server_default='0')


class AppSetting(Base):
    """Generic key/value settings."""
    __tablename__ = 'app_settings'

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=True)

