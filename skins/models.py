from datetime import datetime

from sqlalchemy import Column, Integer, String, Float, ForeignKey, Boolean, DateTime, JSON
from sqlalchemy.orm import relationship

from .db import Base


class Player(Base):
    __tablename__ = "players"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)


class Round(Base):
    __tablename__ = "rounds"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(DateTime, nullable=False, default=datetime.utcnow)
    total_holes = Column(Integer, nullable=False, default=18)
    bet_amount = Column(Float, nullable=False)          # lo que vale un skin por jugador
    use_carryovers = Column(Boolean, nullable=False, default=True)
    is_completed = Column(Boolean, nullable=False, default=False)

    participants = relationship(
        "Participant",
        back_populates="round",
        cascade="all, delete-orphan"
    )
    hole_results = relationship(
        "HoleResult",
        back_populates="round",
        cascade="all, delete-orphan"
    )
    carryovers = relationship(
        "Carryover",
        back_populates="round",
        cascade="all, delete-orphan"
    )


class Participant(Base):
    __tablename__ = "participants"

    id = Column(Integer, primary_key=True, index=True)
    round_id = Column(Integer, ForeignKey("rounds.id"), nullable=False)

    # el nombre es la clave contra las tarjetas, no un FK a players
    name = Column(String, nullable=False, index=True)
    start_hole = Column(Integer, nullable=False, default=1)
    end_hole = Column(Integer, nullable=True)           # None = sigue jugando

    round = relationship("Round", back_populates="participants")


class HoleResult(Base):
    __tablename__ = "hole_results"

    id = Column(Integer, primary_key=True, index=True)
    round_id = Column(Integer, ForeignKey("rounds.id"), nullable=False)
    hole_number = Column(Integer, nullable=False)       # 1..total_holes

    participant_scores = Column(JSON, nullable=False, default=dict)  # {"Ana": 4, ...}

    round = relationship("Round", back_populates="hole_results")


class Carryover(Base):
    __tablename__ = "carryovers"

    id = Column(Integer, primary_key=True, index=True)
    round_id = Column(Integer, ForeignKey("rounds.id"), nullable=False)

    originating_hole = Column(Integer, nullable=False)  # 0 = heredado de la ronda anterior
    amount = Column(Float, nullable=False)
    eligible_participant_names = Column(JSON, nullable=False, default=list)
    is_won = Column(Integer, nullable=False, default=0)

    round = relationship("Round", back_populates="carryovers")
