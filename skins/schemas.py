from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PlayerCreate(BaseModel):
    name: str = Field(..., min_length=1)
    phone: Optional[str] = None
    email: Optional[str] = None


class PlayerUpdate(PlayerCreate):
    pass


class PlayerOut(PlayerCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int


class RoundCreate(BaseModel):
    total_holes: int = Field(18, gt=0)
    bet_amount: float = Field(..., gt=0)
    use_carryovers: bool = True
    inherit_carryovers: bool = True
    player_names: list[str] = []


class RoundOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    date: datetime
    total_holes: int
    bet_amount: float
    use_carryovers: bool
    is_completed: bool


class ParticipantJoin(BaseModel):
    name: str = Field(..., min_length=1)
    start_hole: int = Field(1, ge=1)


class ParticipantLeave(BaseModel):
    end_hole: int = Field(..., ge=1)


class ParticipantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    round_id: int
    name: str
    start_hole: int
    end_hole: Optional[int] = None


class HoleScoresIn(BaseModel):
    scores: dict[str, Optional[int]] = {}


class HoleResultOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    round_id: int
    hole_number: int
    participant_scores: dict[str, int]


class CarryoverOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    round_id: int
    originating_hole: int
    amount: float
    eligible_participant_names: list[str]
    is_won: int


# ---------------------------- liquidación ----------------------------------

class PendingCarryoverOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    originating_hole: int
    amount: float
    eligible_names: list[str]
    carryover_id: Optional[int] = None


class HoleSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    hole_number: int
    scores: dict[str, Optional[int]]
    outcome: str
    winners: list[str]
    pot: float
    amount_won: float
    claimed: list[PendingCarryoverOut] = []
    created: Optional[PendingCarryoverOut] = None


class SettlementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    skins_won: dict[str, int]
    balances: dict[str, float]
    gross_won: dict[str, float]
    gross_lost: dict[str, float]
    hole_outcomes: list[HoleSummaryOut]
    outstanding_carryovers: list[PendingCarryoverOut]


class PlayerRoundStats(BaseModel):
    name: str
    skins_won: int
    balance: float
    gross_won: float
    gross_lost: float
    holes_played: int


class HistoryGame(BaseModel):
    id: int
    date: datetime
    balances: dict[str, float]


class HistoryReport(BaseModel):
    players: list[str]
    games: list[HistoryGame]
    totals: dict[str, float]


# ------------------------------ backup -------------------------------------

class BackupRound(RoundOut):
    pass


class BackupData(BaseModel):
    players: list[PlayerOut] = []
    rounds: list[BackupRound] = []
    participants: list[ParticipantOut] = []
    hole_results: list[HoleResultOut] = []
    carryovers: list[CarryoverOut] = []


class Backup(BaseModel):
    version: int = 1
    timestamp: datetime
    data: BackupData
