from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class Winner:
    winner_name: str
    score: int


@dataclass(frozen=True)
class CarryoverCreated:
    score: int
    eligible_names: list = field(default_factory=list)


@dataclass(frozen=True)
class NoActivePlayers:
    pass


Outcome = Union[Winner, CarryoverCreated, NoActivePlayers]


def is_valid_score(score) -> bool:
    # None / 0 / negativos = el jugador no entregó tarjeta en ese hoyo
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        return False
    return score > 0


def active_names(participants, hole_number: int) -> list:
    """
    Nombres (sin repetir, en orden de alta) de los participantes
    cuyo tramo [start_hole, end_hole] incluye el hoyo.
    """
    names = []
    for p in participants:
        if hole_number < p.start_hole:
            continue
        if p.end_hole is not None and hole_number > p.end_hole:
            continue
        if p.name not in names:
            names.append(p.name)
    return names


def resolve_hole(hole_number: int, scores: dict, active_participants, bet_amount: float) -> Outcome:
    names = active_names(active_participants, hole_number)

    valid = {
        name: score
        for name, score in (scores or {}).items()
        if name in names and is_valid_score(score)
    }
    if not valid:
        return NoActivePlayers()

    min_score = min(valid.values())
    lowest = [name for name, score in valid.items() if score == min_score]

    if len(lowest) == 1:
        return Winner(winner_name=lowest[0], score=min_score)

    # empate: todos los presentes en el hoyo entran en el bote, hayan empatado o no
    return CarryoverCreated(score=min_score, eligible_names=names)
