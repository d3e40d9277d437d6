"""Settlement of a skins round.

Replays every scored hole in order, keeps the pool of unclaimed carryovers
and accumulates skins and money per player. Money only moves when a skin is
won: the current hole is paid by every other active player, and each claimed
carryover is paid by every other name on its eligibility list, even players
who have already left the round. Carryovers still in the pool at the end are
returned as they are, never refunded.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from .resolver import CarryoverCreated, Winner, active_names, resolve_hole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingCarryover:
    originating_hole: int
    amount: float
    eligible_names: tuple
    carryover_id: Optional[int] = None

    @property
    def skin_value(self) -> float:
        return (len(self.eligible_names) - 1) * self.amount


@dataclass(frozen=True)
class HoleSummary:
    hole_number: int
    scores: dict
    outcome: str
    winners: list
    pot: float = 0.0
    amount_won: float = 0.0
    claimed: list = field(default_factory=list)
    created: Optional[PendingCarryover] = None


@dataclass
class RoundSettlement:
    skins_won: dict
    balances: dict
    gross_won: dict
    gross_lost: dict
    hole_outcomes: list
    outstanding_carryovers: list


def is_active_on(participants, name: str, hole: int) -> bool:
    # un jugador puede tener varios tramos (se fue y volvió): basta con que uno cubra el hoyo
    for p in participants:
        if p.name != name or hole < p.start_hole:
            continue
        if p.end_hole is None or hole <= p.end_hole:
            return True
    return False


def is_continuously_active(participants, name: str, first_hole: int, last_hole: int) -> bool:
    return all(is_active_on(participants, name, h) for h in range(first_hole, last_hole + 1))


def _unique(names) -> tuple:
    seen = []
    for n in names:
        if n not in seen:
            seen.append(n)
    return tuple(seen)


def _seed_pool(carryovers) -> list:
    pool = []
    for co in carryovers:
        if co.originating_hole != 0:
            continue
        pool.append(PendingCarryover(
            originating_hole=0,
            amount=co.amount,
            eligible_names=_unique(co.eligible_participant_names or []),
            carryover_id=getattr(co, "id", None),
        ))
    return pool


def settle_round(round_, participants, hole_results, carryovers) -> RoundSettlement:
    participants = list(participants)
    bet = round_.bet_amount

    skins_won, balances, gross_won, gross_lost = {}, {}, {}, {}
    for p in participants:
        for board in (skins_won, balances, gross_won, gross_lost):
            board.setdefault(p.name, 0)

    def credit(name, value):
        balances[name] = balances.get(name, 0) + value
        gross_won[name] = gross_won.get(name, 0) + value

    def debit(name, value):
        balances[name] = balances.get(name, 0) - value
        gross_lost[name] = gross_lost.get(name, 0) + value

    pool = _seed_pool(carryovers) if round_.use_carryovers else []
    if pool:
        logger.debug("Round %s: seeding %d inherited carryovers", getattr(round_, "id", None), len(pool))

    hole_outcomes = []

    for res in sorted(hole_results, key=lambda r: r.hole_number):
        hole = res.hole_number
        scores = dict(res.participant_scores or {})
        active = [
            p for p in participants
            if hole >= p.start_hole and (p.end_hole is None or hole <= p.end_hole)
        ]
        names = active_names(active, hole)

        outcome = resolve_hole(hole, scores, active, bet)

        if isinstance(outcome, Winner):
            winner = outcome.winner_name

            # --- skin del hoyo actual ---
            value = (len(names) - 1) * bet
            credit(winner, value)
            skins_won[winner] = skins_won.get(winner, 0) + 1
            for loser in names:
                if loser != winner:
                    debit(loser, bet)
            won_total = value

            # --- carryovers: hace falta estar en la lista y no haber faltado a ningún hoyo ---
            claimed, remaining = [], []
            for co in pool:
                first = max(co.originating_hole, 1)
                if winner in co.eligible_names and is_continuously_active(participants, winner, first, hole):
                    claimed.append(co)
                else:
                    remaining.append(co)

            for co in claimed:
                credit(winner, co.skin_value)
                skins_won[winner] += 1
                for loser in co.eligible_names:
                    if loser != winner:
                        debit(loser, co.amount)
                won_total += co.skin_value
                logger.debug("Hole %d: %s claims carryover from hole %d", hole, winner, co.originating_hole)

            pool = remaining
            hole_outcomes.append(HoleSummary(
                hole_number=hole,
                scores=scores,
                outcome="Winner",
                winners=[winner],
                pot=len(names) * bet,
                amount_won=won_total,
                claimed=claimed,
            ))

        elif isinstance(outcome, CarryoverCreated):
            created = None
            if round_.use_carryovers:
                created = PendingCarryover(
                    originating_hole=hole,
                    amount=bet,
                    eligible_names=_unique(outcome.eligible_names),
                )
                pool.append(created)
                logger.debug("Hole %d tied: carryover for %s", hole, ", ".join(created.eligible_names))
            hole_outcomes.append(HoleSummary(
                hole_number=hole,
                scores=scores,
                outcome="CarryoverCreated",
                winners=list(outcome.eligible_names),
                created=created,
            ))

        else:
            hole_outcomes.append(HoleSummary(
                hole_number=hole,
                scores=scores,
                outcome="NoActivePlayers",
                winners=[],
            ))

    return RoundSettlement(
        skins_won=skins_won,
        balances=balances,
        gross_won=gross_won,
        gross_lost=gross_lost,
        hole_outcomes=hole_outcomes,
        outstanding_carryovers=pool,
    )
