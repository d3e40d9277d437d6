import logging
from datetime import datetime

from sqlalchemy import text
from sqlalchemy.orm import Session
from pydantic import ValidationError

from . import models, schemas
from .resolver import is_valid_score
from .settlement import settle_round, is_active_on

logger = logging.getLogger(__name__)



#---------------------------------------------------------------------------------
# ---------------------------------- Players -------------------------------------
# --------------------------------------------------------------------------------

def get_players(db: Session):
    return db.query(models.Player).order_by(models.Player.name).all()

def get_player(db: Session, player_id: int):
    return db.query(models.Player).filter(models.Player.id == player_id).first()

def create_player(db: Session, data: schemas.PlayerCreate):
    p = models.Player(**data.model_dump())
    db.add(p)
    db.commit()
    db.refresh(p)
    return p

def update_player(db: Session, player_id: int, data: schemas.PlayerUpdate):
    p = get_player(db, player_id)
    if not p:
        return None
    for k, v in data.model_dump().items():
        setattr(p, k, v)
    db.commit()
    db.refresh(p)
    return p

def is_player_referenced(db: Session, name: str) -> bool:
    return db.query(models.Participant).filter(models.Participant.name == name).count() > 0

def delete_player(db: Session, player_id: int):
    p = get_player(db, player_id)
    if not p:
        return False
    db.delete(p)
    db.commit()
    return True


#---------------------------------------------------------------------------------
# ------------------------------------- Rounds ------------------------------------
# --------------------------------------------------------------------------------

def get_round(db: Session, round_id: int):
    return db.query(models.Round).filter(models.Round.id == round_id).first()

def get_rounds(db: Session):
    return (
        db.query(models.Round)
        .order_by(models.Round.date.desc(), models.Round.id.desc())
        .all()
    )

def get_active_round(db: Session):
    return (
        db.query(models.Round)
        .filter(models.Round.is_completed.is_(False))
        .order_by(models.Round.date.desc(), models.Round.id.desc())
        .first()
    )


def create_round(db: Session, data: schemas.RoundCreate):
    # la ronda anterior se busca antes de crear la nueva
    previous = get_rounds(db)
    previous = previous[0] if previous else None

    r = models.Round(
        total_holes=data.total_holes,
        bet_amount=data.bet_amount,
        use_carryovers=data.use_carryovers,
        is_completed=False,
    )
    db.add(r)
    db.commit()
    db.refresh(r)

    # Carryovers sin ganar de la ronda anterior -> hoyo 0 de esta
    if data.use_carryovers and data.inherit_carryovers and previous is not None:
        inherited = get_outstanding_carryovers(db, previous.id)
        for co in inherited:
            db.add(models.Carryover(
                round_id=r.id,
                originating_hole=0,
                amount=co.amount,
                eligible_participant_names=list(co.eligible_participant_names),
                is_won=0,
            ))
        if inherited:
            logger.info("Round %s inherits %d carryovers from round %s", r.id, len(inherited), previous.id)

    seen = []
    for name in data.player_names:
        name = name.strip()
        if name and name not in seen:
            seen.append(name)
            db.add(models.Participant(round_id=r.id, name=name, start_hole=1))

    db.commit()
    db.refresh(r)
    return r


def complete_round(db: Session, round_id: int):
    r = get_round(db, round_id)
    if not r:
        return None
    r.is_completed = True
    db.commit()
    db.refresh(r)
    return r


def delete_round(db: Session, round_id: int):
    r = get_round(db, round_id)
    if not r:
        return False
    # participantes, hoyos y carryovers se borran por cascade
    db.delete(r)
    db.commit()
    return True


#---------------------------------------------------------------------------------
# ---------------------------------- Participants --------------------------------
# --------------------------------------------------------------------------------

def get_participants(db: Session, round_id: int):
    return (
        db.query(models.Participant)
        .filter(models.Participant.round_id == round_id)
        .order_by(models.Participant.id)
        .all()
    )

def get_participant(db: Session, participant_id: int):
    return db.query(models.Participant).filter(models.Participant.id == participant_id).first()


def _name_spans(db: Session, round_id: int, name: str, exclude_id=None):
    q = db.query(models.Participant).filter(
        models.Participant.round_id == round_id,
        models.Participant.name == name,
    )
    if exclude_id is not None:
        q = q.filter(models.Participant.id != exclude_id)
    return q.all()


def _overlaps(span, start: int, end) -> bool:
    # end None = tramo abierto hasta el final
    if span.end_hole is not None and span.end_hole < start:
        return False
    if end is not None and span.start_hole > end:
        return False
    return True


def add_participant(db: Session, round_id: int, name: str, start_hole: int):
    # volver a entrar crea un tramo nuevo, el anterior tiene que estar cerrado antes
    name = name.strip()
    for s in _name_spans(db, round_id, name):
        if _overlaps(s, start_hole, None):
            raise ValueError(f"{name} is already playing on hole {start_hole}")
    p = models.Participant(round_id=round_id, name=name, start_hole=start_hole, end_hole=None)
    db.add(p)
    db.commit()
    db.refresh(p)
    return p


def close_participant(db: Session, participant_id: int, end_hole: int):
    p = get_participant(db, participant_id)
    if not p:
        return None
    if end_hole < p.start_hole:
        raise ValueError(f"end_hole {end_hole} is before start_hole {p.start_hole}")
    for s in _name_spans(db, p.round_id, p.name, exclude_id=p.id):
        if _overlaps(s, p.start_hole, end_hole):
            raise ValueError(f"{p.name} already has a span from hole {s.start_hole}")
    p.end_hole = end_hole
    db.commit()
    db.refresh(p)
    return p


#---------------------------------------------------------------------------------
# -------------------------------------- Holes ------------------------------------
# --------------------------------------------------------------------------------

def get_hole_results(db: Session, round_id: int):
    return (
        db.query(models.HoleResult)
        .filter(models.HoleResult.round_id == round_id)
        .order_by(models.HoleResult.hole_number)
        .all()
    )


def clean_scores(scores: dict) -> dict:
    return {
        name.strip(): int(score)
        for name, score in (scores or {}).items()
        if name and name.strip() and is_valid_score(score)
    }


def delete_hole_data(db: Session, round_id: int, hole_number: int):
    db.query(models.HoleResult).filter(
        models.HoleResult.round_id == round_id,
        models.HoleResult.hole_number == hole_number,
    ).delete()
    db.query(models.Carryover).filter(
        models.Carryover.round_id == round_id,
        models.Carryover.originating_hole == hole_number,
    ).delete()
    db.commit()


def save_hole_result(db: Session, round_id: int, hole_number: int, scores: dict):
    hr = models.HoleResult(
        round_id=round_id,
        hole_number=hole_number,
        participant_scores=clean_scores(scores),
    )
    db.add(hr)
    db.commit()
    db.refresh(hr)
    return hr


def submit_hole_scores(db: Session, round_id: int, hole_number: int, scores: dict):
    """
    Guarda (o re-guarda) la tarjeta de un hoyo y vuelve a reproducir
    la ronda completa para regenerar los carryovers.
    """
    delete_hole_data(db, round_id, hole_number)
    hr = save_hole_result(db, round_id, hole_number, scores)
    rebuild_carryovers(db, round_id)
    return hr


def skip_hole(db: Session, round_id: int, hole_number: int):
    return submit_hole_scores(db, round_id, hole_number, {})


#---------------------------------------------------------------------------------
# ------------------------------------ Carryovers ---------------------------------
# --------------------------------------------------------------------------------

def get_round_carryovers(db: Session, round_id: int):
    return (
        db.query(models.Carryover)
        .filter(models.Carryover.round_id == round_id)
        .order_by(models.Carryover.originating_hole, models.Carryover.id)
        .all()
    )

def get_outstanding_carryovers(db: Session, round_id: int):
    return (
        db.query(models.Carryover)
        .filter(models.Carryover.round_id == round_id, models.Carryover.is_won == 0)
        .order_by(models.Carryover.originating_hole, models.Carryover.id)
        .all()
    )


def reset_round_carryovers(db: Session, round_id: int):
    # los generados en hoyos se borran; los heredados (hoyo 0) vuelven a "sin ganar"
    db.query(models.Carryover).filter(
        models.Carryover.round_id == round_id,
        models.Carryover.originating_hole > 0,
    ).delete()
    db.query(models.Carryover).filter(
        models.Carryover.round_id == round_id,
        models.Carryover.originating_hole == 0,
    ).update({models.Carryover.is_won: 0})
    db.commit()


def rebuild_carryovers(db: Session, round_id: int):
    r = get_round(db, round_id)
    if not r:
        return None

    reset_round_carryovers(db, round_id)
    result = settle(db, round_id)

    still_open = set(result.outstanding_carryovers)

    for summary in result.hole_outcomes:
        if summary.created is not None:
            db.add(models.Carryover(
                round_id=round_id,
                originating_hole=summary.created.originating_hole,
                amount=summary.created.amount,
                eligible_participant_names=list(summary.created.eligible_names),
                is_won=0 if summary.created in still_open else 1,
            ))
        for co in summary.claimed:
            if co.carryover_id is not None:
                db.query(models.Carryover).filter(models.Carryover.id == co.carryover_id).update(
                    {models.Carryover.is_won: 1}
                )

    db.commit()
    logger.info(
        "Round %s replayed: %d holes, %d carryovers outstanding",
        round_id, len(result.hole_outcomes), len(result.outstanding_carryovers),
    )
    return result


#---------------------------------------------------------------------------------
# ------------------------------------ Resultados ---------------------------------
# --------------------------------------------------------------------------------

def settle(db: Session, round_id: int):
    r = get_round(db, round_id)
    if not r:
        return None
    return settle_round(
        r,
        get_participants(db, round_id),
        get_hole_results(db, round_id),
        get_round_carryovers(db, round_id),
    )


def build_round_stats(db: Session, round_id: int):
    result = settle(db, round_id)
    if result is None:
        return None

    participants = get_participants(db, round_id)
    hole_results = get_hole_results(db, round_id)

    rows = []
    for name in dict.fromkeys(p.name for p in participants):
        holes_played = sum(
            1 for hr in hole_results
            if is_active_on(participants, name, hr.hole_number)
            and any(is_valid_score(s) for s in hr.participant_scores.values())
        )
        rows.append(schemas.PlayerRoundStats(
            name=name,
            skins_won=result.skins_won.get(name, 0),
            balance=result.balances.get(name, 0),
            gross_won=result.gross_won.get(name, 0),
            gross_lost=result.gross_lost.get(name, 0),
            holes_played=holes_played,
        ))

    # mejor balance primero
    return sorted(rows, key=lambda x: (-x.balance, x.name))


def build_history_report(db: Session, start=None, end=None):
    rounds = []
    for r in get_rounds(db):
        d = r.date.date()
        if start and d < start:
            continue
        if end and d > end:
            continue
        rounds.append(r)

    games = []
    players = set()
    for r in rounds:
        balances = settle(db, r.id).balances
        games.append(schemas.HistoryGame(id=r.id, date=r.date, balances=balances))
        players.update(balances.keys())

    sorted_players = sorted(players)
    totals = {
        name: sum(g.balances.get(name, 0) for g in games)
        for name in sorted_players
    }

    return schemas.HistoryReport(players=sorted_players, games=games, totals=totals)


#---------------------------------------------------------------------------------
# -------------------------------------- Backup -----------------------------------
# --------------------------------------------------------------------------------

def _dump(db: Session, model, schema):
    return [schema.model_validate(row) for row in db.query(model).order_by(model.id).all()]


def export_data(db: Session) -> dict:
    backup = schemas.Backup(
        version=1,
        timestamp=datetime.utcnow(),
        data=schemas.BackupData(
            players=_dump(db, models.Player, schemas.PlayerOut),
            rounds=_dump(db, models.Round, schemas.BackupRound),
            participants=_dump(db, models.Participant, schemas.ParticipantOut),
            hole_results=_dump(db, models.HoleResult, schemas.HoleResultOut),
            carryovers=_dump(db, models.Carryover, schemas.CarryoverOut),
        ),
    )
    return backup.model_dump(mode="json")


def _reset_id_sequences(db: Session):
    # los ids vienen del backup: en Postgres hay que adelantar las secuencias
    if db.bind.dialect.name != "postgresql":
        return
    for model in (models.Player, models.Round, models.Participant, models.HoleResult, models.Carryover):
        table = model.__tablename__
        db.execute(text(
            f"SELECT setval(pg_get_serial_sequence('{table}', 'id'), "
            f"COALESCE((SELECT MAX(id) FROM {table}), 1))"
        ))


def import_data(db: Session, payload: dict):
    if not isinstance(payload, dict) or "data" not in payload:
        raise ValueError("Invalid backup format")
    try:
        backup = schemas.Backup.model_validate(payload)
    except ValidationError as e:
        raise ValueError(f"Invalid backup format: {e.error_count()} errors") from e

    data = backup.data
    try:
        # los objetos en sesión chocarían con los ids restaurados
        db.expunge_all()
        for model in (models.Carryover, models.HoleResult, models.Participant, models.Round, models.Player):
            db.query(model).delete(synchronize_session=False)

        for p in data.players:
            db.add(models.Player(**p.model_dump()))
        for r in data.rounds:
            db.add(models.Round(**r.model_dump()))
        db.flush()
        for p in data.participants:
            db.add(models.Participant(**p.model_dump()))
        for h in data.hole_results:
            db.add(models.HoleResult(**h.model_dump()))
        for c in data.carryovers:
            db.add(models.Carryover(**c.model_dump()))
        db.flush()
        _reset_id_sequences(db)
        db.commit()
    except Exception:
        db.rollback()
        logger.warning("Backup restore failed, rolled back")
        raise

    logger.info(
        "Backup restored: %d players, %d rounds",
        len(data.players), len(data.rounds),
    )
    return True
