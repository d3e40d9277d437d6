import logging
import os
from datetime import date

from fastapi import FastAPI, Request, Depends, HTTPException, Response
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from .db import Base, engine, get_db
from . import crud, schemas

logger = logging.getLogger(__name__)


Base.metadata.create_all(bind=engine)


app = FastAPI(title="Drop-in Skins")

ADMIN_KEY = os.getenv("ADMIN_KEY", "")  # vacío = restore sin clave


def require_admin(request: Request):
    # sin clave configurada el restore queda abierto
    if not ADMIN_KEY:
        return

    if request.headers.get("X-Admin-Key") == ADMIN_KEY:
        return

    raise HTTPException(status_code=401, detail="Admin auth required")


def _round_or_404(db: Session, round_id: int):
    r = crud.get_round(db, round_id)
    if not r:
        raise HTTPException(status_code=404, detail="Round not found")
    return r


def _check_hole(r, hole_number: int):
    if hole_number < 1 or hole_number > r.total_holes:
        raise HTTPException(status_code=400, detail=f"Hole must be between 1 and {r.total_holes}")


# ---------------------------------------------------------------------------------

@app.get("/", include_in_schema=False)
def root():
    return RedirectResponse(url="/rounds")


#--------------------------------------------------------------------------------
#----------------------------------- PLAYERS ------------------------------------
#--------------------------------------------------------------------------------

@app.get("/players", response_model=list[schemas.PlayerOut])
def players_list(db: Session = Depends(get_db)):
    return crud.get_players(db)


@app.post("/players", response_model=schemas.PlayerOut, status_code=201)
def player_new(data: schemas.PlayerCreate, db: Session = Depends(get_db)):
    return crud.create_player(db, data)


@app.put("/players/{player_id}", response_model=schemas.PlayerOut)
def player_edit(player_id: int, data: schemas.PlayerUpdate, db: Session = Depends(get_db)):
    p = crud.update_player(db, player_id, data)
    if not p:
        raise HTTPException(status_code=404, detail="Player not found")
    return p


@app.delete("/players/{player_id}", status_code=204)
def player_delete(player_id: int, db: Session = Depends(get_db)):
    p = crud.get_player(db, player_id)
    if not p:
        raise HTTPException(status_code=404, detail="Player not found")

    # el historial de rondas guarda el nombre: no se borra si ya ha jugado
    if crud.is_player_referenced(db, p.name):
        raise HTTPException(status_code=409, detail="Player has played rounds")

    crud.delete_player(db, player_id)
    return Response(status_code=204)


# ======================================================================
# ----------------------------- ROUNDS ---------------------------------
#=======================================================================

@app.get("/rounds", response_model=list[schemas.RoundOut])
def rounds_list(db: Session = Depends(get_db)):
    return crud.get_rounds(db)


@app.post("/rounds", response_model=schemas.RoundOut, status_code=201)
def round_new(data: schemas.RoundCreate, db: Session = Depends(get_db)):
    return crud.create_round(db, data)


@app.get("/rounds/active", response_model=schemas.RoundOut)
def round_active(db: Session = Depends(get_db)):
    r = crud.get_active_round(db)
    if not r:
        raise HTTPException(status_code=404, detail="No active round")
    return r


@app.get("/rounds/{round_id}", response_model=schemas.RoundOut)
def round_detail(round_id: int, db: Session = Depends(get_db)):
    return _round_or_404(db, round_id)


@app.post("/rounds/{round_id}/complete", response_model=schemas.RoundOut)
def round_complete(round_id: int, db: Session = Depends(get_db)):
    _round_or_404(db, round_id)
    return crud.complete_round(db, round_id)


@app.delete("/rounds/{round_id}", status_code=204)
def round_delete(round_id: int, db: Session = Depends(get_db)):
    if not crud.delete_round(db, round_id):
        raise HTTPException(status_code=404, detail="Round not found")
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# ------------------------- ROUNDS: PARTICIPANTS ----------------------------
# ---------------------------------------------------------------------------

@app.get("/rounds/{round_id}/participants", response_model=list[schemas.ParticipantOut])
def participants_list(round_id: int, db: Session = Depends(get_db)):
    _round_or_404(db, round_id)
    return crud.get_participants(db, round_id)


@app.post("/rounds/{round_id}/participants", response_model=schemas.ParticipantOut, status_code=201)
def participant_join(round_id: int, data: schemas.ParticipantJoin, db: Session = Depends(get_db)):
    r = _round_or_404(db, round_id)
    _check_hole(r, data.start_hole)
    try:
        p = crud.add_participant(db, round_id, data.name, data.start_hole)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    crud.rebuild_carryovers(db, round_id)
    return p


@app.post("/rounds/{round_id}/participants/{participant_id}/leave", response_model=schemas.ParticipantOut)
def participant_leave(
    round_id: int,
    participant_id: int,
    data: schemas.ParticipantLeave,
    db: Session = Depends(get_db),
):
    r = _round_or_404(db, round_id)
    p = crud.get_participant(db, participant_id)
    if not p or p.round_id != round_id:
        raise HTTPException(status_code=404, detail="Participant not found")
    _check_hole(r, data.end_hole)

    try:
        p = crud.close_participant(db, participant_id, data.end_hole)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    # cambiar un tramo cambia quién estaba activo: se re-liquida
    crud.rebuild_carryovers(db, round_id)
    return p


# ---------------------------------------------------------------------------
# ---------------------------- ROUNDS: SCORING ------------------------------
# ---------------------------------------------------------------------------

@app.get("/rounds/{round_id}/holes", response_model=list[schemas.HoleResultOut])
def holes_list(round_id: int, db: Session = Depends(get_db)):
    _round_or_404(db, round_id)
    return crud.get_hole_results(db, round_id)


@app.put("/rounds/{round_id}/holes/{hole_number}", response_model=schemas.HoleResultOut)
def hole_submit(round_id: int, hole_number: int, data: schemas.HoleScoresIn, db: Session = Depends(get_db)):
    r = _round_or_404(db, round_id)
    _check_hole(r, hole_number)
    return crud.submit_hole_scores(db, round_id, hole_number, data.scores)


@app.post("/rounds/{round_id}/holes/{hole_number}/skip", response_model=schemas.HoleResultOut)
def hole_skip(round_id: int, hole_number: int, db: Session = Depends(get_db)):
    r = _round_or_404(db, round_id)
    _check_hole(r, hole_number)
    return crud.skip_hole(db, round_id, hole_number)


# ---------------------------------------------------------------------------
# ---------------------------- ROUNDS: RESULTS ------------------------------
# ---------------------------------------------------------------------------

@app.get("/rounds/{round_id}/settlement", response_model=schemas.SettlementOut)
def round_settlement(round_id: int, db: Session = Depends(get_db)):
    _round_or_404(db, round_id)
    return schemas.SettlementOut.model_validate(crud.settle(db, round_id))


@app.get("/rounds/{round_id}/stats", response_model=list[schemas.PlayerRoundStats])
def round_stats(round_id: int, db: Session = Depends(get_db)):
    _round_or_404(db, round_id)
    return crud.build_round_stats(db, round_id)


@app.get("/rounds/{round_id}/carryovers", response_model=list[schemas.CarryoverOut])
def round_carryovers(round_id: int, only_open: bool = False, db: Session = Depends(get_db)):
    _round_or_404(db, round_id)
    if only_open:
        return crud.get_outstanding_carryovers(db, round_id)
    return crud.get_round_carryovers(db, round_id)


# =================================================================================
# ================================ HISTORY / BACKUP ===============================
# =================================================================================

@app.get("/history", response_model=schemas.HistoryReport)
def history(start: date | None = None, end: date | None = None, db: Session = Depends(get_db)):
    return crud.build_history_report(db, start, end)


@app.get("/backup")
def backup_export(db: Session = Depends(get_db)):
    return crud.export_data(db)


@app.post("/backup/restore", dependencies=[Depends(require_admin)])
async def backup_restore(request: Request, db: Session = Depends(get_db)):
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Backup is not valid JSON")

    try:
        crud.import_data(db, payload)
    except ValueError as e:
        logger.warning("Rejected backup: %s", e)
        raise HTTPException(status_code=400, detail=str(e))

    return {"status": "ok"}


# ---------------------------------------------------------------------------


@app.get("/health")
def health():
    return {"status": "ok"}
