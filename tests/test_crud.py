from __future__ import annotations

from datetime import date, datetime

import pytest

from skins import crud, models, schemas


def _new_round(db, names=("A", "B", "C", "D"), **kwargs):
    data = schemas.RoundCreate(bet_amount=kwargs.pop("bet_amount", 1), player_names=list(names), **kwargs)
    return crud.create_round(db, data)


def test_create_round_adds_participants_from_hole_one(db):
    r = _new_round(db, names=("A", " B ", "A", ""))

    parts = crud.get_participants(db, r.id)
    assert [(p.name, p.start_hole, p.end_hole) for p in parts] == [("A", 1, None), ("B", 1, None)]
    assert r.is_completed is False
    assert crud.get_active_round(db).id == r.id


def test_tie_is_persisted_and_claimed_later(db):
    r = _new_round(db)

    crud.submit_hole_scores(db, r.id, 1, {"A": 4, "B": 4, "C": 4, "D": 4})
    open_cos = crud.get_outstanding_carryovers(db, r.id)
    assert len(open_cos) == 1
    assert open_cos[0].originating_hole == 1
    assert open_cos[0].eligible_participant_names == ["A", "B", "C", "D"]

    crud.submit_hole_scores(db, r.id, 2, {"A": 3, "B": 4, "C": 4, "D": 4})
    assert crud.get_outstanding_carryovers(db, r.id) == []
    cos = crud.get_round_carryovers(db, r.id)
    assert [(c.originating_hole, c.is_won) for c in cos] == [(1, 1)]

    result = crud.settle(db, r.id)
    assert result.balances == {"A": 6, "B": -2, "C": -2, "D": -2}


def test_rescoring_a_tie_into_a_win_drops_its_carryover(db):
    r = _new_round(db)
    crud.submit_hole_scores(db, r.id, 1, {"A": 4, "B": 4, "C": 5, "D": 5})
    assert len(crud.get_round_carryovers(db, r.id)) == 1

    crud.submit_hole_scores(db, r.id, 1, {"A": 3, "B": 4, "C": 5, "D": 5})
    assert crud.get_round_carryovers(db, r.id) == []
    assert len(crud.get_hole_results(db, r.id)) == 1
    assert crud.settle(db, r.id).balances["A"] == 3


def test_rescoring_the_same_card_is_idempotent(db):
    r = _new_round(db)
    crud.submit_hole_scores(db, r.id, 1, {"A": 4, "B": 4, "C": 4, "D": 4})
    crud.submit_hole_scores(db, r.id, 2, {"A": 5, "B": 5, "C": 6, "D": 6})
    first = crud.settle(db, r.id)
    before = [(c.originating_hole, c.is_won) for c in crud.get_round_carryovers(db, r.id)]

    crud.submit_hole_scores(db, r.id, 2, {"A": 5, "B": 5, "C": 6, "D": 6})
    after = [(c.originating_hole, c.is_won) for c in crud.get_round_carryovers(db, r.id)]

    assert before == after == [(1, 0), (2, 0)]
    assert crud.settle(db, r.id) == first


def test_scores_are_cleaned_before_storage(db):
    r = _new_round(db)
    hr = crud.submit_hole_scores(db, r.id, 1, {"A": 4, "B": 0, "C": None, "D": -1})
    assert hr.participant_scores == {"A": 4}


def test_skip_hole_stores_empty_card(db):
    r = _new_round(db)
    hr = crud.skip_hole(db, r.id, 1)
    assert hr.participant_scores == {}
    assert crud.settle(db, r.id).hole_outcomes[0].outcome == "NoActivePlayers"


def test_new_round_inherits_unwon_carryovers(db):
    first = _new_round(db)
    crud.submit_hole_scores(db, first.id, 1, {"A": 4, "B": 4, "C": 4, "D": 4})
    crud.complete_round(db, first.id)

    second = _new_round(db)
    inherited = crud.get_round_carryovers(db, second.id)
    assert [(c.originating_hole, c.amount, c.is_won) for c in inherited] == [(0, 1, 0)]
    assert inherited[0].eligible_participant_names == ["A", "B", "C", "D"]

    crud.submit_hole_scores(db, second.id, 1, {"A": 3, "B": 4, "C": 4, "D": 4})
    assert crud.get_outstanding_carryovers(db, second.id) == []
    assert crud.settle(db, second.id).balances["A"] == 6

    # the first round keeps its own record untouched
    assert len(crud.get_outstanding_carryovers(db, first.id)) == 1


def test_rescoring_resets_inherited_claims(db):
    first = _new_round(db)
    crud.submit_hole_scores(db, first.id, 1, {"A": 4, "B": 4, "C": 4, "D": 4})
    second = _new_round(db)

    crud.submit_hole_scores(db, second.id, 1, {"A": 3, "B": 4, "C": 4, "D": 4})
    assert crud.get_outstanding_carryovers(db, second.id) == []

    crud.submit_hole_scores(db, second.id, 1, {"A": 4, "B": 4, "C": 4, "D": 4})
    assert sorted(c.originating_hole for c in crud.get_outstanding_carryovers(db, second.id)) == [0, 1]


def test_no_inheritance_without_carryovers(db):
    first = _new_round(db)
    crud.submit_hole_scores(db, first.id, 1, {"A": 4, "B": 4, "C": 4, "D": 4})

    second = _new_round(db, use_carryovers=False)
    assert crud.get_round_carryovers(db, second.id) == []

    third = _new_round(db, inherit_carryovers=False)
    assert crud.get_round_carryovers(db, third.id) == []


def test_leave_and_rejoin_creates_a_second_span(db):
    r = _new_round(db, names=("A", "B", "C"))
    c = [p for p in crud.get_participants(db, r.id) if p.name == "C"][0]

    crud.close_participant(db, c.id, 1)
    crud.add_participant(db, r.id, "C", 3)

    spans = [(p.start_hole, p.end_hole) for p in crud.get_participants(db, r.id) if p.name == "C"]
    assert spans == [(1, 1), (3, None)]

    crud.submit_hole_scores(db, r.id, 1, {"A": 4, "B": 4, "C": 4})
    crud.submit_hole_scores(db, r.id, 2, {"A": 4, "B": 4})
    crud.submit_hole_scores(db, r.id, 3, {"A": 4, "B": 4, "C": 3})

    result = crud.settle(db, r.id)
    assert result.balances == {"A": -1, "B": -1, "C": 2}
    assert [c.originating_hole for c in crud.get_outstanding_carryovers(db, r.id)] == [1, 2]


def test_close_participant_rejects_end_before_start(db):
    r = _new_round(db, names=())
    p = crud.add_participant(db, r.id, "Late", 5)
    with pytest.raises(ValueError):
        crud.close_participant(db, p.id, 4)
    assert crud.close_participant(db, 9999, 4) is None


def test_player_reference_check(db):
    ana = crud.create_player(db, schemas.PlayerCreate(name="Ana"))
    crud.create_player(db, schemas.PlayerCreate(name="Bea"))
    _new_round(db, names=("Ana",))

    assert crud.is_player_referenced(db, "Ana")
    assert not crud.is_player_referenced(db, "Bea")
    assert crud.delete_player(db, ana.id)
    assert not crud.delete_player(db, ana.id)


def test_round_stats(db):
    r = _new_round(db, names=("A", "B"))
    crud.add_participant(db, r.id, "C", 2)
    crud.submit_hole_scores(db, r.id, 1, {"A": 3, "B": 4})
    crud.submit_hole_scores(db, r.id, 2, {"A": 4, "B": 4, "C": 5})
    crud.skip_hole(db, r.id, 3)

    stats = {row.name: row for row in crud.build_round_stats(db, r.id)}
    assert stats["A"].skins_won == 1
    assert stats["A"].balance == 1
    assert stats["A"].holes_played == 2
    assert stats["C"].holes_played == 1
    assert stats["B"].gross_lost == 1
    assert crud.build_round_stats(db, 9999) is None


def test_history_report_filters_by_date_and_totals(db):
    old = _new_round(db, names=("A", "B"))
    crud.submit_hole_scores(db, old.id, 1, {"A": 3, "B": 4})
    recent = _new_round(db, names=("A", "B", "C"))
    crud.submit_hole_scores(db, recent.id, 1, {"A": 5, "B": 4, "C": 5})

    db.query(models.Round).filter(models.Round.id == old.id).update({models.Round.date: datetime(2026, 1, 10, 9, 0)})
    db.query(models.Round).filter(models.Round.id == recent.id).update({models.Round.date: datetime(2026, 3, 2, 9, 0)})
    db.commit()

    report = crud.build_history_report(db)
    assert report.players == ["A", "B", "C"]
    assert [g.id for g in report.games] == [recent.id, old.id]
    assert report.totals == {"A": 0, "B": 1, "C": -1}

    march = crud.build_history_report(db, start=date(2026, 3, 1), end=date(2026, 3, 31))
    assert [g.id for g in march.games] == [recent.id]
    assert march.totals == {"A": -1, "B": 2, "C": -1}


def test_backup_round_trip(db):
    crud.create_player(db, schemas.PlayerCreate(name="A", phone="555"))
    r = _new_round(db)
    crud.submit_hole_scores(db, r.id, 1, {"A": 4, "B": 4, "C": 4, "D": 4})
    crud.submit_hole_scores(db, r.id, 2, {"A": 3, "B": 4, "C": 4, "D": 4})
    before = crud.settle(db, r.id)

    backup = crud.export_data(db)
    assert backup["version"] == 1
    assert len(backup["data"]["hole_results"]) == 2

    crud.delete_round(db, r.id)
    assert crud.get_round(db, r.id) is None

    crud.import_data(db, backup)
    assert crud.settle(db, r.id) == before
    assert crud.get_players(db)[0].phone == "555"
    assert [(c.originating_hole, c.is_won) for c in crud.get_round_carryovers(db, r.id)] == [(1, 1)]


def test_malformed_backup_leaves_data_untouched(db):
    r = _new_round(db)

    with pytest.raises(ValueError):
        crud.import_data(db, {"version": 1})
    with pytest.raises(ValueError):
        crud.import_data(db, {"version": 1, "timestamp": "2026-01-01T00:00:00", "data": {"rounds": [{"id": "x"}]}})

    assert crud.get_round(db, r.id) is not None


def test_active_player_cannot_join_again(db):
    r = _new_round(db, names=("A", "B", "C"))

    with pytest.raises(ValueError):
        crud.add_participant(db, r.id, " A ", 3)

    spans = [(p.name, p.start_hole, p.end_hole) for p in crud.get_participants(db, r.id)]
    assert spans == [("A", 1, None), ("B", 1, None), ("C", 1, None)]


def test_rejoin_must_start_after_the_closed_span(db):
    r = _new_round(db, names=("A", "B"))
    a = crud.get_participants(db, r.id)[0]
    crud.close_participant(db, a.id, 4)

    with pytest.raises(ValueError):
        crud.add_participant(db, r.id, "A", 4)
    crud.add_participant(db, r.id, "A", 6)


def test_closed_span_cannot_be_stretched_into_a_rejoin(db):
    r = _new_round(db, names=("A", "B", "C"))
    c = [p for p in crud.get_participants(db, r.id) if p.name == "C"][0]
    crud.close_participant(db, c.id, 1)
    crud.add_participant(db, r.id, "C", 3)

    with pytest.raises(ValueError):
        crud.close_participant(db, c.id, 3)

    assert crud.close_participant(db, c.id, 2).end_hole == 2
    crud.submit_hole_scores(db, r.id, 5, {"A": 4, "B": 3, "C": 4})
    assert crud.settle(db, r.id).balances == {"A": -1, "B": 2, "C": -1}


def test_restore_then_create_gets_fresh_ids(db):
    crud.create_player(db, schemas.PlayerCreate(name="A"))
    crud.create_player(db, schemas.PlayerCreate(name="B"))
    r = _new_round(db, names=("A", "B"))
    backup = crud.export_data(db)

    crud.import_data(db, backup)

    c = crud.create_player(db, schemas.PlayerCreate(name="C"))
    assert c.id not in {p["id"] for p in backup["data"]["players"]}
    assert _new_round(db, names=("A",)).id > r.id
    assert len(crud.get_players(db)) == 3
