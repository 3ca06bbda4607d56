from types import SimpleNamespace

import pytest

from backend.app.db.models.models_v1 import Item, SupplyRequest, SupplyRequestLine
from backend.app.db.models.core_types import RequestStatus
from backend.services import catalog, fulfillment
from backend.services.errors import (
    InvalidJustificationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from backend.services.fulfillment import FulfillmentLine, fulfill_request
from backend.services.requests import create_request
from factories import FIXED_NOW, lines, meta, naive, patient


@pytest.fixture
def pending_request(db_session, services, make_item):
    """Demande A x10, B x5 ; stock A=8, B=20."""
    make_item("A", 8)
    make_item("B", 20)
    return create_request(db_session, patient(), meta(), lines(("A", 10), ("B", 5)), now=FIXED_NOW)


def stock(db, item_id):
    return db.get(Item, item_id).quantity


def supplied(db, request_id, item_id):
    return db.get(SupplyRequestLine, (request_id, item_id)).quantity_supplied


def test_approve_decrements_stock_floored_at_zero(db_session, pending_request):
    """
    GIVEN stock A=8, B=20
    WHEN approbation A:8, B:5
    THEN A=0 (jamais négatif), B=15, demande approved
    """
    result = fulfill_request(
        db_session,
        pending_request,
        [FulfillmentLine("A", 8), FulfillmentLine("B", 5)],
        "approved",
        now=FIXED_NOW,
    )

    assert result.status == RequestStatus.approved
    assert result.justification == ""
    assert [ln.stock_after for ln in result.lines] == [0, 15]

    assert stock(db_session, "A") == 0
    assert stock(db_session, "B") == 15
    assert supplied(db_session, pending_request, "A") == 8

    req = db_session.get(SupplyRequest, pending_request)
    assert req.status == RequestStatus.approved
    assert naive(req.closed_at) == naive(FIXED_NOW)


def test_oversupply_is_clamped_not_an_error(db_session, pending_request):
    fulfill_request(db_session, pending_request, [FulfillmentLine("A", 500)], "approved")

    assert stock(db_session, "A") == 0
    assert supplied(db_session, pending_request, "A") == 500


def test_reject_keeps_stock_and_stores_batch_justification(db_session, pending_request):
    result = fulfill_request(
        db_session,
        pending_request,
        [
            FulfillmentLine("A", 0, justification="NoStockAvailable"),
            FulfillmentLine("B", 0, justification="DirectPurchase"),
        ],
        RequestStatus.rejected,
    )

    # la justification de la 1re ligne vaut pour toute la demande
    assert result.justification == "NoStockAvailable"
    req = db_session.get(SupplyRequest, pending_request)
    assert req.status == RequestStatus.rejected
    assert req.justification == "NoStockAvailable"
    assert stock(db_session, "A") == 8
    assert stock(db_session, "B") == 20


@pytest.mark.parametrize("justification", [None, "", "Porque si", "out_of_formulary"])
def test_reject_with_invalid_justification_changes_nothing(db_session, pending_request, justification):
    with pytest.raises(InvalidJustificationError):
        fulfill_request(
            db_session,
            pending_request,
            [FulfillmentLine("A", 3, justification=justification)],
            "rejected",
        )

    assert supplied(db_session, pending_request, "A") == 0
    assert stock(db_session, "A") == 8
    req = db_session.get(SupplyRequest, pending_request)
    assert req.status == RequestStatus.pending
    assert req.closed_at is None


def test_second_fulfillment_fails_without_side_effects(db_session, pending_request):
    fulfill_request(db_session, pending_request, [FulfillmentLine("B", 5)], "approved")
    assert stock(db_session, "B") == 15

    with pytest.raises(InvalidTransitionError) as exc:
        fulfill_request(db_session, pending_request, [FulfillmentLine("B", 5)], "approved")

    assert exc.value.status == "approved"
    assert stock(db_session, "B") == 15
    assert supplied(db_session, pending_request, "B") == 5


def test_status_guard_is_compare_and_set(db_session, pending_request, monkeypatch):
    """
    GIVEN la demande close par un autre appelant APRÈS notre lecture
    THEN l'UPDATE conditionnel (status = pending) échoue et tout est annulé
    """
    fulfill_request(db_session, pending_request, [FulfillmentLine("B", 5)], "approved")

    # lecture "périmée" : on croit encore la demande pending
    monkeypatch.setattr(fulfillment, "_lock_request", lambda db, rid: SimpleNamespace(status=RequestStatus.pending))

    with pytest.raises(InvalidTransitionError):
        fulfill_request(db_session, pending_request, [FulfillmentLine("B", 5)], "approved")

    assert stock(db_session, "B") == 15


def test_unknown_request(db_session, services):
    with pytest.raises(NotFoundError):
        fulfill_request(db_session, 404, [FulfillmentLine("A", 1)], "approved")


def test_line_outside_request_rolls_back(db_session, pending_request, make_item):
    make_item("C", 50)

    with pytest.raises(ValidationError):
        fulfill_request(
            db_session,
            pending_request,
            [FulfillmentLine("A", 2), FulfillmentLine("C", 1)],
            "approved",
        )

    assert stock(db_session, "A") == 8
    assert stock(db_session, "C") == 50
    assert supplied(db_session, pending_request, "A") == 0


@pytest.mark.parametrize(
    "status, lines_",
    [
        ("pending", [FulfillmentLine("A", 1)]),
        ("closed", [FulfillmentLine("A", 1)]),
        ("approved", []),
        ("approved", [FulfillmentLine("A", -1)]),
        ("approved", [FulfillmentLine("A", 1), FulfillmentLine("A", 2)]),
        ("approved", [FulfillmentLine("A", 2**31)]),
    ],
)
def test_invalid_input(db_session, pending_request, status, lines_):
    with pytest.raises(ValidationError):
        fulfill_request(db_session, pending_request, lines_, status)

    assert db_session.get(SupplyRequest, pending_request).status == RequestStatus.pending


def test_stock_never_negative_over_many_approvals(db_session, services, make_item):
    make_item("A", 25)
    for qty in (7, 7, 7, 7, 7):
        rid = create_request(db_session, patient(), meta(), lines(("A", qty)), now=FIXED_NOW)
        fulfill_request(db_session, rid, [FulfillmentLine("A", qty)], "approved")
        assert stock(db_session, "A") >= 0

    assert stock(db_session, "A") == 0


def test_items_are_locked_in_id_order(db_session, pending_request, monkeypatch):
    """
    GIVEN des lignes envoyées dans l'ordre B, A
    THEN le stock est verrouillé A puis B ; le résultat garde l'ordre reçu
    """
    real_adjust = catalog.adjust_quantity
    locked = []

    def recording_adjust(db, item_id, delta):
        locked.append(item_id)
        return real_adjust(db, item_id, delta)

    monkeypatch.setattr(catalog, "adjust_quantity", recording_adjust)

    result = fulfill_request(
        db_session,
        pending_request,
        [FulfillmentLine("B", 5), FulfillmentLine("A", 8)],
        "approved",
    )

    assert locked == ["A", "B"]
    assert [(ln.item_id, ln.stock_after) for ln in result.lines] == [("B", 15), ("A", 0)]
