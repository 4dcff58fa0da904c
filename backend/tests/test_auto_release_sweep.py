"""
Tests for the auto-release sweep (service, job script, admin endpoint)
"""

import pytest
import importlib.util
import json
import os
from datetime import datetime, timedelta, timezone

from escrow_core.core.marketplace.models import OrderStatus
from escrow_core.services import wallet_ledger
from escrow_core.services.disputes.service import open_dispute
from escrow_core.services.orders import service as order_service
from escrow_core.services.orders.service import confirm_delivery, create_order, release_expired_orders
from escrow_core.utils.time import utcnow
from tests.factories import auth_headers, balances, make_listing, make_user

script_path = os.path.join(os.path.dirname(__file__), '..', 'scripts', 'run_auto_release_job.py')
spec = importlib.util.spec_from_file_location("run_auto_release_job", script_path)
run_job_script = importlib.util.module_from_spec(spec)
spec.loader.exec_module(run_job_script)

AFTER_WINDOW = timedelta(hours=73)


@pytest.fixture
def orders(db_session, seller):
    """Three PENDING_DELIVERY orders of 100.00 TL each from three buyers"""
    created = []
    for index in range(3):
        buyer = make_user(db_session, f"alici_{index}")
        wallet_ledger.credit(db_session, buyer.id, 10000)
        listing = make_listing(db_session, seller, price="100.00", title=f"İlan {index}")
        created.append(create_order(db_session, listing.id, buyer.id))
    return created


def test_sweep_releases_only_due_undisputed_orders(db_session, orders, seller, moderator, sink):
    disputed, confirmed, due = orders
    open_dispute(db_session, disputed.id, disputed.buyer_id, "Ürün hasarlı")
    confirm_delivery(db_session, confirmed.id, confirmed.buyer_id)

    stats = release_expired_orders(db_session, now=utcnow() + AFTER_WINDOW, notifier=sink)

    assert stats['found'] == 1
    assert stats['released_count'] == 1
    assert stats['released_amount'] == 10000
    assert stats['errors_count'] == 0
    assert stats['dry_run'] is False
    assert order_service.get_order_by_id(db_session, due.id).status == OrderStatus.COMPLETED
    assert order_service.get_order_by_id(db_session, disputed.id).status == OrderStatus.DISPUTED
    assert balances(db_session, seller) == (20000, 0)


def test_sweep_before_deadline_finds_nothing(db_session, orders, seller):
    stats = release_expired_orders(db_session)

    assert stats['found'] == 0
    assert stats['released_count'] == 0
    assert balances(db_session, seller) == (0, 0)


def test_sweep_dry_run_moves_no_money(db_session, orders, seller):
    stats = release_expired_orders(db_session, now=utcnow() + AFTER_WINDOW, dry_run=True)

    assert stats['found'] == 3
    assert stats['released_count'] == 0
    assert balances(db_session, seller) == (0, 0)


def test_sweep_respects_max_orders_and_is_rerunnable(db_session, orders, seller):
    later = utcnow() + AFTER_WINDOW

    first = release_expired_orders(db_session, now=later, max_orders=2)
    second = release_expired_orders(db_session, now=later, max_orders=2)
    third = release_expired_orders(db_session, now=later, max_orders=2)

    assert first['released_count'] == 2
    assert second['released_count'] == 1
    assert third['found'] == 0
    assert balances(db_session, seller) == (30000, 0)


def test_sweep_continues_after_one_failure(db_session, orders, seller, monkeypatch):
    failing_id = orders[0].id
    real_auto_release = order_service.auto_release_order

    def flaky_auto_release(db, order_id, now=None, notifier=None):
        if order_id == failing_id:
            raise RuntimeError("database hiccup")
        return real_auto_release(db, order_id, now=now, notifier=notifier)

    monkeypatch.setattr(order_service, "auto_release_order", flaky_auto_release)

    stats = release_expired_orders(db_session, now=utcnow() + AFTER_WINDOW)

    assert stats['found'] == 3
    assert stats['released_count'] == 2
    assert stats['errors_count'] == 1
    assert str(failing_id) in stats['errors'][0]
    assert balances(db_session, seller) == (20000, 0)


def test_sweep_skips_order_disputed_after_it_was_read(db_session, orders, seller, monkeypatch):
    late_dispute = orders[1]
    real_auto_release = order_service.auto_release_order

    def dispute_then_release(db, order_id, now=None, notifier=None):
        if order_id == late_dispute.id:
            open_dispute(db, order_id, late_dispute.buyer_id, "Ürün gelmedi")
        return real_auto_release(db, order_id, now=now, notifier=notifier)

    monkeypatch.setattr(order_service, "auto_release_order", dispute_then_release)

    stats = release_expired_orders(db_session, now=utcnow() + AFTER_WINDOW)

    assert stats['found'] == 3
    assert stats['released_count'] == 2
    assert stats['skipped_count'] == 1
    assert stats['errors_count'] == 0
    assert order_service.get_order_by_id(db_session, late_dispute.id).status == OrderStatus.DISPUTED
    assert balances(db_session, seller) == (20000, 0)


def test_job_parse_as_of():
    assert run_job_script.parse_as_of("2026-01-27T12:00:00+03:00") == datetime(2026, 1, 27, 9, 0, tzinfo=timezone.utc)
    assert run_job_script.parse_as_of("2026-01-27T12:00:00") == datetime(2026, 1, 27, 12, 0, tzinfo=timezone.utc)
    assert run_job_script.parse_as_of(None).tzinfo is not None
    with pytest.raises(ValueError):
        run_job_script.parse_as_of("yarın")


def test_job_trace_id_format():
    trace_id = run_job_script.generate_trace_id(datetime(2026, 1, 27, 12, 30, tzinfo=timezone.utc))
    assert trace_id.startswith("job-auto-release-202601271230-")


def test_job_prints_json_summary(db_session, session_factory, orders, seller, monkeypatch, capsys):
    monkeypatch.setattr(run_job_script, "SessionLocal", session_factory)
    as_of = (utcnow() + AFTER_WINDOW).isoformat()

    exit_code = run_job_script.main(["--as-of", as_of, "--max-orders", "10"])

    output = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert exit_code == 0
    assert output["job"] == "auto_release_sweep"
    assert output["summary"]["released_count"] == 3
    assert output["trace_id"].startswith("job-auto-release-")
    assert balances(db_session, seller) == (30000, 0)


def test_job_invalid_as_of_exits_1(capsys):
    assert run_job_script.main(["--as-of", "not-a-date"]) == 1
    assert "Invalid datetime format" in capsys.readouterr().err


def test_admin_sweep_endpoint(client, db_session, orders, moderator):
    response = client.post(
        "/admin/v1/orders/auto-release-sweep",
        headers=auth_headers(moderator),
        json={"dry_run": True},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["dry_run"] is True
    assert data["found"] == 0  # deadlines are 72h away


def test_admin_sweep_requires_staff(client, db_session, orders, seller):
    response = client.post("/admin/v1/orders/auto-release-sweep", headers=auth_headers(seller))
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "FORBIDDEN"
