from datetime import datetime
from decimal import Decimal
from unittest.mock import patch

import pytest
import stripe
from sqlalchemy.exc import IntegrityError

from calcula.core.errors import RemoteServiceError
from calcula.models import Affiliate, AffiliateCommission, AffiliateLink, AffiliateSale
from calcula.services import affiliate_sync
from calcula.services.affiliate_sync import compute_commission, reconcile_affiliate_sales

LIST_SESSIONS = "calcula.services.stripe_gateway.list_completed_sessions"
LINE_ITEMS = "calcula.services.stripe_gateway.list_line_items"

NOW = datetime(2026, 10, 1, 12, 0, 0)
CREATED = 1790000000


def make_session(index, affiliate_code=None, amount_total=4990):
    metadata = {"plan_type": "professional", "billing": "monthly"}
    if affiliate_code:
        metadata["affiliate_code"] = affiliate_code
    return {
        "id": f"cs_test_{index:03d}",
        "created": CREATED,
        "amount_total": amount_total,
        "customer_details": {"email": f"buyer{index}@example.com", "name": f"Buyer {index}"},
        "payment_intent": f"pi_{index:03d}",
        "metadata": metadata,
    }


def line_items(product_id="prod_T6TXCmpEQTIaRT"):
    return [{"price": {"product": product_id}}]


def scenario_sessions():
    """100 sessions, 7 of them attributed to ANA10."""
    attributed = {3, 17, 25, 40, 58, 71, 99}
    return [make_session(i, "ANA10" if i in attributed else None) for i in range(100)], sorted(attributed)


def existing_sale(db, affiliate, session_id):
    link = db.query(AffiliateLink).filter(AffiliateLink.link_code == "ANA10").one()
    sale = AffiliateSale(
        affiliate_id=affiliate.id,
        affiliate_link_id=link.id,
        customer_email="old@example.com",
        sale_amount=Decimal("49.90"),
        commission_amount=Decimal("4.99"),
        plan_type="professional",
        stripe_session_id=session_id,
        status="confirmed",
    )
    db.add(sale)
    db.flush()
    db.add(AffiliateCommission(affiliate_id=affiliate.id, sale_id=sale.id, amount=Decimal("4.99")))
    db.commit()


class TestReconciliation:
    def test_hundred_sessions_seven_attributed_five_synced(self, db, affiliate):
        sessions, attributed = scenario_sessions()
        for index in attributed[:5]:
            existing_sale(db, affiliate, f"cs_test_{index:03d}")

        with patch(LIST_SESSIONS, return_value=sessions), patch(LINE_ITEMS, return_value=line_items()):
            summary = reconcile_affiliate_sales(db, now=NOW)

        assert summary.to_dict() == {"success": True, "syncedSales": 2, "errors": 0, "totalSessions": 100}
        assert db.query(AffiliateSale).count() == 7
        assert db.query(AffiliateCommission).count() == 7

    def test_running_twice_never_duplicates(self, db, affiliate):
        sessions, attributed = scenario_sessions()

        with patch(LIST_SESSIONS, return_value=sessions), patch(LINE_ITEMS, return_value=line_items()):
            first = reconcile_affiliate_sales(db, now=NOW)
            second = reconcile_affiliate_sales(db, now=NOW)

        assert first.synced_sales == len(attributed)
        assert second.synced_sales == 0
        assert db.query(AffiliateSale).count() == len(attributed)
        assert db.query(AffiliateCommission).count() == len(attributed)

    def test_sale_commission_and_counters(self, db, affiliate):
        with patch(LIST_SESSIONS, return_value=[make_session(1, "ANA10", amount_total=8990)]), \
                patch(LINE_ITEMS, return_value=line_items("prod_T6TYlKJ4hdq6m1")):
            reconcile_affiliate_sales(db, now=NOW)

        sale = db.query(AffiliateSale).one()
        assert sale.sale_amount == Decimal("89.90")
        assert sale.commission_amount == Decimal("8.99")
        assert sale.plan_type == "enterprise"
        assert sale.status == "confirmed"
        assert sale.customer_email == "buyer1@example.com"
        assert sale.stripe_payment_intent_id == "pi_001"

        commission = db.query(AffiliateCommission).one()
        assert commission.sale_id == sale.id
        assert commission.status == "pending"

        db.expire_all()
        link = db.query(AffiliateLink).one()
        aff = db.query(Affiliate).one()
        assert link.conversions_count == 1
        assert aff.total_sales == Decimal("89.90")
        assert aff.total_commissions == Decimal("8.99")

    def test_unknown_product_defaults_to_professional(self, db, affiliate):
        with patch(LIST_SESSIONS, return_value=[make_session(1, "ANA10")]), \
                patch(LINE_ITEMS, return_value=line_items("prod_unknown")):
            reconcile_affiliate_sales(db, now=NOW)
        assert db.query(AffiliateSale).one().plan_type == "professional"

    def test_unknown_link_is_skipped(self, db, affiliate):
        with patch(LIST_SESSIONS, return_value=[make_session(1, "NOPE")]), patch(LINE_ITEMS) as items:
            summary = reconcile_affiliate_sales(db, now=NOW)
        assert summary.synced_sales == 0
        assert summary.errors == 0
        items.assert_not_called()

    def test_one_failing_session_does_not_stop_the_scan(self, db, affiliate):
        sessions = [make_session(1, "ANA10"), make_session(2, "ANA10")]

        def items(session_id):
            if session_id == "cs_test_001":
                raise stripe.APIConnectionError("timeout")
            return line_items()

        with patch(LIST_SESSIONS, return_value=sessions), patch(LINE_ITEMS, side_effect=items):
            summary = reconcile_affiliate_sales(db, now=NOW)

        assert summary.errors == 1
        assert summary.synced_sales == 1
        assert db.query(AffiliateSale).one().stripe_session_id == "cs_test_002"

    def test_concurrent_insert_is_treated_as_synced(self, db, affiliate):
        existing_sale(db, affiliate, "cs_test_001")

        with patch(LIST_SESSIONS, return_value=[make_session(1, "ANA10")]), \
                patch(LINE_ITEMS, return_value=line_items()), \
                patch.object(affiliate_sync, "_sale_exists", side_effect=[False, True]):
            summary = reconcile_affiliate_sales(db, now=NOW)

        assert summary.errors == 0
        assert summary.synced_sales == 0
        assert db.query(AffiliateSale).count() == 1

    def test_integrity_failure_without_existing_sale_is_an_error(self, db, affiliate):
        broken_fk = IntegrityError("INSERT INTO affiliate_commissions", {}, Exception("FOREIGN KEY constraint failed"))

        with patch(LIST_SESSIONS, return_value=[make_session(1, "ANA10")]), \
                patch(LINE_ITEMS, return_value=line_items()), \
                patch.object(affiliate_sync, "_record_sale", side_effect=broken_fk):
            summary = reconcile_affiliate_sales(db, now=NOW)

        assert summary.errors == 1
        assert summary.synced_sales == 0
        assert db.query(AffiliateSale).count() == 0

    def test_session_without_line_items_is_skipped(self, db, affiliate):
        with patch(LIST_SESSIONS, return_value=[make_session(1, "ANA10")]), patch(LINE_ITEMS, return_value=[]):
            summary = reconcile_affiliate_sales(db, now=NOW)

        assert summary.synced_sales == 0
        assert summary.errors == 0
        assert summary.skipped == 1
        assert db.query(AffiliateSale).count() == 0
        assert db.query(AffiliateCommission).count() == 0

    def test_line_item_without_product_is_skipped(self, db, affiliate):
        with patch(LIST_SESSIONS, return_value=[make_session(1, "ANA10")]), \
                patch(LINE_ITEMS, return_value=[{"price": {"product": None}}]):
            summary = reconcile_affiliate_sales(db, now=NOW)

        assert summary.synced_sales == 0
        assert summary.errors == 0
        assert db.query(AffiliateSale).count() == 0

    def test_listing_failure_fails_the_run(self, db):
        with patch(LIST_SESSIONS, side_effect=stripe.APIConnectionError("down")):
            with pytest.raises(RemoteServiceError):
                reconcile_affiliate_sales(db, now=NOW)

    def test_window_and_limit(self, db):
        with patch(LIST_SESSIONS, return_value=[]) as listing:
            reconcile_affiliate_sales(db, now=NOW, window_days=30, limit=100)
        since = listing.call_args.args[0]
        assert (NOW - since).days == 30
        assert listing.call_args.kwargs["limit"] == 100


class TestCommission:
    def test_fixed_commission(self):
        aff = Affiliate(commission_type="fixed", commission_fixed_amount=Decimal("15"))
        assert compute_commission(aff, Decimal("89.90")) == Decimal("15.00")

    def test_percentage_rounds_to_cents(self):
        aff = Affiliate(commission_type="percentage", commission_percentage=Decimal("12.5"))
        assert compute_commission(aff, Decimal("49.90")) == Decimal("6.24")
