from decimal import Decimal
from unittest.mock import patch

import stripe

from calcula.models import (
    ActivityLog,
    AffiliateCoupon,
    AffiliateLink,
    AffiliateStripeProduct,
    Profile,
    Subscription,
)
from conftest import USER_ID

GATEWAY = "calcula.services.stripe_gateway"


class TestInfrastructure:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_options_returns_empty_200(self, client):
        response = client.options("/functions/affiliate-checkout")
        assert response.status_code == 200
        assert response.content == b""

    def test_missing_token_uses_error_envelope(self, client):
        response = client.get("/plans/current")
        assert response.status_code == 401
        assert response.json() == {"error": "Missing authorization header"}

    def test_non_admin_cannot_sync(self, client, user_headers):
        with patch(f"{GATEWAY}.list_completed_sessions") as listing:
            response = client.post("/functions/sync-affiliate-sales", headers=user_headers)
        assert response.status_code == 403
        assert "admin" in response.json()["error"]
        listing.assert_not_called()

    def test_body_validation_is_400(self, client):
        response = client.post("/functions/affiliate-checkout", json={"billing": "monthly"})
        assert response.status_code == 400
        assert "planType" in response.json()["error"]


class TestPlans:
    def test_current_plan_for_new_user_creates_free_profile(self, client, db):
        from conftest import auth_header

        response = client.get("/plans/current", headers=auth_header("new-user", "new@example.com"))

        assert response.status_code == 200
        assert response.json()["plan"] == "free"
        assert db.query(Profile).filter(Profile.user_id == "new-user").count() == 1


class TestAffiliateCoupons:
    def test_percentage_above_100_rejected_before_stripe(self, client, admin_headers, affiliate):
        with patch(f"{GATEWAY}.create_coupon") as create:
            response = client.post(
                "/functions/create-affiliate-coupon",
                headers=admin_headers,
                json={
                    "affiliateId": affiliate.id,
                    "name": "Black Friday",
                    "discountType": "percentage",
                    "discountValue": 150,
                },
            )
        assert response.status_code == 400
        assert "100%" in response.json()["error"]
        create.assert_not_called()

    def test_stripe_outage_on_coupon_creation_is_500(self, client, db, admin_headers, affiliate):
        with patch(f"{GATEWAY}.create_coupon", side_effect=stripe.APIConnectionError("connection reset")):
            response = client.post(
                "/functions/create-affiliate-coupon",
                headers=admin_headers,
                json={
                    "affiliateId": affiliate.id,
                    "name": "Promo",
                    "discountType": "fixed",
                    "discountValue": 25,
                },
            )
        assert response.status_code == 500
        assert "connection reset" not in response.json()["error"]
        assert db.query(AffiliateCoupon).count() == 0

    def test_create_coupon(self, client, db, admin_headers, affiliate):
        with patch(f"{GATEWAY}.create_coupon", side_effect=lambda **params: {"id": params["id"]}):
            response = client.post(
                "/functions/create-affiliate-coupon",
                headers=admin_headers,
                json={
                    "affiliateId": affiliate.id,
                    "name": "Lançamento",
                    "discountType": "percentage",
                    "discountValue": 10,
                },
            )

        assert response.status_code == 200
        coupon = response.json()["coupon"]
        assert coupon["stripe_coupon_id"].startswith("ANASOUZA-")
        assert coupon["display_value"] == "10% OFF"
        assert coupon["affiliate_name"] == "Ana Souza"
        assert db.query(AffiliateCoupon).count() == 1

    def test_toggle_and_list(self, client, db, admin_headers, affiliate):
        db.add(AffiliateCoupon(
            affiliate_id=affiliate.id,
            stripe_coupon_id="ANASOUZA-ABC123",
            name="Promo",
            discount_type="fixed",
            discount_value=Decimal("25"),
        ))
        db.commit()
        coupon_id = db.query(AffiliateCoupon).one().id

        toggled = client.post(
            f"/affiliates/coupons/{coupon_id}/toggle", headers=admin_headers, json={"currentStatus": True}
        )
        assert toggled.status_code == 200
        assert toggled.json()["coupon"]["is_active"] is False

        all_coupons = client.get(f"/affiliates/{affiliate.id}/coupons", headers=admin_headers).json()["coupons"]
        active = client.get(f"/affiliates/{affiliate.id}/coupons/active", headers=admin_headers).json()["coupons"]
        assert [c["display_value"] for c in all_coupons] == ["R$ 25,00 OFF"]
        assert active == []


class TestAffiliateRedirectAndCheckout:
    def test_redirect_sets_attribution_cookie(self, client):
        response = client.get("/r/ANA10", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "https://app.example.com/affiliate/ANA10"
        cookie = response.headers["set-cookie"]
        assert "aff_code=ANA10" in cookie
        assert "Max-Age=5184000" in cookie
        assert "Path=/" in cookie
        assert "Secure" in cookie
        assert "samesite=lax" in cookie.lower()

    def test_checkout_without_affiliate_uses_fallback_price(self, client):
        session = {"id": "cs_1", "url": "https://checkout.stripe.com/c/cs_1"}
        with patch(f"{GATEWAY}.create_checkout_session", return_value=session) as create:
            response = client.post(
                "/functions/affiliate-checkout",
                json={"planType": "professional", "billing": "monthly"},
            )

        assert response.status_code == 200
        assert response.json() == {"url": "https://checkout.stripe.com/c/cs_1"}
        params = create.call_args.kwargs
        assert params["line_items"] == [{"price": "price_1SAL2dBnxFLGYBYfkowqS28X", "quantity": 1}]
        assert params["metadata"]["is_affiliate_sale"] == "false"
        assert params["cancel_url"] == "https://app.example.com/planos"
        assert "discounts" not in params

    def test_cookie_attribution_uses_affiliate_price_and_coupon(self, client, db, affiliate):
        db.add(AffiliateStripeProduct(
            affiliate_id=affiliate.id,
            plan_type="enterprise",
            billing="yearly",
            stripe_product_id="prod_ana",
            stripe_price_id="price_ana_enterprise_yearly",
        ))
        db.add(AffiliateCoupon(
            affiliate_id=affiliate.id,
            stripe_coupon_id="ANASOUZA-XYZ789",
            name="Promo",
            discount_type="percentage",
            discount_value=Decimal("10"),
        ))
        db.commit()

        client.cookies.set("aff_code", "ANA10")
        with patch(f"{GATEWAY}.retrieve_coupon", return_value={"id": "ANASOUZA-XYZ789", "valid": True}), \
                patch(f"{GATEWAY}.create_checkout_session", return_value={"id": "cs_2", "url": "u"}) as create:
            response = client.post(
                "/functions/affiliate-checkout",
                headers={"Origin": "https://calculaaibr.com"},
                json={"planType": "enterprise", "billing": "yearly"},
            )

        assert response.status_code == 200
        params = create.call_args.kwargs
        assert params["line_items"][0]["price"] == "price_ana_enterprise_yearly"
        assert params["metadata"]["affiliate_code"] == "ANA10"
        assert params["metadata"]["affiliate_id"] == affiliate.id
        assert params["discounts"] == [{"coupon": "ANASOUZA-XYZ789"}]
        assert params["success_url"].startswith("https://calculaaibr.com/auth/success")

        db.expire_all()
        assert db.query(AffiliateLink).one().clicks_count == 1

    def test_explicit_code_wins_over_cookie(self, client, affiliate):
        client.cookies.set("aff_code", "ANA10")
        with patch(f"{GATEWAY}.create_checkout_session", return_value={"id": "cs_3", "url": "u"}) as create:
            client.post(
                "/functions/affiliate-checkout",
                json={"planType": "professional", "billing": "monthly", "affiliateCode": "OTHER"},
            )
        metadata = create.call_args.kwargs["metadata"]
        assert metadata["affiliate_code"] == "OTHER"
        assert metadata["affiliate_id"] == ""

    def test_invalid_plan(self, client):
        response = client.post("/functions/affiliate-checkout", json={"planType": "gold", "billing": "monthly"})
        assert response.status_code == 400

    def test_stripe_outage_is_500_with_generic_message(self, client):
        with patch(f"{GATEWAY}.create_checkout_session", side_effect=stripe.APIConnectionError("down")):
            response = client.post(
                "/functions/affiliate-checkout", json={"planType": "professional", "billing": "monthly"}
            )
        assert response.status_code == 500
        assert response.json() == {"error": "Serviço temporariamente indisponível. Tente novamente em instantes."}


class TestStripeWebhook:
    HEADERS = {"Stripe-Signature": "t=1,v1=abc"}

    def test_missing_signature(self, client):
        assert client.post("/functions/stripe-webhook", content=b"{}").status_code == 400

    def test_invalid_signature(self, client):
        error = stripe.SignatureVerificationError("bad signature", "t=1,v1=abc")
        with patch(f"{GATEWAY}.construct_webhook_event", side_effect=error):
            response = client.post("/functions/stripe-webhook", content=b"{}", headers=self.HEADERS)
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid signature"}

    def test_checkout_completed_upgrades_profile(self, client, db):
        db.add(Profile(user_id="buyer-1", email="buyer@example.com", plan="free"))
        db.commit()
        event = {
            "type": "checkout.session.completed",
            "data": {"object": {
                "id": "cs_1",
                "subscription": "sub_1",
                "customer": "cus_1",
                "customer_details": {"email": "buyer@example.com"},
                "metadata": {"plan_type": "enterprise", "billing": "yearly"},
            }},
        }
        remote = {"id": "sub_1", "status": "active", "current_period_end": 1790000000}

        with patch(f"{GATEWAY}.construct_webhook_event", return_value=event), \
                patch(f"{GATEWAY}.retrieve_subscription", return_value=remote):
            response = client.post("/functions/stripe-webhook", content=b"{}", headers=self.HEADERS)

        assert response.status_code == 200
        assert response.json() == {"received": True}
        db.expire_all()
        profile = db.query(Profile).filter(Profile.user_id == "buyer-1").one()
        assert profile.plan == "enterprise"
        assert profile.billing == "yearly"
        subscription = db.query(Subscription).one()
        assert subscription.user_id == "buyer-1"
        assert subscription.status == "active"

    def test_redelivered_checkout_event_counts_coupon_once(self, client, db, affiliate):
        db.add(AffiliateCoupon(
            affiliate_id=affiliate.id,
            stripe_coupon_id="ANASOUZA-XYZ789",
            name="Promo",
            discount_type="percentage",
            discount_value=Decimal("10"),
            max_redemptions=2,
        ))
        db.commit()
        event = {
            "type": "checkout.session.completed",
            "data": {"object": {
                "id": "cs_1",
                "subscription": "sub_1",
                "customer_details": {"email": "buyer.com"},
                "metadata": {"plan_type": "professional", "billing": "monthly"},
                "discounts": [{"coupon": "ANASOUZA-XYZ789"}],
            }},
        }
        remote = {"id": "sub_1", "status": "active", "current_period_end": 1790000000}

        with patch(f"{GATEWAY}.construct_webhook_event", return_value=event), \
                patch(f"{GATEWAY}.retrieve_subscription", return_value=remote):
            first = client.post("/functions/stripe-webhook", content=b"{}", headers=self.HEADERS)
            retry = client.post("/functions/stripe-webhook", content=b"{}", headers=self.HEADERS)

        assert first.status_code == 200
        assert retry.status_code == 200
        db.expire_all()
        assert db.query(AffiliateCoupon).one().times_redeemed == 1

    def test_subscription_deleted_downgrades(self, client, db):
        db.add(Profile(user_id="buyer-1", email="buyer@example.com", plan="professional"))
        db.add(Subscription(user_id="buyer-1", stripe_subscription_id="sub_1", status="active"))
        db.commit()
        event = {"type": "customer.subscription.deleted", "data": {"object": {"id": "sub_1"}}}

        with patch(f"{GATEWAY}.construct_webhook_event", return_value=event):
            response = client.post("/functions/stripe-webhook", content=b"{}", headers=self.HEADERS)

        assert response.status_code == 200
        db.expire_all()
        assert db.query(Profile).one().plan == "free"
        assert db.query(Subscription).one().status == "canceled"

    def test_handler_failure_is_500(self, client):
        event = {"type": "checkout.session.completed", "data": {"object": {"id": "cs_1", "subscription": "sub_1"}}}
        with patch(f"{GATEWAY}.construct_webhook_event", return_value=event), \
                patch(f"{GATEWAY}.retrieve_subscription", side_effect=stripe.APIConnectionError("down")):
            response = client.post("/functions/stripe-webhook", content=b"{}", headers=self.HEADERS)
        assert response.status_code == 500
        assert response.json() == {"error": "Handler failure"}


class TestAdminFunctions:
    def test_admin_update_user_plan(self, client, db, admin_headers, user_headers):
        response = client.post(
            "/functions/admin-update-user-plan",
            headers=admin_headers,
            json={"userId": USER_ID, "newPlan": "professional", "reason": "Cortesia"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["oldPlan"] == "free"
        assert body["newPlan"] == "professional"
        assert body["stripeWarning"] is None
        db.expire_all()
        assert db.query(Profile).filter(Profile.user_id == USER_ID).one().plan == "professional"
        assert db.query(ActivityLog).filter(ActivityLog.action == "update_user_plan").count() == 1

    def test_admin_update_warns_about_active_subscription(self, client, db, admin_headers, user_headers):
        db.add(Subscription(user_id=USER_ID, stripe_subscription_id="sub_live", status="active"))
        db.commit()

        body = client.post(
            "/functions/admin-update-user-plan",
            headers=admin_headers,
            json={"userId": USER_ID, "newPlan": "free"},
        ).json()

        assert body["stripeWarning"]["subscriptionId"] == "sub_live"

    def test_migrate_existing_affiliates(self, client, db, admin_headers, affiliate):
        counter = iter(range(100))

        def product(**params):
            return {"id": f"prod_{next(counter)}"}

        def price(**params):
            return {"id": f"price_for_{params['product']}"}

        with patch(f"{GATEWAY}.create_product", side_effect=product), \
                patch(f"{GATEWAY}.create_price", side_effect=price):
            response = client.post("/functions/migrate-existing-affiliates", headers=admin_headers)
            again = client.post("/functions/migrate-existing-affiliates", headers=admin_headers)

        body = response.json()
        assert body["migratedCount"] == 1
        assert body["errorCount"] == 0
        assert body["message"] == "Migração concluída: 1 sucessos, 0 erros"
        assert again.json()["migratedCount"] == 0
        assert db.query(AffiliateStripeProduct).count() == 4

    def test_sync_affiliate_sales(self, client, admin_headers, affiliate):
        session = {
            "id": "cs_9",
            "created": 1790000000,
            "amount_total": 4990,
            "customer_details": {"email": "b@example.com", "name": "B"},
            "metadata": {"affiliate_code": "ANA10"},
        }
        with patch(f"{GATEWAY}.list_completed_sessions", return_value=[session]), \
                patch(f"{GATEWAY}.list_line_items", return_value=[{"price": {"product": "prod_T6TXCmpEQTIaRT"}}]):
            response = client.post("/functions/sync-affiliate-sales", headers=admin_headers)

        assert response.json() == {"success": True, "syncedSales": 1, "errors": 0, "totalSessions": 1}


class TestConfigurationsAndActivity:
    def test_save_load_and_activity(self, client, user_headers):
        saved = client.put("/configurations/markup", headers=user_headers, json={"configuration": {"margem": 30}})
        assert saved.status_code == 200
        assert saved.json()["configuration"]["configuration"] == {"margem": 30}

        loaded = client.get("/configurations/markup", headers=user_headers)
        assert loaded.json() == {"type": "markup", "configuration": {"margem": 30}}

        activities = client.get("/activity", headers=user_headers).json()["activities"]
        assert activities[0]["action"] == "update_configuration"
        assert activities[0]["description"] == "Configuração salva"
        assert activities[0]["time"] == "Agora"

    def test_delete(self, client, user_headers):
        client.put("/configurations/receitas", headers=user_headers, json={"configuration": [1, 2]})
        assert client.delete("/configurations/receitas", headers=user_headers).json() == {"success": True}
        assert client.get("/configurations/receitas", headers=user_headers).json()["configuration"] is None


class TestPricingRoutes:
    def test_markup(self, client, user_headers):
        response = client.post(
            "/pricing/markup",
            headers=user_headers,
            json={"percent_fees": 10, "percent_taxes": 10, "desired_profit": 30, "unit_cost": 10},
        )
        body = response.json()
        assert body["multiplier"] == 2.0
        assert body["suggested_price"] == 20.0
        assert body["suggested_price_formatted"] == "R$ 20,00"

    def test_markup_over_100_percent(self, client, user_headers):
        response = client.post("/pricing/markup", headers=user_headers, json={"percent_taxes": 60, "desired_profit": 40})
        assert response.status_code == 400

    def test_movement_total(self, client, user_headers):
        response = client.post(
            "/pricing/movement-total",
            headers=user_headers,
            json={"items": [
                {"origem": "estoque", "quantidade": 2, "custo_unitario": 10, "preco_venda": 99},
                {"origem": "vitrine", "quantidade": 1, "custo_unitario": 5, "preco_venda": 25},
            ]},
        )
        assert response.json() == {"lines": [20.0, 25.0], "total": 45.0, "total_formatted": "R$ 45,00"}
