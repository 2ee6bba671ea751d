"""
Payment settlement tests.

Verifies:
- Full and partial single-tender payments; paid once remaining <= 1 cent
- Stock is never depleted twice for the same sale
- Credit gate (balance + total > limit) before anything is written
- Voucher, mixed-with-credit and mixed-without-credit branches
- Register totals follow the payments taken while it is open
"""

from dataclasses import replace

import pytest

from pos_erp.errors import CreditLimitExceeded, OrderNotFound, PaymentError
from pos_erp.models import CashRegister, Client, InventoryMovement, Payment, Product, ReturnVoucher, Sale
from pos_erp.services import order_builder, order_service, payment_service, register_service
from pos_erp.services.authorization_service import AuthorizationGrant
from pos_erp.services.payment_service import SettlementRequest
from pos_erp.services.pricing_service import ProductSnapshot

GRANT = AuthorizationGrant(user_id=1, name="Gerente", role="manager", reason="credit_limit")


def _saved_order(cashier, product, qty=3, discount=500, client=None, **flags):
    """Persist an order: qty x price1 minus discount (defaults to 3 x 10.00 - 5.00 = 25.00)."""
    order = order_builder.initialize_order(
        client_name=client.name if client else None,
        client_id=client.id if client else None,
    )
    order = order_builder.add_item(order, ProductSnapshot.from_model(product), qty, 1)
    order = order_builder.apply_discount(order, discount)
    if flags:
        order = replace(order, **flags)
    return order_service.save_order(order, cashier)


def _pay(sale, cashier, **data):
    return payment_service.settle_payment(sale.id, SettlementRequest.from_dict(data), cashier)


def _movement_count(db_session, product):
    return db_session.query(InventoryMovement).filter_by(product_id=product.id).count()


# =============================================================================
# SINGLE TENDER
# =============================================================================


class TestSingleTender:

    def test_full_cash_payment(self, db_session, cashier, product):
        sale = _saved_order(cashier, product)
        assert sale.total_cents == 2500

        sale = _pay(sale, cashier, method="cash", amount_cents=2500)

        assert sale.status == "paid"
        assert sale.amount_paid_cents == 2500
        assert sale.remaining_balance_cents == 0
        assert sale.payment_method == "cash"
        assert db_session.get(Product, product.id).stock == 7
        assert _movement_count(db_session, product) == 1

    def test_partial_then_full(self, db_session, cashier, product):
        sale = _saved_order(cashier, product)

        sale = _pay(sale, cashier, method="card", amount_cents=1000, reference="AUTH-1")
        assert sale.status == "pending"
        assert sale.amount_paid_cents == 1000
        assert sale.remaining_balance_cents == 1500

        sale = _pay(sale, cashier, method="transfer", amount_cents=1500)
        assert sale.status == "paid"
        assert sale.remaining_balance_cents == 0
        assert len(payment_service.get_sale_payments(sale.id)) == 2
        assert db_session.get(Product, product.id).stock == 7

    def test_one_cent_short_counts_as_paid(self, db_session, cashier, product):
        sale = _saved_order(cashier, product)
        sale = _pay(sale, cashier, method="card", amount_cents=2499)
        assert sale.status == "paid"
        assert sale.remaining_balance_cents == 1

    def test_cash_over_tender_gives_change(self, db_session, cashier, product):
        sale = _saved_order(cashier, product)
        sale = _pay(sale, cashier, method="cash", amount_cents=3000)

        payment = payment_service.get_sale_payments(sale.id)[0]
        assert payment.amount_cents == 3000
        assert payment.change_cents == 500
        assert sale.amount_paid_cents == 2500

    def test_card_over_remaining_rejected(self, db_session, cashier, product):
        sale = _saved_order(cashier, product)
        with pytest.raises(PaymentError):
            _pay(sale, cashier, method="card", amount_cents=3000)
        assert db_session.query(Payment).count() == 0

    def test_second_settlement_rejected_without_depleting(self, db_session, cashier, product):
        sale = _saved_order(cashier, product)
        _pay(sale, cashier, method="cash", amount_cents=2500)

        with pytest.raises(PaymentError):
            _pay(sale, cashier, method="cash", amount_cents=2500)

        assert db_session.get(Product, product.id).stock == 7
        assert _movement_count(db_session, product) == 1

    def test_quote_depleted_when_paid(self, db_session, cashier, product):
        sale = _saved_order(cashier, product, is_quote=True)
        assert db_session.get(Product, product.id).stock == 10

        sale = _pay(sale, cashier, method="cash", amount_cents=2500)

        assert sale.stock_committed is True
        assert db_session.get(Product, product.id).stock == 7
        assert _movement_count(db_session, product) == 1

    def test_cancelled_order_cannot_be_paid(self, db_session, cashier, product):
        sale = _saved_order(cashier, product)
        order_service.cancel_order(sale.id, cashier)
        with pytest.raises(PaymentError):
            _pay(sale, cashier, method="cash", amount_cents=2500)

    def test_unknown_order(self, db_session, cashier):
        with pytest.raises(OrderNotFound):
            payment_service.settle_payment(999, SettlementRequest(method="cash", amount_cents=1), cashier)

    def test_invalid_method_rejected(self):
        with pytest.raises(PaymentError):
            SettlementRequest.from_dict({"method": "bitcoin", "amount_cents": 100})


# =============================================================================
# CREDIT
# =============================================================================


class TestCredit:

    def test_over_limit_raises_gate_before_commit(self, db_session, cashier, make_product, make_client):
        client = make_client(credit_limit_cents=1000, balance_cents=800)
        product = make_product(price1_cents=100)
        sale = _saved_order(cashier, product, discount=0, client=client)
        assert sale.total_cents == 300

        with pytest.raises(CreditLimitExceeded) as exc:
            _pay(sale, cashier, method="credit")

        assert exc.value.details["authorization_required"] is True
        assert db_session.get(Client, client.id).balance_cents == 800
        assert db_session.get(Sale, sale.id).is_credit is False

    def test_credit_with_grant(self, db_session, cashier, make_product, make_client):
        client = make_client(credit_limit_cents=1000, balance_cents=800)
        product = make_product(price1_cents=100)
        sale = _saved_order(cashier, product, discount=0, client=client)

        sale = payment_service.settle_payment(
            sale.id, SettlementRequest(method="credit"), cashier, credit_grant=GRANT
        )

        assert sale.status == "pending"
        assert sale.is_credit is True
        assert sale.amount_paid_cents == 0
        assert sale.remaining_balance_cents == 300
        assert db_session.get(Client, client.id).balance_cents == 1100
        assert db_session.query(Payment).count() == 0
        assert db_session.get(Product, product.id).stock == 7

    def test_credit_requires_client(self, db_session, cashier, product):
        sale = _saved_order(cashier, product)
        with pytest.raises(PaymentError):
            _pay(sale, cashier, method="credit")

    def test_paying_credit_sale_pays_down_balance(self, db_session, cashier, product, make_client):
        client = make_client()
        sale = _saved_order(cashier, product, client=client)
        _pay(sale, cashier, method="credit")
        assert db_session.get(Client, client.id).balance_cents == 2500

        sale = _pay(sale, cashier, method="cash", amount_cents=1000)
        assert db_session.get(Client, client.id).balance_cents == 1500
        assert sale.status == "pending"

        sale = _pay(sale, cashier, method="cash", amount_cents=1500)
        assert db_session.get(Client, client.id).balance_cents == 0
        assert sale.status == "paid"
        assert _movement_count(db_session, product) == 1

    def test_voucher_settling_credit_sale_clears_balance(self, db_session, cashier, product, make_client, make_voucher):
        client = make_client()
        voucher = make_voucher(client, 1000)
        sale = _saved_order(cashier, product, client=client)
        _pay(sale, cashier, method="credit")

        sale = _pay(sale, cashier, method="vouchers", voucher_id=voucher.id)

        assert sale.status == "paid"
        assert db_session.get(Client, client.id).balance_cents == 0

    def test_mixed_settling_credit_sale_clears_balance(self, db_session, cashier, product, make_client):
        client = make_client(balance_cents=400)
        sale = _saved_order(cashier, product, client=client)
        _pay(sale, cashier, method="credit")
        assert db_session.get(Client, client.id).balance_cents == 2900

        sale = _pay(sale, cashier, method="mixed", breakdown={"cash": 1000, "card": 1500})

        assert sale.status == "paid"
        assert db_session.get(Client, client.id).balance_cents == 400

    def test_credit_twice_rejected(self, db_session, cashier, product, make_client):
        client = make_client()
        sale = _saved_order(cashier, product, client=client)
        _pay(sale, cashier, method="credit")
        with pytest.raises(PaymentError):
            _pay(sale, cashier, method="credit")
        assert db_session.get(Client, client.id).balance_cents == 2500

    def test_credit_after_partial_payment_rejected(self, db_session, cashier, product, make_client):
        client = make_client()
        sale = _saved_order(cashier, product, client=client)
        _pay(sale, cashier, method="cash", amount_cents=500)
        with pytest.raises(PaymentError):
            _pay(sale, cashier, method="credit")

    def test_cancel_reverses_outstanding_credit(self, db_session, cashier, product, make_client):
        client = make_client()
        sale = _saved_order(cashier, product, client=client)
        _pay(sale, cashier, method="credit")

        order_service.cancel_order(sale.id, cashier)

        assert db_session.get(Client, client.id).balance_cents == 0
        assert db_session.get(Product, product.id).stock == 10


# =============================================================================
# VOUCHERS
# =============================================================================


class TestVouchers:

    def test_voucher_plus_cash(self, db_session, cashier, product, make_client, make_voucher):
        client = make_client()
        voucher = make_voucher(client, 1000)
        sale = _saved_order(cashier, product, client=client)

        sale = _pay(sale, cashier, method="vouchers", voucher_id=voucher.id)

        assert sale.status == "paid"
        assert sale.voucher_amount_cents == 1000
        assert sale.total_cents == 1500
        assert sale.amount_paid_cents == 1500
        assert sale.remaining_balance_cents == 0

        voucher = db_session.get(ReturnVoucher, voucher.id)
        assert voucher.available_cents == 0
        assert voucher.status == "used"

        payments = payment_service.get_sale_payments(sale.id)
        assert [(p.method, p.amount_cents) for p in payments] == [("cash", 1500)]
        assert db_session.get(Product, product.id).stock == 7

    def test_voucher_covers_everything(self, db_session, cashier, product, make_client, make_voucher):
        client = make_client()
        voucher = make_voucher(client, 5000)
        sale = _saved_order(cashier, product, client=client)

        sale = _pay(sale, cashier, method="vouchers", voucher_id=voucher.id)

        assert sale.total_cents == 0
        assert sale.voucher_amount_cents == 2500
        assert payment_service.get_sale_payments(sale.id) == []
        voucher = db_session.get(ReturnVoucher, voucher.id)
        assert voucher.available_cents == 2500
        assert voucher.status == "enabled"

    def test_short_cash_rejected(self, db_session, cashier, product, make_client, make_voucher):
        client = make_client()
        voucher = make_voucher(client, 1000)
        sale = _saved_order(cashier, product, client=client)

        with pytest.raises(PaymentError):
            _pay(sale, cashier, method="vouchers", voucher_id=voucher.id, cash_amount_cents=1000)

        assert db_session.get(ReturnVoucher, voucher.id).available_cents == 1000

    def test_other_clients_voucher_rejected(self, db_session, cashier, product, make_client, make_voucher):
        owner = make_client(name="Otro Cliente")
        voucher = make_voucher(owner, 1000)
        sale = _saved_order(cashier, product, client=make_client())

        with pytest.raises(PaymentError):
            _pay(sale, cashier, method="vouchers", voucher_id=voucher.id)


# =============================================================================
# MIXED
# =============================================================================


class TestMixed:

    def test_mixed_with_credit_stays_pending(self, db_session, cashier, product, make_client):
        client = make_client()
        sale = _saved_order(cashier, product, client=client)

        sale = _pay(sale, cashier, method="mixed", breakdown={"cash": 1000, "credit": 1500})

        assert sale.status == "pending"
        assert sale.is_credit is True
        assert sale.amount_paid_cents == 1000
        assert sale.remaining_balance_cents == 1500
        assert db_session.get(Client, client.id).balance_cents == 1500

        payment = payment_service.get_sale_payments(sale.id)[0]
        assert payment.method == "mixed"
        assert payment.amount_cents == 1000

    def test_mixed_credit_part_checked_against_limit(self, db_session, cashier, product, make_client):
        client = make_client(credit_limit_cents=1000, balance_cents=0)
        sale = _saved_order(cashier, product, client=client)

        with pytest.raises(CreditLimitExceeded):
            _pay(sale, cashier, method="mixed", breakdown={"cash": 1000, "credit": 1500})
        assert db_session.query(Payment).count() == 0

    def test_mixed_without_credit_pays(self, db_session, cashier, product):
        sale = _saved_order(cashier, product)

        sale = _pay(sale, cashier, method="mixed", breakdown={"cash": 1000, "card": 1500})

        assert sale.status == "paid"
        assert sale.amount_paid_cents == 2500
        assert sale.remaining_balance_cents == 0

    def test_mixed_short_rejected(self, db_session, cashier, product):
        sale = _saved_order(cashier, product)
        with pytest.raises(PaymentError):
            _pay(sale, cashier, method="mixed", breakdown={"cash": 1000, "card": 1000})

    def test_mixed_card_over_remaining_rejected(self, db_session, cashier, product):
        sale = _saved_order(cashier, product)
        with pytest.raises(PaymentError):
            _pay(sale, cashier, method="mixed", breakdown={"cash": 0, "card": 3000})


# =============================================================================
# CASH REGISTER
# =============================================================================


class TestRegisterTotals:

    def test_payments_attributed_to_open_register(self, db_session, cashier, product):
        register = register_service.open_register(cashier, 50000)
        sale = _saved_order(cashier, product)

        _pay(sale, cashier, method="mixed", breakdown={"cash": 2000, "card": 1500}, reference="MIX")

        register = db_session.get(CashRegister, register.id)
        assert register.total_cash_cents == 1000
        assert register.total_card_cents == 1500
        assert register.total_sales_cents == 2500
        assert payment_service.get_sale_payments(sale.id)[0].cash_register_id == register.id

    def test_close_register(self, db_session, cashier, product):
        register_service.open_register(cashier, 50000)
        sale = _saved_order(cashier, product)
        _pay(sale, cashier, method="cash", amount_cents=3000)

        register = register_service.close_register(cashier, 52500)

        assert register.status == "closed"
        assert register.total_cash_cents == 2500
        assert register.expected_cash_cents == 52500
        assert register_service.get_open_register(cashier.id) is None

    def test_payment_without_register(self, db_session, cashier, product):
        sale = _saved_order(cashier, product)
        _pay(sale, cashier, method="cash", amount_cents=2500)
        assert payment_service.get_sale_payments(sale.id)[0].cash_register_id is None
