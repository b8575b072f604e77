import pytest

from domain.common.exceptions import DomainValidationException, InvalidStateException
from domain.common.money import Amount
from domain.order import Order, OrderStatus


def make_order(status: OrderStatus = OrderStatus.OPEN, remaining: int = 1000) -> Order:
    return Order(
        id="o-1",
        gateway_order_reference="ORDERPSP1",
        merchant_reference="ORDER-o-1",
        status=status,
        total_amount=Amount(1000, "USD"),
        remaining_amount=Amount(remaining, "USD"),
        order_data_history=["data-0"],
    )


def test_accepts_payment_within_balance():
    make_order().ensure_accepts_payment(Amount(1000, "USD"))


def test_rejects_payment_over_remaining():
    order = make_order(remaining=400)
    with pytest.raises(DomainValidationException) as exc_info:
        order.ensure_accepts_payment(Amount(401, "USD"))
    assert exc_info.value.field == "amount.value"
    assert order.remaining_amount.value == 400


def test_rejects_currency_mismatch():
    with pytest.raises(DomainValidationException) as exc_info:
        make_order().ensure_accepts_payment(Amount(100, "EUR"))
    assert exc_info.value.field == "amount.currency"


@pytest.mark.parametrize("status", [OrderStatus.CANCELLING, OrderStatus.CANCELLED, OrderStatus.PAID])
def test_rejects_payment_when_not_payable(status):
    with pytest.raises(InvalidStateException):
        make_order(status=status).ensure_accepts_payment(Amount(1, "USD"))


@pytest.mark.parametrize("status", [OrderStatus.PAID, OrderStatus.CANCELLED])
def test_terminal_orders_cannot_be_cancelled(status):
    with pytest.raises(InvalidStateException):
        make_order(status=status).mark_cancelling()


def test_gateway_update_appends_history_and_never_increases_remaining():
    order = make_order(remaining=600)
    order.apply_gateway_update("data-1", Amount(300, "USD"))
    order.apply_gateway_update("data-2", Amount(500, "USD"))
    assert order.order_data_history == ["data-0", "data-1", "data-2"]
    assert order.current_order_data == "data-2"
    assert order.remaining_amount.value == 300


def test_gateway_update_ignored_on_terminal_order():
    order = make_order(status=OrderStatus.PAID, remaining=0)
    assert order.apply_gateway_update("data-1", Amount(0, "USD")) is False
    assert order.order_data_history == ["data-0"]


def test_close_success_zeroes_remaining_and_is_terminal():
    order = make_order(status=OrderStatus.PROCESSING, remaining=250)
    assert order.close(True) is True
    assert order.status == OrderStatus.PAID
    assert order.remaining_amount == Amount(0, "USD")
    # conflicting close after terminal is ignored
    assert order.close(False) is False
    assert order.status == OrderStatus.PAID


def test_record_authorised_payment_is_idempotent():
    order = make_order()
    assert order.record_authorised_payment("PSP1") is True
    assert order.record_authorised_payment("PSP1") is False
    assert order.partial_payment_psp_references == ["PSP1"]
    assert order.status == OrderStatus.PROCESSING


def test_authorisation_does_not_move_cancelling_order():
    order = make_order(status=OrderStatus.CANCELLING)
    order.record_authorised_payment("PSP1")
    assert order.status == OrderStatus.CANCELLING


def test_confirm_open_never_regresses():
    order = make_order(status=OrderStatus.PROCESSING)
    assert order.confirm_open() is False
    assert order.status == OrderStatus.PROCESSING
