"""Checkout pipeline: turns a session's cart into a paid, printed order.

The pipeline is a small state machine::

    collecting_info -> awaiting_payment -> processing -> completed
                                                      \\-> failed

While processing, the four steps in ``STEPS`` run strictly in order, each
awaiting its external call before the next begins. A failed step stops the
pipeline and is recorded on the saga; nothing that already happened is
undone. Once the order exists, ``view_bill`` and ``reprint_receipt`` work
regardless of how the pipeline ended.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .cart import Cart
from .order_client import OrderServiceClient, OrderServiceError
from .print_client import PrintClient, PrintServiceError
from .schemas import CartSnapshot, Order, PaymentMethod

logger = logging.getLogger(__name__)


class CheckoutState(str, Enum):
    COLLECTING_INFO = "collecting_info"
    AWAITING_PAYMENT = "awaiting_payment"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class CheckoutStep(str, Enum):
    CREATE_ORDER = "create_order"
    KITCHEN_TICKET = "kitchen_ticket"
    COMPLETE_PAYMENT = "complete_payment"
    RECEIPT = "receipt"


STEPS = (
    CheckoutStep.CREATE_ORDER,
    CheckoutStep.KITCHEN_TICKET,
    CheckoutStep.COMPLETE_PAYMENT,
    CheckoutStep.RECEIPT,
)


class CheckoutValidationError(Exception):
    """Raised when checkout input is rejected before any external call."""


class CheckoutBusyError(CheckoutValidationError):
    """Raised when a payment is submitted while another one is processing."""


class CheckoutStepError(Exception):
    """Raised when an external call inside the pipeline fails."""

    def __init__(self, step: CheckoutStep, message: str, order_id: Optional[int] = None):
        super().__init__(f"{step.value} failed: {message}")
        self.step = step
        self.message = message
        self.order_id = order_id


@dataclass(frozen=True)
class StepFailure:
    step: CheckoutStep
    message: str


class CheckoutSaga:
    def __init__(
        self,
        cart: Cart,
        orders: OrderServiceClient,
        printer: PrintClient,
        user_id: Optional[int] = None,
    ):
        self._cart = cart
        self._orders = orders
        self._printer = printer
        self._user_id = user_id

        self.state = CheckoutState.COLLECTING_INFO
        # Number of steps that finished successfully; STEPS[step_index] is next.
        self.step_index = 0
        self.order_id: Optional[int] = None
        self.order_number: Optional[int] = None
        self.payment_method: Optional[PaymentMethod] = None
        self.failure: Optional[StepFailure] = None

    @property
    def current_step(self) -> Optional[CheckoutStep]:
        if self.step_index >= len(STEPS):
            return None
        return STEPS[self.step_index]

    @property
    def started(self) -> bool:
        return self.state == CheckoutState.PROCESSING or self.order_id is not None

    def confirm_customer(self, name: str, phone: str) -> CheckoutState:
        if self.started:
            raise CheckoutValidationError("Checkout already started; customer details are locked.")
        self._validate(name, phone)
        self._cart.set_customer_name(name.strip())
        self._cart.set_customer_phone(phone.strip())
        self.state = CheckoutState.AWAITING_PAYMENT
        return self.state

    def abandon(self) -> CheckoutState:
        if self.started:
            raise CheckoutValidationError("Checkout cannot be abandoned once the order is being created.")
        self.state = CheckoutState.COLLECTING_INFO
        self.failure = None
        return self.state

    async def pay(self, method: PaymentMethod | str) -> Order:
        if self.state == CheckoutState.PROCESSING:
            raise CheckoutBusyError("A payment is already being processed for this cart.")
        retrying_creation = self.state == CheckoutState.FAILED and self.order_id is None
        if self.state != CheckoutState.AWAITING_PAYMENT and not retrying_creation:
            raise CheckoutValidationError(
                f"Payment cannot be taken while checkout is '{self.state.value}'."
            )
        method = PaymentMethod(method)
        cart = self._cart.state
        self._validate(cart.customer_name, cart.customer_phone)
        snapshot = self._cart.snapshot(user_id=self._user_id)

        self.payment_method = method
        self.failure = None
        self.state = CheckoutState.PROCESSING
        logger.info("Checkout started payment=%s items=%d", method.value, self._cart.item_count())

        await self._create_order(snapshot)
        order = await self._send_kitchen_ticket()
        await self._complete_payment(method)
        order = await self._send_receipt()

        self.state = CheckoutState.COMPLETED
        logger.info("Checkout completed order=%s number=%s", self.order_id, self.order_number)
        return order

    async def view_bill(self) -> Order:
        return await self._orders.get_by_id(self._require_order())

    async def reprint_receipt(self) -> Order:
        order = await self._orders.get_by_id(self._require_order())
        await self._printer.print_receipt(order)
        logger.info("Receipt reprinted for order=%s", order.id)
        return order

    async def reprint_kitchen_ticket(self) -> Order:
        order = await self._orders.get_by_id(self._require_order())
        await self._printer.print_kot(order)
        logger.info("Kitchen ticket reprinted for order=%s", order.id)
        return order

    async def _create_order(self, snapshot: CartSnapshot) -> None:
        # The snapshot must stay equal to the cart until the order exists.
        self._cart.lock()
        try:
            created = await self._orders.create_order(snapshot)
        except OrderServiceError as exc:
            # Cart stays untouched so the operator can retry.
            raise self._fail(CheckoutStep.CREATE_ORDER, exc) from exc
        finally:
            self._cart.unlock()
        self.order_id = created.id
        self.order_number = created.order_number
        # The order now owns the items; a retry must not create a second one.
        self._cart.clear()
        self.step_index = 1
        logger.info("Order created id=%s number=%s", created.id, created.order_number)

    async def _send_kitchen_ticket(self) -> Order:
        try:
            order = await self._orders.get_by_id(self.order_id)
            await self._printer.print_kot(order)
        except (OrderServiceError, PrintServiceError) as exc:
            raise self._fail(CheckoutStep.KITCHEN_TICKET, exc) from exc
        self.step_index = 2
        logger.info("Kitchen ticket sent for order=%s", self.order_id)
        return order

    async def _complete_payment(self, method: PaymentMethod) -> None:
        try:
            await self._orders.complete(self.order_id, method)
        except OrderServiceError as exc:
            raise self._fail(CheckoutStep.COMPLETE_PAYMENT, exc) from exc
        self.step_index = 3
        logger.info("Payment recorded for order=%s method=%s", self.order_id, method.value)

    async def _send_receipt(self) -> Order:
        try:
            order = await self._orders.get_by_id(self.order_id)
            await self._printer.print_receipt(order)
        except (OrderServiceError, PrintServiceError) as exc:
            raise self._fail(CheckoutStep.RECEIPT, exc) from exc
        self.step_index = 4
        return order

    def _fail(self, step: CheckoutStep, exc: Exception) -> CheckoutStepError:
        self.state = CheckoutState.FAILED
        self.failure = StepFailure(step=step, message=str(exc))
        logger.warning("Checkout step %s failed for order=%s: %s", step.value, self.order_id, exc)
        return CheckoutStepError(step, str(exc), self.order_id)

    def _validate(self, name: str, phone: str) -> None:
        if self._cart.is_empty:
            raise CheckoutValidationError("Cart is empty.")
        if not name or not name.strip():
            raise CheckoutValidationError("Customer name is required.")
        if not phone or not phone.strip():
            raise CheckoutValidationError("Customer phone is required.")

    def _require_order(self) -> int:
        if self.order_id is None:
            raise CheckoutValidationError("No order has been created yet.")
        return self.order_id
