from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from datetime import date
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from . import schemas
from .cart import Cart, CartError, CartLockedError
from .checkout import (
    CheckoutBusyError,
    CheckoutSaga,
    CheckoutStepError,
    CheckoutValidationError,
)
from .editing import OrderDesk, OrderDraft, OrderEditError
from .filters import OrderQuery, listing_stats
from .order_client import (
    HTTPOrderServiceClient,
    MockOrderServiceClient,
    OrderNotFoundError,
    OrderServiceClient,
    OrderServiceError,
)
from .pricing import money
from .print_client import HTTPPrintClient, MockPrintClient, PrintClient, PrintServiceError
from .reports import build_weekly, dashboard_stats, payment_breakdown, week_start
from .report_client import HTTPReportClient, MockReportClient, ReportClient, ReportServiceError
from .sessions import SessionRegistry, TerminalSession
from .status import InvalidStatusTransition

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _service_mode() -> str:
    return os.environ.get("SERVICE_MODE", "mock").lower()


def _timeout() -> float | None:
    raw = os.environ.get("SERVICE_TIMEOUT")
    return float(raw) if raw else None


def _required_url(name: str) -> str:
    url = os.environ.get(name)
    if not url:
        raise RuntimeError(f"{name} must be set when SERVICE_MODE=http")
    return url


def build_order_client() -> OrderServiceClient:
    if _service_mode() == "http":
        return HTTPOrderServiceClient(_required_url("ORDER_SERVICE_URL"), timeout=_timeout())
    return MockOrderServiceClient()


def build_print_client() -> PrintClient:
    if _service_mode() == "http":
        return HTTPPrintClient(_required_url("PRINT_SERVICE_URL"), timeout=_timeout())
    return MockPrintClient()


def build_report_client(orders: OrderServiceClient) -> ReportClient:
    if _service_mode() == "http":
        return HTTPReportClient(_required_url("REPORT_SERVICE_URL"), timeout=_timeout())
    if not isinstance(orders, MockOrderServiceClient):
        raise RuntimeError("Mock reports need the mock order service")
    return MockReportClient(orders)


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_desk(request: Request) -> OrderDesk:
    return request.app.state.desk


def get_reports(request: Request) -> ReportClient:
    return request.app.state.reports


def get_session(
    session_id: str,
    x_operator_id: Optional[int] = Header(default=None),
    registry: SessionRegistry = Depends(get_registry),
) -> TerminalSession:
    return registry.get(session_id, user_id=x_operator_id)


def find_session(
    session_id: str, registry: SessionRegistry = Depends(get_registry)
) -> TerminalSession:
    return registry.lookup(session_id)


def cart_view(cart: Cart) -> schemas.CartView:
    state = cart.state
    totals = cart.totals().rounded()
    return schemas.CartView(
        items=[
            schemas.CartLineView(
                item_id=line.item_id,
                name=line.name,
                unit_price=line.unit_price,
                quantity=line.quantity,
                tax_rate=line.tax_rate,
                line_total=money(line.line_total),
            )
            for line in state.lines
        ],
        order_type=state.order_type,
        table_number=state.table_number,
        customer_name=state.customer_name,
        customer_phone=state.customer_phone,
        discount_amount=totals.discount_amount,
        subtotal=totals.subtotal,
        tax_amount=totals.tax_amount,
        total_amount=totals.total,
        item_count=cart.item_count(),
    )


def checkout_view(saga: CheckoutSaga) -> schemas.CheckoutView:
    failure = None
    if saga.failure is not None:
        failure = schemas.StepFailureView(step=saga.failure.step.value, message=saga.failure.message)
    return schemas.CheckoutView(
        state=saga.state.value,
        step_index=saga.step_index,
        current_step=saga.current_step.value if saga.current_step else None,
        order_id=saga.order_id,
        order_number=saga.order_number,
        payment_method=saga.payment_method,
        failure=failure,
    )


def apply_edit(draft: OrderDraft, payload: schemas.OrderEditRequest) -> None:
    if payload.items is not None:
        if len(payload.items) != len(draft.items):
            raise OrderEditError("Edited items do not line up with the order's items.")
        # Walk backwards so removals keep earlier positions stable.
        for index in reversed(range(len(payload.items))):
            edit = payload.items[index]
            if edit.quantity <= 0:
                draft.remove_item(index)
                continue
            draft.set_unit_price(index, edit.unit_price)
            draft.set_quantity(index, edit.quantity)
    if payload.discount_amount is not None:
        draft.set_discount(payload.discount_amount)
    if payload.status is not None:
        draft.set_status(payload.status)
    draft.update_details(
        order_type=payload.order_type,
        customer_name=payload.customer_name,
        customer_phone=payload.customer_phone,
        table_number=payload.table_number,
        notes=payload.notes,
    )


def _error(status_code: int, detail, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, **extra})


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(CartError)
    @app.exception_handler(CheckoutValidationError)
    @app.exception_handler(OrderEditError)
    async def validation_failed(request: Request, exc: Exception) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(CartLockedError)
    @app.exception_handler(CheckoutBusyError)
    @app.exception_handler(InvalidStatusTransition)
    async def conflict(request: Request, exc: Exception) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, str(exc))

    @app.exception_handler(OrderNotFoundError)
    async def not_found(request: Request, exc: OrderNotFoundError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, str(exc))

    @app.exception_handler(CheckoutStepError)
    async def checkout_step_failed(request: Request, exc: CheckoutStepError) -> JSONResponse:
        return _error(
            status.HTTP_502_BAD_GATEWAY,
            exc.message,
            step=exc.step.value,
            order_id=exc.order_id,
        )

    @app.exception_handler(OrderServiceError)
    @app.exception_handler(PrintServiceError)
    @app.exception_handler(ReportServiceError)
    async def downstream_failed(request: Request, exc: Exception) -> JSONResponse:
        logger.warning("Downstream call failed on %s: %s", request.url.path, exc)
        return _error(status.HTTP_502_BAD_GATEWAY, str(exc))


def create_app(
    order_client: OrderServiceClient | None = None,
    print_client: PrintClient | None = None,
    report_client: ReportClient | None = None,
) -> FastAPI:
    configure_logging()
    orders = order_client or build_order_client()
    printer = print_client or build_print_client()
    reports = report_client or build_report_client(orders)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        for client in (orders, printer, reports):
            close = getattr(client, "aclose", None)
            if close is not None:
                await close()

    app = FastAPI(
        title="POS Service",
        version="0.1.0",
        description="Cart, checkout and order desk for the point-of-sale terminals.",
        lifespan=lifespan,
    )
    allowed_origins = [
        origin.strip() for origin in os.environ.get("ALLOWED_ORIGINS", "*").split(",")
    ]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.sessions = SessionRegistry(orders, printer)
    app.state.desk = OrderDesk(orders, printer)
    app.state.reports = reports
    app.state.orders = orders
    register_error_handlers(app)

    @app.get("/healthz", response_model=schemas.HealthResponse, tags=["system"])
    async def healthz() -> schemas.HealthResponse:
        return schemas.HealthResponse()

    # Cart

    @app.get("/sessions/{session_id}/cart", response_model=schemas.CartView, tags=["cart"])
    async def get_cart(session: TerminalSession = Depends(find_session)) -> schemas.CartView:
        return cart_view(session.cart)

    @app.post("/sessions/{session_id}/cart/items", response_model=schemas.CartView, tags=["cart"])
    async def add_cart_item(
        item: schemas.MenuItem, session: TerminalSession = Depends(get_session)
    ) -> schemas.CartView:
        session.cart.add_item(item)
        return cart_view(session.cart)

    @app.put("/sessions/{session_id}/cart/items/{item_id}", response_model=schemas.CartView, tags=["cart"])
    async def update_cart_item(
        item_id: str,
        payload: schemas.QuantityUpdate,
        session: TerminalSession = Depends(find_session),
    ) -> schemas.CartView:
        session.cart.update_quantity(item_id, payload.quantity)
        return cart_view(session.cart)

    @app.delete("/sessions/{session_id}/cart/items/{item_id}", response_model=schemas.CartView, tags=["cart"])
    async def remove_cart_item(
        item_id: str, session: TerminalSession = Depends(find_session)
    ) -> schemas.CartView:
        session.cart.remove_item(item_id)
        return cart_view(session.cart)

    @app.patch("/sessions/{session_id}/cart", response_model=schemas.CartView, tags=["cart"])
    async def update_cart(
        payload: schemas.CartFieldsUpdate, session: TerminalSession = Depends(get_session)
    ) -> schemas.CartView:
        cart = session.cart
        if payload.order_type is not None:
            cart.set_order_type(payload.order_type)
        if payload.table_number is not None:
            cart.set_table_number(payload.table_number)
        if payload.customer_name is not None:
            cart.set_customer_name(payload.customer_name)
        if payload.customer_phone is not None:
            cart.set_customer_phone(payload.customer_phone)
        if payload.discount_amount is not None:
            cart.set_discount(payload.discount_amount)
        return cart_view(cart)

    @app.delete("/sessions/{session_id}/cart", response_model=schemas.CartView, tags=["cart"])
    async def clear_cart(session: TerminalSession = Depends(find_session)) -> schemas.CartView:
        session.cart.clear()
        return cart_view(session.cart)

    @app.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["cart"])
    async def close_session(
        session_id: str, registry: SessionRegistry = Depends(get_registry)
    ) -> Response:
        registry.close(session_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    # Checkout

    @app.post("/sessions/{session_id}/checkout", response_model=schemas.CheckoutView, tags=["checkout"])
    async def start_checkout(
        payload: schemas.CustomerInfo,
        session: TerminalSession = Depends(get_session),
        registry: SessionRegistry = Depends(get_registry),
    ) -> schemas.CheckoutView:
        saga = registry.start_checkout(session)
        saga.confirm_customer(payload.customer_name, payload.customer_phone)
        return checkout_view(saga)

    @app.get("/sessions/{session_id}/checkout", response_model=schemas.CheckoutView, tags=["checkout"])
    async def get_checkout(
        session: TerminalSession = Depends(find_session),
        registry: SessionRegistry = Depends(get_registry),
    ) -> schemas.CheckoutView:
        return checkout_view(registry.require_checkout(session))

    @app.post("/sessions/{session_id}/checkout/payment", response_model=schemas.Order, tags=["checkout"])
    async def pay(
        payload: schemas.PaymentRequest,
        session: TerminalSession = Depends(find_session),
        registry: SessionRegistry = Depends(get_registry),
    ) -> schemas.Order:
        saga = registry.require_checkout(session)
        return await saga.pay(payload.payment_method)

    @app.post("/sessions/{session_id}/checkout/abandon", response_model=schemas.CheckoutView, tags=["checkout"])
    async def abandon_checkout(
        session: TerminalSession = Depends(find_session),
        registry: SessionRegistry = Depends(get_registry),
    ) -> schemas.CheckoutView:
        saga = registry.require_checkout(session)
        saga.abandon()
        return checkout_view(saga)

    @app.get("/sessions/{session_id}/checkout/bill", response_model=schemas.Order, tags=["checkout"])
    async def view_bill(
        session: TerminalSession = Depends(find_session),
        registry: SessionRegistry = Depends(get_registry),
    ) -> schemas.Order:
        return await registry.require_checkout(session).view_bill()

    @app.post("/sessions/{session_id}/checkout/reprint", response_model=schemas.Order, tags=["checkout"])
    async def reprint_receipt(
        session: TerminalSession = Depends(find_session),
        registry: SessionRegistry = Depends(get_registry),
    ) -> schemas.Order:
        return await registry.require_checkout(session).reprint_receipt()

    @app.post("/sessions/{session_id}/checkout/reprint-kot", response_model=schemas.Order, tags=["checkout"])
    async def reprint_kitchen_ticket(
        session: TerminalSession = Depends(find_session),
        registry: SessionRegistry = Depends(get_registry),
    ) -> schemas.Order:
        return await registry.require_checkout(session).reprint_kitchen_ticket()

    # Orders

    @app.get("/orders", response_model=schemas.OrderListing, tags=["orders"])
    async def list_orders(
        search: str = "",
        order_status: str = Query(default="all", alias="status"),
        date_range: str = "today",
        desk: OrderDesk = Depends(get_desk),
    ) -> schemas.OrderListing:
        try:
            query = OrderQuery.parse(search, order_status, date_range)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
        orders = await desk.list(query)
        return schemas.OrderListing(orders=orders, stats=listing_stats(orders))

    @app.get("/orders/{order_id}", response_model=schemas.Order, tags=["orders"])
    async def get_order(order_id: int, desk: OrderDesk = Depends(get_desk)) -> schemas.Order:
        return await desk.get(order_id)

    @app.patch("/orders/{order_id}", response_model=schemas.Order, tags=["orders"])
    async def edit_order(
        order_id: int,
        payload: schemas.OrderEditRequest,
        desk: OrderDesk = Depends(get_desk),
    ) -> schemas.Order:
        draft = await desk.open_draft(order_id)
        apply_edit(draft, payload)
        return await desk.save(draft)

    @app.post("/orders/{order_id}/status", response_model=schemas.Order, tags=["orders"])
    async def change_status(
        order_id: int,
        payload: schemas.StatusChangeRequest,
        desk: OrderDesk = Depends(get_desk),
    ) -> schemas.Order:
        return await desk.change_status(order_id, payload.status)

    @app.post("/orders/{order_id}/complete", response_model=schemas.Order, tags=["orders"])
    async def complete_order(
        order_id: int,
        payload: schemas.CompleteOrderRequest,
        desk: OrderDesk = Depends(get_desk),
    ) -> schemas.Order:
        return await desk.complete(order_id, payload.payment_method)

    @app.delete("/orders/{order_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["orders"])
    async def delete_order(order_id: int, desk: OrderDesk = Depends(get_desk)) -> Response:
        await desk.delete(order_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post("/orders/{order_id}/print/receipt", response_model=schemas.Order, tags=["orders"])
    async def print_receipt(order_id: int, desk: OrderDesk = Depends(get_desk)) -> schemas.Order:
        return await desk.print_receipt(order_id)

    @app.post("/orders/{order_id}/print/kot", response_model=schemas.Order, tags=["orders"])
    async def print_kitchen_ticket(order_id: int, desk: OrderDesk = Depends(get_desk)) -> schemas.Order:
        return await desk.print_kitchen_ticket(order_id)

    # Reports

    @app.get("/reports/daily", response_model=schemas.DailyReport, tags=["reports"])
    async def daily_report(
        day: Optional[date] = None, reports: ReportClient = Depends(get_reports)
    ) -> schemas.DailyReport:
        return await reports.daily_report(day or date.today())

    @app.get("/reports/weekly", response_model=schemas.WeeklyReport, tags=["reports"])
    async def weekly_report(
        day: Optional[date] = None, reports: ReportClient = Depends(get_reports)
    ) -> schemas.WeeklyReport:
        day = day or date.today()
        days = await reports.weekly_report(week_start(day))
        return build_weekly(days, day)

    @app.get("/reports/payments", response_model=List[schemas.PaymentShare], tags=["reports"])
    async def payment_report(
        day: Optional[date] = None, reports: ReportClient = Depends(get_reports)
    ) -> List[schemas.PaymentShare]:
        report = await reports.daily_report(day or date.today())
        return payment_breakdown(report.sales)

    @app.get("/reports/biller-daily", response_model=schemas.DailyReport, tags=["reports"])
    async def biller_daily(
        user_id: int,
        day: Optional[date] = None,
        reports: ReportClient = Depends(get_reports),
    ) -> schemas.DailyReport:
        return await reports.biller_daily(user_id, day or date.today())

    @app.get("/dashboard", response_model=schemas.Dashboard, tags=["reports"])
    async def dashboard(
        request: Request,
        limit: int = 8,
        reports: ReportClient = Depends(get_reports),
    ) -> schemas.Dashboard:
        report = await reports.daily_report(date.today())
        recent = await request.app.state.orders.get_recent(limit)
        return schemas.Dashboard(stats=dashboard_stats(report, recent), recent_orders=recent)

    return app
