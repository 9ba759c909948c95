from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional

from .cart import Cart
from .checkout import CheckoutBusyError, CheckoutSaga, CheckoutState, CheckoutValidationError
from .order_client import OrderServiceClient
from .print_client import PrintClient


@dataclass
class TerminalSession:
    """One operator at one terminal: a cart and at most one checkout."""

    session_id: str
    user_id: Optional[int] = None
    cart: Cart = field(default_factory=Cart)
    checkout: Optional[CheckoutSaga] = None


class SessionRegistry:
    def __init__(self, orders: OrderServiceClient, printer: PrintClient):
        self._orders = orders
        self._printer = printer
        self._sessions: Dict[str, TerminalSession] = {}

    def get(self, session_id: str, user_id: Optional[int] = None) -> TerminalSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = TerminalSession(session_id=session_id, user_id=user_id)
            self._sessions[session_id] = session
        elif user_id is not None:
            session.user_id = user_id
        return session

    def lookup(self, session_id: str) -> TerminalSession:
        """Existing session, or a detached empty one that is not registered."""
        session = self._sessions.get(session_id)
        if session is None:
            return TerminalSession(session_id=session_id)
        return session

    def __len__(self) -> int:
        return len(self._sessions)

    def close(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def start_checkout(self, session: TerminalSession) -> CheckoutSaga:
        """Open a checkout for the session's cart, replacing a finished or untouched one."""
        current = session.checkout
        if current is not None and current.state == CheckoutState.PROCESSING:
            raise CheckoutBusyError("A payment is already being processed for this cart.")
        session.checkout = CheckoutSaga(session.cart, self._orders, self._printer, session.user_id)
        return session.checkout

    def require_checkout(self, session: TerminalSession) -> CheckoutSaga:
        if session.checkout is None:
            raise CheckoutValidationError("No checkout is open for this session.")
        return session.checkout
