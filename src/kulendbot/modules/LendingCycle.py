"""
Lending cycle controller.

Drives one USDT lend order at a time through five states:

    CheckBalance -> GetMinRate -> CreateOrder -> WaitFill -> CheckBalance
                                                     \\-> CancelOrder -> CheckBalance

Failures loop back to the same or an earlier state after a backoff. An order
is always filled or cancelled before the next one is created.
"""

import sched
import time
import traceback
from collections.abc import Callable
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, NoReturn

from .ExchangeApi import ApiError, ExchangeApi
from .Logger import Logger
from .Utils import floor_amount, format_amount_currency, format_rate_pct

if TYPE_CHECKING:
    from .Configuration import LendingConfig


CURRENCY = "USDT"
TERM = 7  # days
MIN_ORDER_AMOUNT = Decimal(10)
# a rate below this is treated as a bad market read, not as 0%
RATE_EPSILON = Decimal("1e-9")
ACTIVE_ORDERS_PAGE_SIZE = 50

CANCEL_SUCCESS = "200000"
CANCEL_ALREADY_FILLED = "210010"
CANCEL_ORDER_NOT_FOUND = "210005"
CANCEL_ACCEPTED = frozenset({CANCEL_SUCCESS, CANCEL_ALREADY_FILLED})


class CycleState(Enum):
    CHECK_BALANCE = "CheckBalance"
    GET_MIN_RATE = "GetMinRate"
    CREATE_ORDER = "CreateOrder"
    WAIT_FILL = "WaitFill"
    CANCEL_ORDER = "CancelOrder"


class OrderFillStatus(Enum):
    FILLED = "fully filled"
    NOT_FILLED = "not fully filled"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class CycleContext:
    """Everything one pass through the cycle carries between states."""

    state: CycleState = CycleState.CHECK_BALANCE
    amount: Decimal = Decimal(0)
    rate: Decimal = Decimal(0)
    order_id: str = ""


@dataclass(frozen=True)
class RetryPolicy:
    """Waits in seconds. fill_timeout should be well above poll_interval."""

    poll_interval: float = 10
    fill_timeout: float = 300
    balance_retry_delay: float = 1
    low_balance_delay: float = 300
    rate_retry_delay: float = 1
    cancel_retry_delay: float = 10

    @classmethod
    def from_config(cls, cfg: "LendingConfig") -> "RetryPolicy":
        return cls(
            poll_interval=cfg.poll_interval,
            fill_timeout=cfg.fill_timeout,
            balance_retry_delay=cfg.balance_retry_delay,
            low_balance_delay=cfg.low_balance_delay,
            rate_retry_delay=cfg.rate_retry_delay,
            cancel_retry_delay=cfg.cancel_retry_delay,
        )


class Clock:
    """Wall clock. Tests swap in a fake whose sleep() just advances time()."""

    def time(self) -> float:
        return time.time()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


def lendable_amount(available: Decimal, reserved: Decimal) -> Decimal:
    """max(0, floor(available - reserved)), the exchange only takes whole USDT."""
    return floor_amount(available - reserved)


def offer_rate(market_rate: Decimal, min_daily_rate: Decimal) -> Decimal:
    return max(market_rate, min_daily_rate)


class LendingCycle:
    def __init__(
        self,
        api: ExchangeApi,
        log: Logger,
        min_daily_rate: Decimal,
        reserved_amount: Decimal,
        policy: RetryPolicy | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.api = api
        self.log = log
        self.min_daily_rate = min_daily_rate
        self.reserved_amount = reserved_amount
        self.policy = policy or RetryPolicy()
        self.clock = clock or Clock()
        self._handlers: dict[CycleState, Callable[[CycleContext], CycleContext]] = {
            CycleState.CHECK_BALANCE: self.check_balance,
            CycleState.GET_MIN_RATE: self.get_min_rate,
            CycleState.CREATE_ORDER: self.create_order,
            CycleState.WAIT_FILL: self.wait_fill,
            CycleState.CANCEL_ORDER: self.cancel_order,
        }

    def step(self, ctx: CycleContext) -> CycleContext:
        """Runs the current state once and returns the context for the next one."""
        new_ctx = self._handlers[ctx.state](ctx)
        if new_ctx.state is not ctx.state:
            self.log.log(f"{ctx.state.value} -> {new_ctx.state.value}")
            self.log.refreshStatus(new_ctx.state.value)
        return new_ctx

    def run(self, ctx: CycleContext | None = None) -> NoReturn:
        ctx = ctx or CycleContext()
        self.log.refreshStatus(ctx.state.value)
        while True:
            try:
                ctx = self.step(ctx)
            except KeyboardInterrupt:
                raise
            except Exception as ex:
                # the context is left as it was so an open order stays tracked
                self.log.log_error(f"Unexpected error in {ctx.state.value}: {ex}")
                print(traceback.format_exc())
                self.clock.sleep(self.policy.balance_retry_delay)
            self.log.persistStatus()

    def check_balance(self, ctx: CycleContext) -> CycleContext:
        try:
            available = self.api.get_available_balance(CURRENCY)
        except ApiError as ex:
            self.log.log_warning(f"Failed to get available {CURRENCY}: {ex}")
            self.clock.sleep(self.policy.balance_retry_delay)
            return ctx

        amount = lendable_amount(available, self.reserved_amount)
        if amount < MIN_ORDER_AMOUNT:
            self.log.log_warning(
                f"Not enough {CURRENCY} to lend: {format_amount_currency(amount, CURRENCY)}, "
                f"checking again in {self.policy.low_balance_delay}s"
            )
            self.clock.sleep(self.policy.low_balance_delay)
            return replace(ctx, amount=amount)

        return replace(ctx, state=CycleState.GET_MIN_RATE, amount=amount)

    def fetch_market_rate(self) -> Decimal:
        rate = self.api.get_market_min_rate(CURRENCY, TERM)
        if rate < RATE_EPSILON:
            raise ApiError(f"A rate of {rate} is too small")
        return rate

    def get_min_rate(self, ctx: CycleContext) -> CycleContext:
        try:
            rate = self.fetch_market_rate()
        except ApiError as ex:
            self.log.log_warning(f"Failed to get current minimum daily interest rate: {ex}")
            self.clock.sleep(self.policy.rate_retry_delay)
            return ctx

        if rate < self.min_daily_rate:
            self.log.log_warning(
                f"{format_rate_pct(rate)} is less than expected minimum rate "
                f"{format_rate_pct(self.min_daily_rate)}, using {format_rate_pct(self.min_daily_rate)}"
            )
        return replace(
            ctx, state=CycleState.CREATE_ORDER, rate=offer_rate(rate, self.min_daily_rate)
        )

    def create_order(self, ctx: CycleContext) -> CycleContext:
        if ctx.order_id:
            raise RuntimeError(f"Order {ctx.order_id} is still unresolved")
        try:
            order_id = self.api.create_lend_order(CURRENCY, ctx.amount, ctx.rate, TERM)
            if not order_id:
                raise ApiError("Got an empty order id")
        except ApiError as ex:
            self.log.log_warning(f"Failed to create order: {ex}")
            return replace(ctx, state=CycleState.GET_MIN_RATE)

        self.log.offer(ctx.amount, CURRENCY, ctx.rate, TERM, order_id)
        return replace(ctx, state=CycleState.WAIT_FILL, order_id=order_id)

    def check_order_filled(self, order_id: str) -> OrderFillStatus:
        """
        An order that is no longer listed as active has been fully filled.
        Only the first page is read, more than one page is an error.
        """
        page = self.api.list_active_lend_orders(CURRENCY, 1, ACTIVE_ORDERS_PAGE_SIZE)
        try:
            total_pages = int(page.get("totalPage", 0))
            listed = any(order.get("orderId") == order_id for order in page.get("items") or [])
        except (TypeError, ValueError, AttributeError) as ex:
            raise ApiError(f"Malformed active lending orders page: {ex}") from ex
        if total_pages > 1:
            raise ApiError("Too many active lending orders")
        if listed:
            return OrderFillStatus.NOT_FILLED
        return OrderFillStatus.FILLED

    def wait_fill(self, ctx: CycleContext) -> CycleContext:
        """
        Polls every poll_interval until the order is filled or fill_timeout
        passes. Polls and the timeout share one scheduler so only one of them
        decides the outcome; a poll due at the same moment as the timeout runs
        first. The next poll is booked from the end of the previous one, so a
        slow poll drops missed ticks instead of queueing them ahead of the
        timeout.
        """
        scheduler = sched.scheduler(self.clock.time, self.clock.sleep)
        start = self.clock.time()
        outcome: list[CycleState] = []
        events: dict[str, sched.Event] = {}

        def poll() -> None:
            try:
                status = self.check_order_filled(ctx.order_id)
            except ApiError as ex:
                self.log.log_warning(f"Failed to check lend order status: {ex}")
                status = OrderFillStatus.UNKNOWN
            else:
                self.log.log(f"Order {ctx.order_id} status: {status.value}")

            if status is OrderFillStatus.FILLED:
                self.log.log(f"Order {ctx.order_id} filled")
                outcome.append(CycleState.CHECK_BALANCE)
                scheduler.cancel(events["timeout"])
                return
            events["poll"] = scheduler.enterabs(self.clock.time() + self.policy.poll_interval, 1, poll)

        def timeout() -> None:
            self.log.log_warning(
                f"Timeout after {self.policy.fill_timeout}s waiting for order {ctx.order_id} to be filled"
            )
            outcome.append(CycleState.CANCEL_ORDER)
            scheduler.cancel(events["poll"])

        events["poll"] = scheduler.enterabs(start + self.policy.poll_interval, 1, poll)
        events["timeout"] = scheduler.enterabs(start + self.policy.fill_timeout, 2, timeout)
        scheduler.run()

        if outcome[0] is CycleState.CHECK_BALANCE:
            return replace(ctx, state=CycleState.CHECK_BALANCE, order_id="")
        return replace(ctx, state=CycleState.CANCEL_ORDER)

    def cancel_order(self, ctx: CycleContext) -> CycleContext:
        """
        Tries once to cancel the order. Anything but success or already filled
        keeps the cycle here, an order is never left behind untracked.
        """
        try:
            code = self.api.cancel_lend_order(ctx.order_id)
        except ApiError as ex:
            self.log.log_warning(f"Failed to cancel order {ctx.order_id}: {ex}")
        else:
            self.log.cancelOrder(ctx.order_id, code)
            if code in CANCEL_ACCEPTED:
                self.log.log(f"Order {ctx.order_id} filled or cancelled")
                return replace(ctx, state=CycleState.CHECK_BALANCE, order_id="")
            elif code == CANCEL_ORDER_NOT_FOUND:
                self.log.log_warning(f"Order {ctx.order_id} not found, retrying cancel")
            else:
                self.log.log_warning(f"Cancel of order {ctx.order_id} returned {code}")

        self.clock.sleep(self.policy.cancel_retry_delay)
        return ctx
