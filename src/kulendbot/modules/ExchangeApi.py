"""
Exchange API Base class

The lending cycle only needs five operations from an exchange: the available
balance, the market's lowest lending rate, and creating, listing and
cancelling lend orders.
"""

import abc
import time
from collections import deque
from collections.abc import Callable
from decimal import Decimal
from typing import Any, TypeVar


F = TypeVar("F", bound=Callable[..., Any])


class ApiError(Exception):
    pass


class ExchangeApi(abc.ABC):
    def __str__(self) -> str:
        return self.__class__.__name__.upper()

    def __repr__(self) -> str:
        return self.__str__()

    @staticmethod
    def synchronized(method: F) -> F:
        """Work with instance method only !!!"""

        def new_method(self: Any, *arg: Any, **kws: Any) -> Any:
            with self.lock:
                return method(self, *arg, **kws)

        return new_method  # type: ignore[return-value]

    def __init__(self, cfg: Any, log: Any) -> None:
        self.cfg = cfg
        self.log = log
        self.req_per_period: int = 1
        self.req_period: float = 0
        self.req_time_log: deque[float] = deque(maxlen=self.req_per_period)

    def limit_request_rate(self) -> None:
        """Sleeps when the last req_per_period requests happened within req_period ms."""
        now = time.time() * 1000  # milliseconds
        # Start throttling only when the queue is full
        if len(self.req_time_log) == self.req_per_period:
            time_since_oldest_req = now - self.req_time_log[0]
            if time_since_oldest_req < self.req_period:
                sleep_time = (self.req_period - time_since_oldest_req) / 1000
                self.req_time_log.append(now + self.req_period - time_since_oldest_req)
                time.sleep(sleep_time)
                return

        self.req_time_log.append(now)

    @abc.abstractmethod
    def get_available_balance(self, currency: str) -> Decimal:
        """
        Returns the available amount of currency in the main account.
        """

    @abc.abstractmethod
    def get_market_min_rate(self, currency: str, term: int) -> Decimal:
        """
        Returns the lowest daily interest rate currently offered on the lending
        market for the given term (days).
        """

    @abc.abstractmethod
    def create_lend_order(self, currency: str, amount: Decimal, rate: Decimal, term: int) -> str:
        """
        Places a lend order and returns its id. A rejected order raises ApiError.
        """

    @abc.abstractmethod
    def list_active_lend_orders(
        self, currency: str, page: int = 1, page_size: int = 50
    ) -> dict[str, Any]:
        """
        Returns one page of the account's outstanding lend orders. Sample output:

        {"currentPage": 1, "pageSize": 50, "totalNum": 1, "totalPage": 1,
         "items": [{"orderId": "5da59f5ef943c033b2b643e4", "currency": "USDT",
                    "size": "80", "filledSize": "0", "dailyIntRate": "0.001",
                    "term": 7, "createdAt": 1571183454000}]}
        """

    @abc.abstractmethod
    def cancel_lend_order(self, order_id: str) -> str:
        """
        Requests cancellation of a lend order and returns the exchange's result code.
        """
