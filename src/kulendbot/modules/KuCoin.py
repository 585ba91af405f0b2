import base64
import hashlib
import hmac
import json
import threading
import time
import urllib.parse
from collections import deque
from decimal import Decimal
from typing import Any

import requests

from .ExchangeApi import ApiError, ExchangeApi
from .Utils import to_decimal


SUCCESS = "200000"


class KuCoin(ExchangeApi):
    def __init__(self, cfg: Any, log: Any) -> None:
        super().__init__(cfg, log)
        self.lock = threading.RLock()
        self.url = "https://api.kucoin.com"
        self.key = cfg.api_key
        self.secret = cfg.api_secret
        self.passphrase = cfg.api_passphrase
        self.timeout = cfg.timeout
        # private endpoints allow roughly 30 requests per 3 seconds
        self.req_per_period = 10
        self.req_period = 1000.0  # milliseconds
        self.req_time_log = deque(maxlen=self.req_per_period)
        self.api_debug_log = cfg.api_debug_log

    def debug_log(self, msg: str) -> None:
        if self.api_debug_log:
            self.log.log(msg)

    def _sign(self, message: str) -> str:
        h = hmac.new(self.secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256)
        return base64.b64encode(h.digest()).decode("utf-8")

    def _headers(self, method: str, endpoint: str, body: str) -> dict[str, str]:
        """Key version 2 headers, the passphrase is signed with the secret as well."""
        now = str(int(time.time() * 1000))
        return {
            "KC-API-KEY": self.key,
            "KC-API-SIGN": self._sign(now + method + endpoint + body),
            "KC-API-TIMESTAMP": now,
            "KC-API-PASSPHRASE": self._sign(self.passphrase),
            "KC-API-KEY-VERSION": "2",
            "Content-Type": "application/json",
        }

    @ExchangeApi.synchronized
    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Sends a signed request and returns the decoded {code, data, msg} envelope.
        The envelope code is not checked here.
        """
        self.limit_request_rate()

        endpoint = path
        if params:
            endpoint += "?" + urllib.parse.urlencode(params)
        body = json.dumps(payload) if payload else ""
        url = f"{self.url}{endpoint}"

        try:
            r = requests.request(
                method,
                url,
                headers=self._headers(method, endpoint, body),
                data=body or None,
                timeout=self.timeout,
            )
            self.debug_log(f"{method}: {url} {body}")
        except requests.RequestException as ex:
            raise ApiError(f"{ex} Requesting {url}") from ex

        self.debug_log(f"Response: {r.text}")
        try:
            envelope = r.json()
        except ValueError:
            raise ApiError(f"API Error {r.status_code}: {r.text} Requesting {url}") from None

        if not isinstance(envelope, dict) or "code" not in envelope:
            raise ApiError(f"API Error {r.status_code}: unexpected response {r.text}")
        return envelope

    def _query(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        envelope = self._request(method, path, params, payload)
        if str(envelope["code"]) != SUCCESS:
            raise ApiError(f"API Error {envelope['code']}: {envelope.get('msg', '')}")
        return envelope.get("data")

    def get_available_balance(self, currency: str) -> Decimal:
        """
        https://docs.kucoin.com/#list-accounts
        """
        accounts = self._query("GET", "/api/v1/accounts", {"currency": currency, "type": "main"})
        if not accounts:
            raise ApiError(f"No main account for {currency}")
        try:
            return to_decimal(accounts[0].get("available"), "available")
        except ValueError as ex:
            raise ApiError(f"Failed to read available {currency}: {ex}") from None

    def get_market_min_rate(self, currency: str, term: int) -> Decimal:
        """
        https://docs.kucoin.com/#lending-market-data
        The market list is sorted by rate, the first entry is the lowest.
        """
        offers = self._query("GET", "/api/v1/margin/market", {"currency": currency, "term": term})
        if not offers:
            raise ApiError(f"Empty lending market for {currency} ({term} days)")
        try:
            return to_decimal(offers[0].get("dailyIntRate"), "dailyIntRate")
        except ValueError as ex:
            raise ApiError(f"Failed to read market rate: {ex}") from None

    def create_lend_order(self, currency: str, amount: Decimal, rate: Decimal, term: int) -> str:
        """
        https://docs.kucoin.com/#post-lend-order
        """
        data = self._query(
            "POST",
            "/api/v1/margin/lend",
            payload={
                "currency": currency,
                "size": f"{amount:f}",
                "dailyIntRate": f"{rate:f}",
                "term": str(term),
            },
        )
        order_id = data.get("orderId", "") if isinstance(data, dict) else ""
        if not order_id:
            raise ApiError("Got an empty order id")
        return str(order_id)

    def list_active_lend_orders(
        self, currency: str, page: int = 1, page_size: int = 50
    ) -> dict[str, Any]:
        """
        https://docs.kucoin.com/#get-active-order
        """
        data = self._query(
            "GET",
            "/api/v1/margin/lend/active",
            {"currency": currency, "currentPage": page, "pageSize": page_size},
        )
        if not isinstance(data, dict):
            raise ApiError(f"Unexpected active order page: {data}")
        return data

    def cancel_lend_order(self, order_id: str) -> str:
        """
        https://docs.kucoin.com/#cancel-lend-order
        Returns the envelope code, rejections are not raised.
        """
        envelope = self._request("DELETE", f"/api/v1/margin/lend/{order_id}")
        code = str(envelope["code"])
        if code != SUCCESS:
            self.debug_log(f"Cancel {order_id} returned {code}: {envelope.get('msg', '')}")
        return code
