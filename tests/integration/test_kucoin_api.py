import os
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from kulendbot.modules.Configuration import LendingConfig
from kulendbot.modules.KuCoin import KuCoin
from kulendbot.modules.LendingCycle import ACTIVE_ORDERS_PAGE_SIZE, CURRENCY, TERM


@pytest.fixture(scope="module")
def kucoin_api():
    try:
        cfg = LendingConfig(
            min_daily_rate=Decimal("0.0005"),
            reserved_amount=Decimal("0"),
            api_key=os.environ["KUCOIN_API_KEY"],
            api_secret=os.environ["KUCOIN_API_SECRET"],
            api_passphrase=os.environ["KUCOIN_API_PASSPHRASE"],
        )
    except KeyError as ex:
        pytest.skip(f"{ex} not set")
    return KuCoin(cfg, MagicMock())


def test_available_balance(kucoin_api):
    assert kucoin_api.get_available_balance(CURRENCY) >= 0


def test_market_min_rate(kucoin_api):
    assert kucoin_api.get_market_min_rate(CURRENCY, TERM) > 0


def test_active_orders_page(kucoin_api):
    page = kucoin_api.list_active_lend_orders(CURRENCY, 1, ACTIVE_ORDERS_PAGE_SIZE)
    assert "items" in page
    assert "totalPage" in page
