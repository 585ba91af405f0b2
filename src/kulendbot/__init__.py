"""
KuLendBot - KuCoin USDT Lending Bot

Keeps the USDT in a KuCoin main account lent out: places a 7 day lend order
at the market's lowest rate (never below a configured floor), waits for it to
fill and cancels and re-places it when it stalls.
"""

__version__ = "0.1.0"

from kulendbot.main import main


__all__ = ["__version__", "main"]
