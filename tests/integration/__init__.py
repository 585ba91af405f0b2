"""
Integration tests for KuLendBot.

These tests talk to the real KuCoin API with read-only calls and need
KUCOIN_API_KEY, KUCOIN_API_SECRET and KUCOIN_API_PASSPHRASE in the environment.

Run integration tests with:
    pytest --run-integration tests/integration/
"""
