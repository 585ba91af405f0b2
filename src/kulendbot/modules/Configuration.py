import configparser
import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any

from .Utils import to_decimal


config = configparser.ConfigParser()
# This module is the middleman between the bot and a ConfigParser object. Every option can also be
# given through the environment as <CATEGORY>_<option>, and the names below are accepted as aliases.
# The environment always wins over the file.

ENV_ALIASES: dict[tuple[str, str], str] = {
    ("BOT", "mindailyrate"): "MIN_DAILY_INT_RATE",
    ("BOT", "reservedamount"): "RESERVED_USDT_AMOUNT",
    ("API", "apikey"): "KUCOIN_API_KEY",
    ("API", "secret"): "KUCOIN_API_SECRET",
    ("API", "passphrase"): "KUCOIN_API_PASSPHRASE",
}


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class LendingConfig:
    """Settings that stay fixed for the lifetime of the process."""

    min_daily_rate: Decimal
    reserved_amount: Decimal
    api_key: str
    api_secret: str
    api_passphrase: str
    poll_interval: float = 10
    fill_timeout: float = 300
    balance_retry_delay: float = 1
    low_balance_delay: float = 300
    rate_retry_delay: float = 1
    cancel_retry_delay: float = 10
    timeout: int = 30
    json_file: str = ""
    json_log_size: int = -1
    api_debug_log: bool = False

    def __repr__(self) -> str:
        # keep credentials out of log lines
        return (
            f"LendingConfig(min_daily_rate={self.min_daily_rate}, "
            f"reserved_amount={self.reserved_amount}, poll_interval={self.poll_interval}, "
            f"fill_timeout={self.fill_timeout})"
        )


def init(file_location: str | Path | None = None) -> configparser.ConfigParser:
    """
    Loads the config file if one is given. A missing file is not an error, the
    environment alone may carry everything.
    """
    global config
    config = configparser.ConfigParser()
    if file_location is not None:
        config.read(file_location, encoding="utf-8")
    return config


def _env_value(category: str, option: str) -> str | None:
    value = os.environ.get(f"{category}_{option}")
    if value is None and (category, option) in ENV_ALIASES:
        value = os.environ.get(ENV_ALIASES[(category, option)])
    return value


def has_option(category: str, option: str) -> bool:
    return bool(_env_value(category, option)) or config.has_option(category, option)


def getboolean(category: str, option: str, default_value: bool = False) -> bool:
    if has_option(category, option):
        env_val = _env_value(category, option)
        if env_val is not None:
            return env_val.lower() in ("true", "1", "t", "y", "yes")
        return config.getboolean(category, option)
    return default_value


def get(
    category: str,
    option: str,
    default_value: Any = False,
    lower_limit: float | bool = False,
    upper_limit: float | bool = False,
) -> Any:
    """
    Returns the raw option value, the default when it is unset, or raises
    ConfigError when it is unset and default_value is None.

    Numeric values outside [lower_limit, upper_limit] are clamped with a warning.
    """
    if not has_option(category, option):
        if default_value is None:
            raise ConfigError(f"[{category}]-{option} is not allowed to be left unset")
        return default_value

    value = _env_value(category, option)
    if value is None:
        value = config.get(category, option)
    if value.strip() == "":
        if default_value is None:
            raise ConfigError(f"[{category}]-{option} is not allowed to be left empty")
        return default_value
    if lower_limit is False and upper_limit is False:
        return value
    try:
        if lower_limit is not False and float(value) < float(lower_limit):
            print(
                f"WARN: [{category}]-{option}'s value: '{value}' is below the minimum limit: {lower_limit}, which will be used instead."
            )
            value = str(lower_limit)
        if upper_limit is not False and float(value) > float(upper_limit):
            print(
                f"WARN: [{category}]-{option}'s value: '{value}' is above the maximum limit: {upper_limit}, which will be used instead."
            )
            value = str(upper_limit)
    except ValueError:
        raise ConfigError(f"[{category}]-{option}: '{value}' is not a number") from None
    return value


def get_decimal(category: str, option: str, default_value: Any = None) -> Decimal:
    value = get(category, option, default_value)
    try:
        d = to_decimal(value, f"[{category}]-{option}")
    except ValueError as ex:
        raise ConfigError(str(ex)) from None
    if d < 0:
        raise ConfigError(f"[{category}]-{option} must not be negative, got {d}")
    return d


def get_seconds(category: str, option: str, default_value: float) -> float:
    value = get(category, option, default_value)
    try:
        seconds = float(value)
    except ValueError:
        raise ConfigError(f"[{category}]-{option}: '{value}' is not a number") from None
    if seconds < 0:
        raise ConfigError(f"[{category}]-{option} must not be negative, got {seconds}")
    return seconds


def get_lending_config() -> LendingConfig:
    """
    Builds the LendingConfig from the loaded file and the environment.

    Raises:
        ConfigError: if a required value is missing or unparseable.
    """
    poll_interval = get_seconds("BOT", "pollinterval", 10)
    fill_timeout = get_seconds("BOT", "filltimeout", 300)
    if poll_interval <= 0:
        raise ConfigError("[BOT]-pollinterval must be greater than zero")
    if fill_timeout < poll_interval:
        raise ConfigError(
            f"[BOT]-filltimeout ({fill_timeout}) must not be shorter than [BOT]-pollinterval ({poll_interval})"
        )

    json_file = str(get("BOT", "jsonfile", ""))
    try:
        json_log_size = int(get("BOT", "jsonlogsize", 200 if json_file else -1))
        timeout = int(float(get("BOT", "timeout", 30, 1, 180)))
    except ValueError as ex:
        raise ConfigError(str(ex)) from None

    return LendingConfig(
        min_daily_rate=get_decimal("BOT", "mindailyrate"),
        reserved_amount=get_decimal("BOT", "reservedamount"),
        api_key=str(get("API", "apikey", None)),
        api_secret=str(get("API", "secret", None)),
        api_passphrase=str(get("API", "passphrase", None)),
        poll_interval=poll_interval,
        fill_timeout=fill_timeout,
        balance_retry_delay=get_seconds("BOT", "balanceretrydelay", 1),
        low_balance_delay=get_seconds("BOT", "lowbalancedelay", 300),
        rate_retry_delay=get_seconds("BOT", "rateretrydelay", 1),
        cancel_retry_delay=get_seconds("BOT", "cancelretrydelay", 10),
        timeout=timeout,
        json_file=json_file,
        json_log_size=json_log_size,
        api_debug_log=getboolean("BOT", "api_debug_log"),
    )
