import atexit
import datetime
import json
import shutil
import sys
import time
from collections import deque
from pathlib import Path
from typing import Any

from .Utils import format_amount_currency, format_rate_pct


class ConsoleOutput:
    def __init__(self) -> None:
        self._status: str = ""
        atexit.register(self._exit)

    def _exit(self) -> None:
        self._status += "  "  # In case the shell added a ^C
        self.status("")

    def status(self, msg: Any, _time_str: str = "") -> None:
        status = str(msg)
        cols = shutil.get_terminal_size().columns
        if msg != "" and len(status) > cols:
            # truncate status, try preventing console bloating
            status = status[: cols - 4] + "..."
        update = "\r"
        update += status
        update += " " * (len(self._status) - len(status))
        update += "\b" * (len(self._status) - len(status))
        sys.stderr.write(update)
        self._status = status

    def printline(self, line: str) -> None:
        update = "\r"
        update += line + " " * (len(self._status) - len(line)) + "\n"
        update += self._status
        sys.stderr.write(update)


class JsonOutput:
    def __init__(self, file_path: str, log_limit: int, exchange: str = "") -> None:
        self.jsonOutputFile: str = file_path
        self.jsonOutput: dict[str, Any] = {"exchange": exchange}
        self.jsonOutputLog: deque[str] = deque(maxlen=log_limit)

    def status(self, status: str, time_str: str) -> None:
        self.jsonOutput["last_update"] = time_str
        self.jsonOutput["last_status"] = status

    def printline(self, line: str) -> None:
        line = line.replace("\n", " | ")
        self.jsonOutputLog.append(line)

    def writeJsonFile(self) -> None:
        with Path(self.jsonOutputFile).open("w", encoding="utf-8") as f:
            self.jsonOutput["log"] = list(self.jsonOutputLog)
            f.write(json.dumps(self.jsonOutput, ensure_ascii=True, sort_keys=True))


class Logger:
    """
    Timestamped log lines for the lending cycle.

    Lines go to the console (stderr, with a live status line showing the
    current cycle state) or, when json_file is set, to a bounded log kept in
    a JSON file that is rewritten on every persistStatus().
    """

    def __init__(
        self,
        json_file: str = "",
        json_log_size: int = -1,
        exchange: str = "",
    ) -> None:
        self._state: str = ""
        self.output: JsonOutput | ConsoleOutput
        if json_file != "" and json_log_size != -1:
            self.output = JsonOutput(json_file, json_log_size, exchange)
        else:
            self.output = ConsoleOutput()
        self.refreshStatus()

    @staticmethod
    def timestamp() -> str:
        ts = time.time()
        return datetime.datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S")

    def log(self, msg: str) -> None:
        self.output.printline(f"{self.timestamp()} {msg}")
        self.refreshStatus()

    def log_warning(self, msg: str) -> None:
        self.output.printline(f"{self.timestamp()} Warning {msg}")
        self.refreshStatus()

    def log_error(self, msg: str) -> None:
        log_message = f"{self.timestamp()} Error {msg}"
        self.output.printline(log_message)
        if isinstance(self.output, JsonOutput):
            print(log_message)
        self.refreshStatus()

    def offer(self, amt: Any, cur: str, rate: Any, days: Any, order_id: str) -> None:
        line = (
            f"{self.timestamp()} Placed {format_amount_currency(amt, cur)} at {format_rate_pct(rate)} for "
            f"{days} days, order id {order_id}"
        )
        self.output.printline(line)
        self.refreshStatus()

    def cancelOrder(self, order_id: str, msg: Any) -> None:
        line = f"{self.timestamp()} Canceling order {order_id}... {self.digestApiMsg(msg)}"
        self.output.printline(line)
        self.refreshStatus()

    def refreshStatus(self, state: str = "") -> None:
        if state != "":
            self._state = state
        self.output.status(self._state, self.timestamp())

    def persistStatus(self) -> None:
        if hasattr(self.output, "writeJsonFile"):
            self.output.writeJsonFile()

    @staticmethod
    def digestApiMsg(msg: Any) -> str:
        if isinstance(msg, dict):
            return str(msg.get("msg", msg.get("message", msg.get("code", ""))))
        return str(msg) if msg is not None else ""
