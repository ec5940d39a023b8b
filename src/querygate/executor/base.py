"""Execution backend interface.

the engine only needs one call from the analytics store: run this sql with
these params and give me rows back. timeouts and retries are the backend's
business. implementations raise QueryExecutionError when the store fails.
"""

from typing import Any, Protocol

Row = dict[str, Any]


class Executor(Protocol):
    dialect: str

    def execute(self, sql: str, params: dict[str, Any]) -> list[Row]: ...

    def close(self) -> None: ...
