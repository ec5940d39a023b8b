"""ClickHouse executor over the HTTP interface.

compiled clickhouse sql uses {name:Type} query parameters; the http interface
takes their values as param_<name> url parameters, so values never touch the
query text on this side either.
"""

import logging
from typing import Any

import httpx

from querygate.errors import QueryExecutionError

logger = logging.getLogger(__name__)


def encode_param(value: Any) -> str:
    """Render a parameter value in the text form clickhouse parses params from."""
    if isinstance(value, (list, tuple)):
        items = ", ".join("'" + _escape(str(v)).replace("'", "\\'") + "'" for v in value)
        return f"[{items}]"
    return _escape(str(value))


def _escape(text: str) -> str:
    # param values are read with the escaped (tsv) rules
    return (
        text.replace("\\", "\\\\")
        .replace("\t", "\\t")
        .replace("\n", "\\n")
    )


class ClickHouseHTTPExecutor:
    """Runs queries against a ClickHouse server through its HTTP interface."""

    dialect = "clickhouse"

    def __init__(
        self,
        url: str,
        user: str = "default",
        password: str = "",
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url
        self._client = client or httpx.Client(
            timeout=timeout,
            headers={"X-ClickHouse-User": user, "X-ClickHouse-Key": password},
        )

    def execute(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        query_params = {"default_format": "JSON"}
        for name, value in (params or {}).items():
            query_params[f"param_{name}"] = encode_param(value)

        try:
            response = self._client.post(self.url, params=query_params, content=sql.encode())
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise QueryExecutionError(
                f"ClickHouse returned {e.response.status_code}: {e.response.text.strip()}"
            ) from e
        except httpx.HTTPError as e:
            raise QueryExecutionError(f"ClickHouse request failed: {e}") from e

        payload = response.json()
        rows = payload.get("data", [])
        logger.debug("ClickHouse returned %d rows", len(rows))
        return rows

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ClickHouseHTTPExecutor":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
