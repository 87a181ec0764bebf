from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import httpx
from pydantic import ValidationError

from .config import BettingAPIConfig
from .exceptions import (
    BettingAPIError,
    BettingBadRequestError,
    BettingNotFoundError,
    BettingServerError,
)
from .models import Account, Batch, Bet, BetStatus, NewBet

logger = logging.getLogger(__name__)


@contextmanager
def _parsing(what: str) -> Iterator[None]:
    """Report a 2xx body that does not fit the expected shape as BettingAPIError."""
    try:
        yield
    except (ValidationError, KeyError, AttributeError, TypeError) as e:
        logger.error(f"Unexpected {what} response body: {e!r}")
        raise BettingAPIError(f"Unexpected {what} response body: {e!r}") from e


class BettingClient:
    def __init__(
        self,
        config: BettingAPIConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or BettingAPIConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        logger.info(f"Initialized BettingClient (base_url={self.config.api_url})")

    async def __aenter__(self) -> BettingClient:
        limits = httpx.Limits(
            max_connections=self.config.max_connections,
            max_keepalive_connections=self.config.max_keepalive_connections,
        )
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            limits=limits,
            transport=self._transport,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: Exception | None,
        exc_tb: Any,
    ) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Closed BettingClient")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(
                "BettingClient must be used as async context manager"
            )
        return self._client

    def _url(self, endpoint: str) -> str:
        return f"{self.config.api_prefix}/{endpoint.lstrip('/')}"

    async def _request(
        self,
        method: str,
        endpoint: str,
        json_data: dict[str, Any] | None = None,
    ) -> Any:
        # Only reads are retried; mutations fail fast so the caller decides.
        max_attempts = self.config.max_retries if method == "GET" else 1
        attempt = 0
        last_error: Exception | None = None

        while attempt < max_attempts:
            attempt += 1
            try:
                response = await self.client.request(
                    method=method,
                    url=self._url(endpoint),
                    json=json_data,
                )
            except httpx.TimeoutException as e:
                last_error = e
                if attempt < max_attempts:
                    logger.warning(f"Timeout on {method} {endpoint}, retrying ({attempt})...")
                    await asyncio.sleep(0.5 * attempt)
                continue
            except httpx.RequestError as e:
                logger.error(f"Network error on {method} {endpoint}: {e}")
                raise BettingAPIError(f"Network error: {e}") from e

            if response.status_code == 404:
                raise BettingNotFoundError(
                    f"Resource not found: {endpoint}", status_code=404
                )
            if response.status_code in (400, 422):
                raise BettingBadRequestError(
                    f"Bad request for {endpoint}: {response.text}",
                    status_code=response.status_code,
                )
            if response.status_code >= 500:
                last_error = BettingServerError(
                    f"Server error {response.status_code} on {endpoint}",
                    status_code=response.status_code,
                )
                if attempt < max_attempts:
                    wait_time = 0.5 * 2 ** (attempt - 1)
                    logger.warning(
                        f"Server error {response.status_code}, "
                        f"retrying in {wait_time}s..."
                    )
                    await asyncio.sleep(wait_time)
                continue
            if response.status_code >= 400:
                raise BettingAPIError(
                    f"{method} {endpoint} failed: {response.status_code}",
                    status_code=response.status_code,
                )

            if response.status_code == 204 or not response.content:
                return None
            return response.json()

        if isinstance(last_error, BettingAPIError):
            raise last_error
        raise BettingAPIError(
            f"Request failed after {attempt} attempts: {last_error}"
        )

    async def health(self) -> bool:
        try:
            response = await self.client.get("/health")
        except httpx.RequestError as e:
            logger.warning(f"Health check failed: {e}")
            return False
        return response.status_code == 200

    # Accounts

    async def get_accounts(self) -> list[Account]:
        data = await self._request("GET", "accounts")
        if isinstance(data, dict):
            data = data.get("accounts", [])
        with _parsing("Account list"):
            return [Account.from_api(a) for a in data or []]

    async def get_account(self, account_id: str) -> Account:
        data = await self._request("GET", f"accounts/{account_id}")
        with _parsing("Account"):
            return Account.from_api(data.get("account", data))

    async def create_account(self, name: str, hostname: str) -> Account:
        logger.info(f"Creating account {name!r} ({hostname})")
        data = await self._request(
            "POST", "accounts", json_data={"name": name, "hostname": hostname}
        )
        with _parsing("Account"):
            return Account.from_api(data.get("account", data))

    async def update_account(
        self,
        account_id: str,
        name: str | None = None,
        hostname: str | None = None,
    ) -> Account:
        update: dict[str, Any] = {}
        if name is not None:
            update["name"] = name
        if hostname is not None:
            update["hostname"] = hostname

        data = await self._request("PUT", f"accounts/{account_id}", json_data=update)
        with _parsing("Account"):
            return Account.from_api(data.get("account", data))

    async def delete_account(self, account_id: str) -> None:
        logger.info(f"Deleting account {account_id}")
        await self._request("DELETE", f"accounts/{account_id}")

    # Batches

    async def get_account_batches(self, account_id: str) -> list[Batch]:
        data = await self._request("GET", f"accounts/{account_id}/batches")
        if isinstance(data, dict):
            data = data.get("batches", [])
        with _parsing("Batch list"):
            return [Batch.from_api(b) for b in data or []]

    async def get_batch(self, account_id: str, batch_id: str) -> Batch:
        data = await self._request("GET", f"accounts/{account_id}/batches/{batch_id}")
        with _parsing("Batch"):
            return Batch.from_api(data.get("batch", data))

    async def create_batch(
        self,
        account_id: str,
        meta: dict[str, Any],
        bets: list[NewBet],
    ) -> Batch:
        payload = {"meta": meta, "bets": [bet.model_dump() for bet in bets]}
        logger.info(f"Creating batch with {len(bets)} bets for account {account_id}")
        data = await self._request(
            "POST", f"accounts/{account_id}/batches", json_data=payload
        )
        with _parsing("Batch"):
            return Batch.from_api(data.get("batch", data))

    async def update_bet_status(
        self,
        account_id: str,
        batch_id: str,
        bet_id: str,
        status: BetStatus,
    ) -> Bet:
        logger.info(f"Setting bet {bet_id} in batch {batch_id} to {status.value}")
        data = await self._request(
            "PATCH",
            f"accounts/{account_id}/batches/{batch_id}/bets/{bet_id}",
            json_data={"status": status.value},
        )
        with _parsing("Bet"):
            return Bet.from_api(data.get("bet", data), batch_id)

    async def submit_batch(self, account_id: str, batch_id: str) -> None:
        logger.info(f"Submitting batch {batch_id} for account {account_id}")
        await self._request("DELETE", f"accounts/{account_id}/batches/{batch_id}")

    async def cancel_batch(
        self,
        account_id: str,
        batch_id: str,
        bets: list[dict[str, Any]] | None = None,
    ) -> None:
        logger.info(f"Cancelling batch {batch_id} for account {account_id}")
        await self._request(
            "PATCH",
            f"accounts/{account_id}/batches/{batch_id}/bets",
            json_data={"bets": bets or []},
        )


def create_betting_client(
    base_url: str | None = None,
    config: BettingAPIConfig | None = None,
) -> BettingClient:
    config = config or BettingAPIConfig()
    if base_url:
        config = config.model_copy(update={"base_url": base_url})
    return BettingClient(config)
