"""Beacon API client used to fetch duties and validator data."""

import asyncio
import logging
import time
from typing import Any, Optional

import aiohttp

from .exceptions import (
    BeaconAPIError,
    BeaconUnreachable,
    BlockNotFoundError,
    MalformedResponse,
)
from .types import BlockDetails, SyncCommittee, ValidatorInfo, Withdrawal, decode_graffiti
from ..chain.constants import EPOCHS_PER_SYNC_COMMITTEE_PERIOD
from .. import metrics

logger = logging.getLogger(__name__)

DEFAULT_BEACON_URL = "http://localhost:5052"


class BeaconClient:
    """Client for a beacon node's standard REST API."""

    def __init__(self, base_url: str = DEFAULT_BEACON_URL, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _request(
        self,
        endpoint: str,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[dict] = None,
        allow_404: bool = False,
    ) -> Optional[dict]:
        """Issue a request and return the decoded JSON body.

        Connection-level failures become ``BeaconUnreachable`` so callers can
        tell a dead node apart from an error response.
        """
        session = await self._ensure_session()
        url = f"{self.base_url}{path}"

        start_time = time.time()
        error_type = None

        try:
            async with session.request(
                method,
                url,
                json=json,
                params=params,
                headers={"Accept": "application/json"},
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                if response.status == 404 and allow_404:
                    return None
                if response.status != 200:
                    error_type = str(response.status)
                    text = await response.text()
                    raise BeaconAPIError(response.status, text)
                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    error_type = "malformed"
                    raise MalformedResponse(f"Invalid JSON from {path}: {e}") from e
                if not isinstance(data, dict):
                    error_type = "malformed"
                    raise MalformedResponse(f"Expected a JSON object from {path}")
                return data
        except aiohttp.ClientConnectionError as e:
            error_type = "unreachable"
            logger.error(f"Beacon node connection error: {e}")
            raise BeaconUnreachable(self.base_url, str(e)) from e
        except asyncio.TimeoutError as e:
            error_type = "timeout"
            raise BeaconUnreachable(self.base_url, "request timed out") from e
        finally:
            metrics.record_beacon_api_call(endpoint, time.time() - start_time, error_type)

    @staticmethod
    def _data_list(payload: dict, path: str) -> list:
        data = payload.get("data")
        if data is None:
            return []
        if not isinstance(data, list):
            raise MalformedResponse(f"Expected a list in 'data' from {path}")
        return data

    async def get_current_slot(self) -> int:
        """Return the slot of the current head block."""
        path = "/eth/v1/beacon/headers/head"
        payload = await self._request("head_header", "GET", path)
        try:
            return int(payload["data"]["header"]["message"]["slot"])
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponse(f"Invalid header response: {e}") from e

    async def get_genesis(self) -> int:
        """Return the chain's genesis time."""
        path = "/eth/v1/beacon/genesis"
        payload = await self._request("genesis", "GET", path)
        try:
            return int(payload["data"]["genesis_time"])
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponse(f"Invalid genesis response: {e}") from e

    async def get_proposer_duties(self, epoch: int) -> list[dict]:
        """Return every proposer duty of ``epoch`` (not filtered)."""
        path = f"/eth/v1/validator/duties/proposer/{epoch}"
        payload = await self._request("proposer_duties", "GET", path)
        return self._data_list(payload, path)

    async def get_attester_duties(self, epoch: int, validator_ids: list[str]) -> list[dict]:
        """Return attester duties of ``epoch`` for the given validator indices."""
        if not validator_ids:
            return []
        path = f"/eth/v1/validator/duties/attester/{epoch}"
        payload = await self._request(
            "attester_duties", "POST", path, json=[str(v) for v in validator_ids]
        )
        return self._data_list(payload, path)

    async def get_sync_committee(self, epoch: int) -> SyncCommittee:
        """Return current and next sync committee membership around ``epoch``.

        The next committee is only exposed by nodes once it is known, so a
        rejected lookup yields an empty list.
        """
        path = "/eth/v1/beacon/states/head/sync_committees"
        payload = await self._request("sync_committees", "GET", path)
        current = self._committee_indices(payload, path)

        next_period_epoch = (epoch // EPOCHS_PER_SYNC_COMMITTEE_PERIOD + 1) * EPOCHS_PER_SYNC_COMMITTEE_PERIOD
        try:
            next_payload = await self._request(
                "sync_committees", "GET", path, params={"epoch": str(next_period_epoch)}
            )
            upcoming = self._committee_indices(next_payload, path)
        except BeaconAPIError as e:
            logger.debug(f"Next sync committee not available: {e}")
            upcoming = []

        return SyncCommittee(current=current, next=upcoming)

    @staticmethod
    def _committee_indices(payload: dict, path: str) -> list[int]:
        try:
            return [int(v) for v in payload["data"]["validators"]]
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponse(f"Invalid sync committee response from {path}: {e}") from e

    async def get_validator_info(self, validator_id: str) -> Optional[ValidatorInfo]:
        """Look up a validator by index or pubkey; None if the node does not know it."""
        path = f"/eth/v1/beacon/states/head/validators/{validator_id}"
        payload = await self._request("validator", "GET", path, allow_404=True)
        if payload is None or not payload.get("data"):
            return None
        data = payload["data"]
        try:
            return ValidatorInfo(
                index=int(data["index"]),
                pubkey=data["validator"]["pubkey"],
                status=data.get("status", ""),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponse(f"Invalid validator response: {e}") from e

    async def get_block_details(self, slot: int) -> BlockDetails:
        """Fetch the block at ``slot`` and extract its execution details.

        Raises BlockNotFoundError while the block is not (yet) available.
        """
        path = f"/eth/v2/beacon/blocks/{slot}"
        payload = await self._request("block", "GET", path, allow_404=True)
        if payload is None or not payload.get("data"):
            raise BlockNotFoundError(f"Block not found: {slot}")

        try:
            message = payload["data"]["message"]
            body = message["body"]
            details = BlockDetails(
                slot=int(message["slot"]),
                proposer_index=int(message["proposer_index"]),
                graffiti=decode_graffiti(body.get("graffiti", "")),
            )
            execution_payload = body.get("execution_payload")
            if execution_payload:
                details.fee_recipient = execution_payload.get("fee_recipient", "")
                details.block_hash = execution_payload.get("block_hash", "")
                if execution_payload.get("block_number") is not None:
                    details.block_number = int(execution_payload["block_number"])
                details.base_fee_per_gas = int(execution_payload.get("base_fee_per_gas", 0))
                details.gas_used = int(execution_payload.get("gas_used", 0))
                details.tx_count = len(execution_payload.get("transactions", []))
                details.withdrawals = [
                    Withdrawal(
                        validator_index=int(w["validator_index"]),
                        amount_gwei=int(w["amount"]),
                        address=w.get("address", ""),
                    )
                    for w in execution_payload.get("withdrawals", [])
                ]
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponse(f"Invalid block response for slot {slot}: {e}") from e

        return details

    async def get_liveness(self, epoch: int, validator_ids: list[str]) -> dict[int, bool]:
        """Return whether each validator was observed live during ``epoch``."""
        if not validator_ids:
            return {}
        path = f"/eth/v1/validator/liveness/{epoch}"
        payload = await self._request(
            "liveness", "POST", path, json=[str(v) for v in validator_ids]
        )
        try:
            return {
                int(item["index"]): bool(item["is_live"])
                for item in self._data_list(payload, path)
            }
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponse(f"Invalid liveness response: {e}") from e

    async def close(self) -> None:
        """Close the client and cleanup resources."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
