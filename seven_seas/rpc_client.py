# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Asynchronous JSON-RPC client for a Solana node.

Only the calls needed to mint and inspect tokens are wrapped: balances, rent,
account data, blockhashes, airdrops, transaction submission and signature
status polling. Every call is a JSON-RPC 2.0 POST to the node URL over a
shared ``httpx.AsyncClient`` (HTTP/2 by default).

Errors:
    - :class:`ApiError` when the HTTP status is 400 or above (rate limits,
      gateway errors).
    - :class:`RpcError` when the node answers with a JSON-RPC ``error`` object,
      for example a failed preflight simulation.
    - :class:`TransactionFailed` when a submitted transaction lands with an
      error.
    - :class:`TransactionTimeout` when it does not reach the requested
      commitment within ``ClientConfig.transaction_wait_in_seconds``.

Examples:
    Check a balance::

        client = RpcClient("https://api.devnet.solana.com")
        lamports = await client.balance(payer.public_key())
        await client.close()

    Send and confirm::

        signature = await client.send_and_confirm_transaction(
            instructions, payer, [payer, mint]
        )
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import unittest
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import base58
import httpx

from .keypair import Keypair
from .metadata import Metadata
from .public_key import PublicKey
from .transactions import Instruction, Transaction

COMMITMENT_LEVELS = ["processed", "confirmed", "finalized"]


@dataclass
class ClientConfig:
    """Settings shared by every call of an :class:`RpcClient`.

    Attributes:
        commitment: Commitment used for reads and for confirmation.
        preflight_commitment: Commitment the node simulates against before
            accepting a transaction.
        transaction_wait_in_seconds: How long to poll for confirmation.
        poll_interval: Seconds between signature status polls.
        request_timeout: Seconds one HTTP request may take.
        http2: Use HTTP/2 for the connection pool.
        api_key: Sent as a bearer token when set.
    """

    commitment: str = "confirmed"
    preflight_commitment: str = "confirmed"
    transaction_wait_in_seconds: float = 60.0
    poll_interval: float = 1.0
    request_timeout: float = 60.0
    http2: bool = True
    api_key: Optional[str] = None


@dataclass
class AccountInfo:
    lamports: int
    owner: PublicKey
    data: bytes
    executable: bool


class RpcClient:
    """Solana JSON-RPC over httpx"""

    client: httpx.AsyncClient
    client_config: ClientConfig
    base_url: str
    _request_id: int

    def __init__(self, base_url: str, client_config: Optional[ClientConfig] = None):
        if client_config is None:
            client_config = ClientConfig()
        self.base_url = base_url
        limits = httpx.Limits()
        # No pool timeout: callers wait as long as requests make progress.
        timeout = httpx.Timeout(client_config.request_timeout, pool=None)
        headers = {Metadata.CLIENT_HEADER: Metadata.get_client_header_val()}
        self.client = httpx.AsyncClient(
            http2=client_config.http2,
            limits=limits,
            timeout=timeout,
            headers=headers,
        )
        self.client_config = client_config
        self._request_id = 0
        if client_config.api_key:
            self.client.headers["Authorization"] = f"Bearer {client_config.api_key}"

    async def close(self):
        await self.client.aclose()

    #
    # Accounts
    #

    async def balance(self, public_key: PublicKey) -> int:
        """Lamports held by ``public_key``."""
        result = await self._call(
            "getBalance",
            [str(public_key), {"commitment": self.client_config.commitment}],
        )
        return int(result["value"])

    async def minimum_balance_for_rent_exemption(self, size: int) -> int:
        return int(
            await self._call(
                "getMinimumBalanceForRentExemption",
                [size, {"commitment": self.client_config.commitment}],
            )
        )

    async def account_info(self, public_key: PublicKey) -> Optional[AccountInfo]:
        """Account state, or ``None`` when the account does not exist."""
        result = await self._call(
            "getAccountInfo",
            [
                str(public_key),
                {"encoding": "base64", "commitment": self.client_config.commitment},
            ],
        )
        value = result["value"]
        if value is None:
            return None
        return AccountInfo(
            lamports=int(value["lamports"]),
            owner=PublicKey.from_str(value["owner"]),
            data=base64.b64decode(value["data"][0]),
            executable=bool(value["executable"]),
        )

    async def request_airdrop(self, public_key: PublicKey, lamports: int) -> str:
        return await self._call("requestAirdrop", [str(public_key), lamports])

    #
    # Transactions
    #

    async def latest_blockhash(self) -> str:
        result = await self._call(
            "getLatestBlockhash", [{"commitment": self.client_config.commitment}]
        )
        return result["value"]["blockhash"]

    async def send_transaction(self, transaction: Transaction) -> str:
        """Submit a signed transaction and return its signature."""
        return await self._call(
            "sendTransaction",
            [
                transaction.to_base64(),
                {
                    "encoding": "base64",
                    "preflightCommitment": self.client_config.preflight_commitment,
                },
            ],
        )

    async def signature_status(self, signature: str) -> Optional[Dict[str, Any]]:
        result = await self._call(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": True}],
        )
        return result["value"][0]

    async def wait_for_transaction(self, signature: str):
        """Poll until ``signature`` reaches the configured commitment.

        Raises:
            TransactionFailed: The transaction landed with an error.
            TransactionTimeout: It did not land in time.
        """
        target = COMMITMENT_LEVELS.index(self.client_config.commitment)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.client_config.transaction_wait_in_seconds
        while True:
            status = await self.signature_status(signature)
            if status is not None:
                if status.get("err") is not None:
                    raise TransactionFailed(
                        f"Transaction {signature} failed: {status['err']}",
                        signature,
                        status["err"],
                    )
                reached = status.get("confirmationStatus") or "processed"
                if COMMITMENT_LEVELS.index(reached) >= target:
                    return
            if loop.time() >= deadline:
                raise TransactionTimeout(
                    f"Transaction {signature} was not {self.client_config.commitment} "
                    f"after {self.client_config.transaction_wait_in_seconds} seconds",
                    signature,
                )
            await asyncio.sleep(self.client_config.poll_interval)

    async def send_and_confirm_transaction(
        self,
        instructions: Sequence[Instruction],
        payer: Keypair,
        signers: Sequence[Keypair],
    ) -> str:
        """Sign against a fresh blockhash, submit and wait for confirmation.

        A transaction the node refuses at submission (failed preflight) is
        reported as :class:`TransactionFailed`, so every failure past signing
        carries the signature.
        """
        blockhash = await self.latest_blockhash()
        transaction = Transaction.new(instructions, payer, signers, blockhash)
        try:
            signature = await self.send_transaction(transaction)
        except RpcError as e:
            raise TransactionFailed(
                f"Transaction {transaction.signature()} was rejected: {e}",
                transaction.signature(),
                e.data,
            ) from e
        logging.info(f"Submitted transaction {signature}")
        await self.wait_for_transaction(signature)
        return signature

    async def _call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        self._request_id += 1
        response = await self.client.post(
            self.base_url,
            json={
                "jsonrpc": "2.0",
                "id": self._request_id,
                "method": method,
                "params": [] if params is None else params,
            },
        )
        if response.status_code >= 400:
            raise ApiError(response.text, response.status_code)
        body = response.json()
        if body.get("error") is not None:
            error = body["error"]
            raise RpcError(
                f"{method}: {error.get('message')}", error.get("code"), error.get("data")
            )
        return body["result"]


class ApiError(Exception):
    """The API returned a non-success status code, e.g., >= 400"""

    status_code: int

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class RpcError(Exception):
    """The node answered with a JSON-RPC error object"""

    code: Optional[int]
    data: Any

    def __init__(self, message: str, code: Optional[int], data: Any = None):
        super().__init__(message)
        self.code = code
        self.data = data


class TransactionFailed(Exception):
    """The transaction was processed but its instructions returned an error"""

    signature: str
    error: Any

    def __init__(self, message: str, signature: str, error: Any):
        super().__init__(message)
        self.signature = signature
        self.error = error


class TransactionTimeout(Exception):
    """The transaction did not reach the requested commitment in time"""

    signature: str

    def __init__(self, message: str, signature: str):
        super().__init__(message)
        self.signature = signature


class FakeNode:
    """Answers JSON-RPC requests from a table of canned results, for tests.

    A canned result may be a function of the request params.
    """

    responses: Dict[str, List[Any]]
    calls: List[Dict[str, Any]]

    def __init__(self, responses: Dict[str, List[Any]]):
        self.responses = responses
        self.calls = []

    def handler(self) -> Callable[[httpx.Request], httpx.Response]:
        def handle(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            self.calls.append(body)
            queue = self.responses[body["method"]]
            answer = queue.pop(0) if len(queue) > 1 else queue[0]
            if callable(answer):
                answer = answer(body["params"])
            if isinstance(answer, httpx.Response):
                return answer
            if isinstance(answer, dict) and "error" in answer:
                return httpx.Response(
                    200, json={"jsonrpc": "2.0", "id": body["id"], **answer}
                )
            return httpx.Response(
                200, json={"jsonrpc": "2.0", "id": body["id"], "result": answer}
            )

        return handle

    def methods(self) -> List[str]:
        return [call["method"] for call in self.calls]

    def client(self, config: Optional[ClientConfig] = None) -> RpcClient:
        rpc_client = RpcClient("https://node.test", config)
        rpc_client.client = httpx.AsyncClient(
            transport=httpx.MockTransport(self.handler())
        )
        return rpc_client


BLOCKHASH = base58.b58encode(bytes(range(1, 33))).decode()


class Test(unittest.IsolatedAsyncioTestCase):
    FAST = ClientConfig(transaction_wait_in_seconds=5.0, poll_interval=0.0)

    async def test_balance(self):
        node = FakeNode({"getBalance": [{"context": {"slot": 1}, "value": 2_000_000}]})
        client = node.client()
        key = Keypair.generate().public_key()

        self.assertEqual(await client.balance(key), 2_000_000)
        self.assertEqual(node.calls[0]["params"][0], str(key))
        self.assertEqual(node.calls[0]["jsonrpc"], "2.0")
        await client.close()

    async def test_default_config(self):
        first = RpcClient("https://node.test")
        second = RpcClient("https://node.test")
        self.assertIsNot(first.client_config, second.client_config)

        first.client_config.commitment = "finalized"
        self.assertEqual(second.client_config.commitment, "confirmed")
        self.assertEqual(second.client.timeout.read, 60.0)

        quick = RpcClient("https://node.test", ClientConfig(request_timeout=5.0))
        self.assertEqual(quick.client.timeout.read, 5.0)
        for client in [first, second, quick]:
            await client.close()

    async def test_account_info(self):
        owner = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
        node = FakeNode(
            {
                "getAccountInfo": [
                    {
                        "context": {"slot": 1},
                        "value": {
                            "lamports": 5,
                            "owner": owner,
                            "data": [base64.b64encode(b"ahoy").decode(), "base64"],
                            "executable": False,
                        },
                    },
                    {"context": {"slot": 2}, "value": None},
                ]
            }
        )
        client = node.client()
        key = Keypair.generate().public_key()

        info = await client.account_info(key)
        self.assertIsNotNone(info)
        self.assertEqual(info.data, b"ahoy")
        self.assertEqual(str(info.owner), owner)
        self.assertIsNone(await client.account_info(key))

    async def test_errors(self):
        node = FakeNode(
            {
                "getBalance": [
                    httpx.Response(429, text="Too many requests"),
                    {"error": {"code": -32602, "message": "Invalid param"}},
                ]
            }
        )
        client = node.client()
        key = Keypair.generate().public_key()

        with self.assertRaises(ApiError) as api_error:
            await client.balance(key)
        self.assertEqual(api_error.exception.status_code, 429)
        with self.assertRaises(RpcError) as rpc_error:
            await client.balance(key)
        self.assertEqual(rpc_error.exception.code, -32602)

    async def test_send_and_confirm(self):
        node = FakeNode(
            {
                "getLatestBlockhash": [
                    {"context": {"slot": 1}, "value": {"blockhash": BLOCKHASH}}
                ],
                "sendTransaction": ["sig"],
                "getSignatureStatuses": [
                    {"context": {"slot": 1}, "value": [None]},
                    {
                        "context": {"slot": 2},
                        "value": [{"err": None, "confirmationStatus": "processed"}],
                    },
                    {
                        "context": {"slot": 3},
                        "value": [{"err": None, "confirmationStatus": "confirmed"}],
                    },
                ],
            }
        )
        client = node.client(self.FAST)
        payer = Keypair.generate()

        signature = await client.send_and_confirm_transaction([], payer, [payer])
        self.assertEqual(signature, "sig")
        self.assertEqual(
            node.methods(),
            ["getLatestBlockhash", "sendTransaction"] + ["getSignatureStatuses"] * 3,
        )
        wire = base64.b64decode(node.calls[1]["params"][0])
        self.assertEqual(wire[0], 1)
        self.assertEqual(node.calls[1]["params"][1]["encoding"], "base64")

    async def test_preflight_rejection_carries_signature(self):
        node = FakeNode(
            {
                "getLatestBlockhash": [
                    {"context": {"slot": 1}, "value": {"blockhash": BLOCKHASH}}
                ],
                "sendTransaction": [
                    {
                        "error": {
                            "code": -32002,
                            "message": "Transaction simulation failed",
                            "data": {"logs": ["custom program error: 0x0"]},
                        }
                    }
                ],
            }
        )
        client = node.client(self.FAST)
        payer = Keypair.generate()

        with self.assertRaises(TransactionFailed) as context:
            await client.send_and_confirm_transaction([], payer, [payer])
        wire = base64.b64decode(node.calls[1]["params"][0])
        self.assertEqual(
            context.exception.signature, base58.b58encode(wire[1:65]).decode()
        )
        self.assertEqual(
            context.exception.error, {"logs": ["custom program error: 0x0"]}
        )
        self.assertIsInstance(context.exception.__cause__, RpcError)

    async def test_transaction_failed(self):
        node = FakeNode(
            {
                "getSignatureStatuses": [
                    {
                        "context": {"slot": 1},
                        "value": [
                            {
                                "err": {"InstructionError": [0, "Custom"]},
                                "confirmationStatus": "confirmed",
                            }
                        ],
                    }
                ]
            }
        )
        client = node.client(self.FAST)
        with self.assertRaises(TransactionFailed) as context:
            await client.wait_for_transaction("sig")
        self.assertEqual(context.exception.signature, "sig")

    async def test_transaction_timeout(self):
        node = FakeNode(
            {"getSignatureStatuses": [{"context": {"slot": 1}, "value": [None]}]}
        )
        client = node.client(
            ClientConfig(transaction_wait_in_seconds=0.0, poll_interval=0.0)
        )
        with self.assertRaises(TransactionTimeout):
            await client.wait_for_transaction("sig")
        self.assertEqual(node.methods(), ["getSignatureStatuses"])


if __name__ == "__main__":
    unittest.main()
