# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Off-chain storage for NFT JSON metadata.

The metadata account on chain only holds a URI; name, description and image of
an NFT live in a JSON document behind that URI. :class:`NftStorageClient`
uploads the document to nft.storage and returns the IPFS gateway URL built
from the content identifier it answers with.
"""

from __future__ import annotations

import json
import unittest
from typing import Any, Dict, List, Optional

import httpx
from typing_extensions import Protocol

from .metadata import Metadata
from .rpc_client import ApiError

DEFAULT_STORAGE_URL = "https://api.nft.storage"
IPFS_GATEWAY = "ipfs.nftstorage.link"


class StorageError(Exception):
    """The storage service accepted the request but reported a failure"""


class MetadataStorage(Protocol):
    async def upload(self, metadata: Dict[str, Any]) -> str:
        ...


def gateway_uri(cid: str) -> str:
    return f"https://{cid}.{IPFS_GATEWAY}/"


class NftStorageClient:
    """Uploads JSON documents to nft.storage.

    Examples:
        ::

            storage = NftStorageClient(api_token=os.environ["NFT_STORAGE_TOKEN"])
            uri = await storage.upload({"name": "Seven Seas", "symbol": "7SEAS"})
            await storage.close()
    """

    base_url: str
    client: httpx.AsyncClient

    def __init__(
        self,
        base_url: str = DEFAULT_STORAGE_URL,
        api_token: Optional[str] = None,
        http2: bool = True,
    ):
        self.base_url = base_url.rstrip("/")
        headers = {Metadata.CLIENT_HEADER: Metadata.get_client_header_val()}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self.client = httpx.AsyncClient(
            http2=http2,
            limits=httpx.Limits(),
            timeout=httpx.Timeout(60.0, pool=None),
            headers=headers,
        )

    async def close(self):
        await self.client.aclose()

    async def upload(self, metadata: Dict[str, Any]) -> str:
        """Store ``metadata`` and return its gateway URI.

        Raises:
            ApiError: On an HTTP status of 400 or above.
            StorageError: When the service answers ``ok: false``.
        """
        response = await self.client.post(
            f"{self.base_url}/upload",
            content=json.dumps(metadata).encode(),
            headers={"Content-Type": "application/json"},
        )
        if response.status_code >= 400:
            raise ApiError(response.text, response.status_code)
        body = response.json()
        if not body.get("ok"):
            raise StorageError(f"Upload failed: {body.get('error')}")
        return gateway_uri(body["value"]["cid"])


class Test(unittest.IsolatedAsyncioTestCase):
    def storage(self, handler) -> NftStorageClient:
        storage = NftStorageClient("https://storage.test/", api_token="secret")
        storage.client = httpx.AsyncClient(
            transport=httpx.MockTransport(handler), headers=storage.client.headers
        )
        return storage

    async def test_upload(self):
        requests: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"ok": True, "value": {"cid": "bafkrei"}})

        storage = self.storage(handler)
        uri = await storage.upload({"name": "Seven Seas", "symbol": "7SEAS"})

        self.assertEqual(uri, "https://bafkrei.ipfs.nftstorage.link/")
        self.assertEqual(str(requests[0].url), "https://storage.test/upload")
        self.assertEqual(requests[0].headers["Authorization"], "Bearer secret")
        self.assertEqual(
            json.loads(requests[0].content), {"name": "Seven Seas", "symbol": "7SEAS"}
        )
        await storage.close()

    async def test_errors(self):
        answers = [
            httpx.Response(503, text="gateway down"),
            httpx.Response(200, json={"ok": False, "error": {"name": "Quota"}}),
        ]
        storage = self.storage(lambda request: answers.pop(0))

        with self.assertRaises(ApiError) as context:
            await storage.upload({})
        self.assertEqual(context.exception.status_code, 503)
        with self.assertRaises(StorageError):
            await storage.upload({})


if __name__ == "__main__":
    unittest.main()
