"""
IPFS document store for service-request reports.

Talks to the IPFS HTTP API directly with requests, which keeps working
across daemon versions where the ipfshttpclient protocol checks fail.
"""

import base64
import binascii
import logging

import requests

from healthchain import constants
from healthchain.exceptions import DocumentStoreError

logger = logging.getLogger(__name__)


class IpfsDocumentStore:
    def __init__(self, api_url: str = constants.IPFS_API_URL, timeout: int = 30):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def upload(self, data: bytes) -> str:
        """
        Add bytes to IPFS and pin them.

        Returns:
            str: The content address (CID)
        """
        try:
            response = requests.post(
                f"{self.api_url}/add",
                params={"pin": "true"},
                files={"file": data},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise DocumentStoreError(f"Failed to upload to IPFS: {e}") from e

        if response.status_code != 200:
            raise DocumentStoreError(f"Failed to upload to IPFS: {response.status_code} - {response.text}")

        cid = response.json().get("Hash")
        if not cid:
            raise DocumentStoreError("IPFS did not return a CID")
        logger.info(f"Stored {len(data)} bytes on IPFS as {cid}")
        return cid

    def upload_base64(self, encoded: str) -> str:
        """Upload a base64 payload, with or without a data: URL prefix"""
        if encoded.startswith("data:") and "," in encoded:
            encoded = encoded.split(",", 1)[1]
        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DocumentStoreError(f"Invalid base64 document: {e}") from e
        return self.upload(data)

    def fetch(self, cid: str) -> bytes:
        try:
            response = requests.post(f"{self.api_url}/cat", params={"arg": cid}, timeout=self.timeout)
        except requests.RequestException as e:
            raise DocumentStoreError(f"Failed to retrieve {cid} from IPFS: {e}") from e

        if response.status_code != 200:
            raise DocumentStoreError(
                f"Failed to retrieve {cid} from IPFS: {response.status_code} - {response.text}"
            )
        return response.content
