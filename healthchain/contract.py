"""
Typed access to the deployed HealthPolicy contract.

ContractAccessor keeps two bindings of the same contract: one on the
wallet/primary provider (used for writes and ordinary reads) and one on a
fixed read-only endpoint (used for log queries and broad scans, so they are
not subject to the wallet's rate limits or visibility).
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional, Tuple

from web3 import Web3
from web3.logs import DISCARD

from healthchain.exceptions import RpcError, UserRejected
from healthchain.models import NetworkInfo
from healthchain.wallet import wrap_wallet_error

logger = logging.getLogger(__name__)

DEFAULT_ABI_PATH = os.path.join(os.path.dirname(__file__), "abi", "HealthPolicy.json")


def load_abi(abi_path: str = DEFAULT_ABI_PATH) -> List[Dict[str, Any]]:
    """
    Load a contract ABI from a build artifact.

    Accepts both a Hardhat artifact ({"abi": [...]}) and a bare ABI list.
    """
    with open(abi_path, "r") as f:
        artifact = json.load(f)
    if isinstance(artifact, dict):
        return artifact["abi"]
    return artifact


def function_signature(entry: Dict[str, Any]) -> str:
    """Canonical signature of an ABI function entry, e.g. getPolicy(uint256)"""
    types = ",".join(inp["type"] for inp in entry.get("inputs", []))
    return f"{entry['name']}({types})"


class ContractAccessor:
    """Reads and writes against the HealthPolicy contract."""

    def __init__(self, w3: Web3, contract_address: str, abi: List[Dict[str, Any]],
                 read_w3: Optional[Web3] = None, wallet=None, tx_timeout: int = 120):
        self.w3 = w3
        self.read_w3 = read_w3 or w3
        self.wallet = wallet
        self.tx_timeout = tx_timeout
        self.abi = abi
        self.contract_address = Web3.to_checksum_address(contract_address)

        self.contract = self.w3.eth.contract(address=self.contract_address, abi=abi)
        # Read-only binding for logs and scans
        self.read_contract = self.read_w3.eth.contract(address=self.contract_address, abi=abi)

        self._signatures = {
            function_signature(entry) for entry in abi if entry.get("type") == "function"
        }
        self._chain_id = None

    def has_function(self, signature: str) -> bool:
        """True when the ABI declares the exact function signature"""
        return signature in self._signatures

    def chain_id(self) -> int:
        if self._chain_id is None:
            try:
                self._chain_id = int(self.w3.eth.chain_id)
            except Exception as e:
                raise RpcError(f"Could not read chain id: {e}", method="eth_chainId") from e
        return self._chain_id

    def network_info(self) -> NetworkInfo:
        try:
            return NetworkInfo(
                chain_id=self.chain_id(),
                block_number=int(self.w3.eth.block_number),
                is_connected=True,
            )
        except RpcError:
            raise
        except Exception as e:
            raise RpcError(f"Could not read network info: {e}", method="eth_blockNumber") from e

    def _function(self, method: str, args: tuple, read_only: bool = False):
        contract = self.read_contract if read_only else self.contract
        if "(" in method:
            return contract.get_function_by_signature(method)(*args)
        return contract.functions[method](*args)

    def call_read(self, method: str, *args, read_only: bool = False):
        """
        Call a view function and return the ABI-decoded value.

        Args:
            method: Function name, or full signature for overloaded functions
            args: Function arguments
            read_only: Use the read-only endpoint instead of the wallet's

        Raises:
            RpcError: The function is missing from the ABI, the call reverted,
                or the node could not be reached
        """
        try:
            return self._function(method, args, read_only=read_only).call()
        except Exception as e:
            raise RpcError(f"{method} failed: {e}", method=method) from e

    def call_write(self, method: str, *args, value: int = 0) -> Tuple[str, Any]:
        """
        Send a state-changing call through the wallet and wait for one confirmation.

        Returns:
            (transaction hash hex, receipt)

        Raises:
            UserRejected: The wallet owner declined the transaction
            RpcError: Building, sending or mining the transaction failed
        """
        if self.wallet is None:
            raise RpcError("No wallet available for signing transactions", method=method)

        try:
            tx = self._function(method, args).build_transaction({
                "from": self.wallet.address,
                "value": value,
            })
        except (RpcError, UserRejected):
            raise
        except Exception as e:
            raise wrap_wallet_error(e, method) from e

        tx_hash = self.wallet.send_transaction(self.w3, tx)
        tx_hash_hex = Web3.to_hex(tx_hash)
        logger.info(f"{method} sent: {tx_hash_hex}")

        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.tx_timeout)
        except Exception as e:
            raise RpcError(f"{method} was not confirmed: {e}", method=method) from e

        if receipt.get("status") == 0:
            raise RpcError(f"{method} reverted in transaction {tx_hash_hex}", method=method)

        logger.info(f"{method} confirmed in block {receipt.get('blockNumber')}, gas used {receipt.get('gasUsed')}")
        return tx_hash_hex, receipt

    def events_from_receipt(self, event_name: str, receipt) -> List[Dict[str, Any]]:
        """Decoded args of every ``event_name`` log in the receipt"""
        try:
            event = self.contract.events[event_name]()
            return [dict(log["args"]) for log in event.process_receipt(receipt, errors=DISCARD)]
        except Exception as e:
            raise RpcError(f"Could not decode {event_name} events: {e}", method=event_name) from e

    def query_events(self, event_name: str, argument_filters: Optional[Dict[str, Any]] = None,
                     from_block: int = 0, to_block="latest") -> List[Dict[str, Any]]:
        """Decoded args of matching logs, queried on the read-only endpoint"""
        try:
            event = self.read_contract.events[event_name]()
            logs = event.get_logs(
                argument_filters=argument_filters,
                from_block=from_block,
                to_block=to_block,
            )
            return [dict(log["args"]) for log in logs]
        except Exception as e:
            raise RpcError(f"{event_name} log query failed: {e}", method=event_name) from e
