"""
Wallet boundary for signing and sending contract transactions.

Two wallets share the same surface (an ``address`` and
``send_transaction(w3, tx)``):

* ProviderWallet talks to an EIP-1193 style wallet over JSON-RPC and lets
  the wallet sign. Its owner may decline any prompt.
* LocalAccountWallet signs with a private key held by this process.

Error code 4001 from a wallet always surfaces as UserRejected; any other
failure surfaces as RpcError.
"""

import logging
from typing import Any, Dict, List, Optional

from eth_account import Account
from pydantic import BaseModel
from web3 import Web3

from healthchain import constants
from healthchain.exceptions import RpcError, UserRejected

logger = logging.getLogger(__name__)

USER_REJECTED_CODE = 4001
METHOD_NOT_FOUND_CODE = -32601
# Codes wallets use when asked to switch to a chain they do not know
UNRECOGNIZED_CHAIN_CODES = (4902, -32603)


def rpc_error_code(error: Exception) -> Optional[int]:
    """Extract the JSON-RPC error code carried by a web3 exception, if any."""
    response = getattr(error, "rpc_response", None)
    if isinstance(response, dict) and isinstance(response.get("error"), dict):
        code = response["error"].get("code")
        if code is not None:
            return code
    for arg in getattr(error, "args", ()):
        if isinstance(arg, dict) and "code" in arg:
            return arg["code"]
    return getattr(error, "code", None)


def is_user_rejection(error: Exception) -> bool:
    if rpc_error_code(error) == USER_REJECTED_CODE:
        return True
    message = str(error).lower()
    return "user rejected" in message or "user denied" in message


def wrap_wallet_error(error: Exception, method: str):
    """Translate a raw wallet/node failure into the healthchain taxonomy."""
    if isinstance(error, (RpcError, UserRejected)):
        return error
    if is_user_rejection(error):
        return UserRejected(str(error))
    return RpcError(str(error), method=method, code=rpc_error_code(error))


class ChainSpec(BaseModel):
    """Chain parameters handed to a wallet when it has to add the network"""
    chain_id_hex: str
    chain_name: str
    rpc_urls: List[str]
    block_explorer_urls: List[str] = []
    currency_name: str = "ETH"
    currency_symbol: str = "ETH"
    currency_decimals: int = 18

    @classmethod
    def from_constants(cls) -> "ChainSpec":
        return cls(
            chain_id_hex=constants.CHAIN_ID_HEX,
            chain_name=constants.CHAIN_NAME,
            rpc_urls=[constants.RPC_URL],
            block_explorer_urls=[constants.BLOCK_EXPLORER] if constants.BLOCK_EXPLORER else [],
            currency_name=constants.NATIVE_CURRENCY_NAME,
            currency_symbol=constants.NATIVE_CURRENCY_SYMBOL,
            currency_decimals=constants.NATIVE_CURRENCY_DECIMALS,
        )

    def to_wallet_params(self) -> Dict[str, Any]:
        """Parameters for wallet_addEthereumChain"""
        return {
            "chainId": self.chain_id_hex,
            "chainName": self.chain_name,
            "rpcUrls": self.rpc_urls,
            "blockExplorerUrls": self.block_explorer_urls,
            "nativeCurrency": {
                "name": self.currency_name,
                "symbol": self.currency_symbol,
                "decimals": self.currency_decimals,
            },
        }


class ProviderWallet:
    """Wallet reached over JSON-RPC; the wallet holds the keys and signs."""

    def __init__(self, w3: Web3, address: Optional[str] = None):
        self.w3 = w3
        self._address = address

    @classmethod
    def from_url(cls, url: str) -> "ProviderWallet":
        return cls(Web3(Web3.HTTPProvider(url)))

    def _request(self, method: str, params: list):
        try:
            return self.w3.manager.request_blocking(method, params)
        except Exception as e:
            raise wrap_wallet_error(e, method) from e

    @property
    def address(self) -> str:
        if self._address is None:
            accounts = self.request_accounts()
            if not accounts:
                raise RpcError("Wallet exposes no accounts", method="eth_requestAccounts")
            self._address = Web3.to_checksum_address(accounts[0])
        return self._address

    def request_accounts(self) -> List[str]:
        """Ask the wallet for its accounts, prompting the owner when needed."""
        try:
            accounts = self._request("eth_requestAccounts", [])
        except RpcError as e:
            # Plain nodes only know eth_accounts
            if e.code != METHOD_NOT_FOUND_CODE:
                raise
            accounts = self._request("eth_accounts", [])
        return list(accounts or [])

    def request_chain_id(self) -> str:
        chain_id = self._request("eth_chainId", [])
        if isinstance(chain_id, int):
            return hex(chain_id)
        return str(chain_id).lower()

    def switch_or_add_chain(self, chain_spec: ChainSpec) -> bool:
        """
        Move the wallet onto the configured chain.

        Adds the chain when the wallet does not know it. Returns False when
        the wallet refused for any reason other than its owner declining.
        """
        try:
            self._request("wallet_switchEthereumChain", [{"chainId": chain_spec.chain_id_hex}])
            return True
        except RpcError as e:
            if e.code not in UNRECOGNIZED_CHAIN_CODES:
                logger.warning(f"Could not switch wallet to {chain_spec.chain_name}: {e}")
                return False

        try:
            self._request("wallet_addEthereumChain", [chain_spec.to_wallet_params()])
            return True
        except RpcError as e:
            logger.warning(f"Could not add {chain_spec.chain_name} to the wallet: {e}")
            return False

    def send_transaction(self, w3: Web3, tx: Dict[str, Any]):
        """Send through the wallet's own endpoint; ``w3`` only built the transaction."""
        tx = dict(tx)
        tx.setdefault("from", self.address)
        try:
            return self.w3.eth.send_transaction(tx)
        except Exception as e:
            raise wrap_wallet_error(e, "eth_sendTransaction") from e


class LocalAccountWallet:
    """Wallet backed by a private key held in this process."""

    def __init__(self, private_key: str):
        self.account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self.account.address

    def send_transaction(self, w3: Web3, tx: Dict[str, Any]):
        tx = dict(tx)
        tx.setdefault("from", self.address)
        try:
            if "nonce" not in tx:
                tx["nonce"] = w3.eth.get_transaction_count(self.address, "pending")
            signed_tx = self.account.sign_transaction(tx)
            return w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        except Exception as e:
            raise wrap_wallet_error(e, "eth_sendRawTransaction") from e
