"""
Construction of the contract access layer.

build_context wires one accessor, cache, fetcher, resolver, rights
aggregator, service and registry together, plus the payment token when
one is configured. The resulting ChainContext is created
once at startup and passed to whoever needs it.
"""

import logging
from typing import Optional

from web3 import Web3

from healthchain import constants
from healthchain.cache import IdentifierCache, JsonFileStore
from healthchain.contract import DEFAULT_ABI_PATH, ContractAccessor, load_abi
from healthchain.documents import IpfsDocumentStore
from healthchain.fetcher import RecordFetcher
from healthchain.registry import RegistryService
from healthchain.resolver import RecordResolver
from healthchain.rights import RightsAggregator
from healthchain.service import PolicyService
from healthchain.payment_token import ERC20_ABI_PATH, PaymentToken
from healthchain.wallet import ChainSpec, LocalAccountWallet, ProviderWallet

logger = logging.getLogger(__name__)


class ChainContext:
    """Everything a caller needs to talk to the HealthPolicy contract"""

    def __init__(self, accessor, cache, documents=None, max_scan: int = constants.MAX_SCAN,
                 chain_spec: Optional[ChainSpec] = None, chain_id: Optional[int] = None, token=None):
        self.accessor = accessor
        self.cache = cache
        self.documents = documents
        self.chain_spec = chain_spec
        self.token = token
        self.fetcher = RecordFetcher(accessor)
        self.resolver = RecordResolver(accessor, self.fetcher, cache, max_scan=max_scan, chain_id=chain_id)
        self.rights = RightsAggregator(accessor, self.resolver, self.fetcher)
        self.service = PolicyService(accessor, self.resolver)
        self.registry = RegistryService(accessor)

    @property
    def wallet(self):
        return self.accessor.wallet

    def connect_wallet(self) -> Optional[str]:
        """
        Ask the wallet for its account and move it onto the configured chain.

        Returns the wallet address, or None when no wallet is configured.
        """
        wallet = self.wallet
        if wallet is None:
            return None
        if isinstance(wallet, ProviderWallet) and self.chain_spec is not None:
            wallet.switch_or_add_chain(self.chain_spec)
        address = wallet.address
        logger.info(f"Wallet connected: {address}")
        return address


def build_context(
    rpc_url: str = constants.RPC_URL,
    read_rpc_url: str = constants.READ_RPC_URL,
    contract_address: str = constants.CONTRACT_ADDRESS,
    wallet_rpc_url: str = constants.WALLET_RPC_URL,
    private_key: str = constants.PRIVATE_KEY,
    cache_path: str = constants.CACHE_PATH,
    ipfs_api_url: str = constants.IPFS_API_URL,
    abi_path: str = DEFAULT_ABI_PATH,
    max_scan: int = constants.MAX_SCAN,
    tx_timeout: int = constants.TX_TIMEOUT,
    chain_id: int = constants.CHAIN_ID,
    payment_token_address: str = constants.PAYMENT_TOKEN_ADDRESS,
) -> ChainContext:
    """
    Build a ChainContext from configuration.

    A wallet RPC URL takes precedence over a private key. Without either,
    the context is read-only and write calls raise RpcError. ``chain_id``
    namespaces the identifier cache, so cached ids stay usable while the
    node is unreachable. Without a payment token address, token calls are
    unavailable.

    Raises:
        ValueError: No contract address is configured
    """
    if not contract_address:
        raise ValueError("CONTRACT_ADDRESS is not configured")

    wallet = None
    if wallet_rpc_url:
        wallet = ProviderWallet.from_url(wallet_rpc_url)
        w3 = wallet.w3
    else:
        w3 = Web3(Web3.HTTPProvider(rpc_url))
        if private_key:
            wallet = LocalAccountWallet(private_key)

    # Always a separate endpoint for logs and scans
    read_w3 = Web3(Web3.HTTPProvider(read_rpc_url))

    accessor = ContractAccessor(
        w3,
        contract_address,
        load_abi(abi_path),
        read_w3=read_w3,
        wallet=wallet,
        tx_timeout=tx_timeout,
    )

    token = None
    if payment_token_address:
        token_accessor = ContractAccessor(
            w3,
            payment_token_address,
            load_abi(ERC20_ABI_PATH),
            read_w3=read_w3,
            wallet=wallet,
            tx_timeout=tx_timeout,
        )
        token = PaymentToken(token_accessor, accessor.contract_address)

    return ChainContext(
        accessor,
        IdentifierCache(JsonFileStore(cache_path)),
        documents=IpfsDocumentStore(ipfs_api_url),
        max_scan=max_scan,
        chain_spec=ChainSpec.from_constants(),
        chain_id=chain_id,
        token=token,
    )
