"""
Constants for the health insurance contract client.

This module defines the network, contract, wallet and storage settings used
throughout the application. Every value can be overridden from the
environment or a .env file.
"""

import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Network
RPC_URL = os.getenv("RPC_URL", "https://sepolia.base.org")
READ_RPC_URL = os.getenv("READ_RPC_URL", RPC_URL)
CHAIN_ID_HEX = os.getenv("CHAIN_ID_HEX", "0x14A34")  # Base Sepolia
CHAIN_ID = int(CHAIN_ID_HEX, 16)
CHAIN_NAME = os.getenv("CHAIN_NAME", "Base Sepolia")
BLOCK_EXPLORER = os.getenv("BLOCK_EXPLORER", "https://sepolia.basescan.org/")
NATIVE_CURRENCY_NAME = os.getenv("NATIVE_CURRENCY_NAME", "ETH")
NATIVE_CURRENCY_SYMBOL = os.getenv("NATIVE_CURRENCY_SYMBOL", "ETH")
NATIVE_CURRENCY_DECIMALS = int(os.getenv("NATIVE_CURRENCY_DECIMALS", "18"))

# HealthPolicy contract address
CONTRACT_ADDRESS = os.getenv("CONTRACT_ADDRESS", "")

# ERC20 token the contract settles payments in
PAYMENT_TOKEN_ADDRESS = os.getenv("PAYMENT_TOKEN_ADDRESS", "")

# Wallet: either a JSON-RPC wallet endpoint or a local private key
WALLET_RPC_URL = os.getenv("WALLET_RPC_URL", "")
PRIVATE_KEY = os.getenv("PRIVATE_KEY", "")

# Seconds to wait for a transaction receipt
TX_TIMEOUT = int(os.getenv("TX_TIMEOUT", "120"))

# Maximum number of records walked by the backward counter scan
MAX_SCAN = int(os.getenv("MAX_SCAN", "100"))

# Local identifier cache
CACHE_PATH = os.getenv("CACHE_PATH", os.path.join("local_storage", "identifier_cache.json"))

# IPFS HTTP API
IPFS_API_URL = os.getenv("IPFS_API_URL", "http://localhost:5001/api/v0")
