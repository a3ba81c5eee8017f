"""
Network configuration for USDC payments.

Only one network is active at a time (settings.NETWORK). A network may be
named by its key ("base-sepolia") or its CAIP-2 id ("eip155:84532"); any other
name is a configuration error.
"""

from decimal import Decimal
from typing import Optional

from app.core.config import settings
from app.core.errors import ConfigurationError

NETWORKS = {
    "base-sepolia": {
        "chain_id": 84532,
        "caip2": "eip155:84532",
        "usdc": "0x036CbD53842c5426634e7929541eC2318f3dCF7e",
        "rpc_url": "https://sepolia.base.org",
    },
    "base": {
        "chain_id": 8453,
        "caip2": "eip155:8453",
        "usdc": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        "rpc_url": "https://mainnet.base.org",
    },
}

# USDC EIP-712 domain
USDC_NAME = "USDC"
USDC_VERSION = "2"
USDC_DECIMALS = 6


def find_network_name(name: Optional[str]) -> Optional[str]:
    """Network key for a key or CAIP-2 id, None when unknown."""
    if not name:
        return None
    key = name.strip().lower()
    if key in NETWORKS:
        return key
    for network_name, network in NETWORKS.items():
        if network["caip2"] == key:
            return network_name
    return None


def get_network_name(name: str | None = None) -> str:
    name = name or settings.NETWORK
    network_name = find_network_name(name)
    if network_name is None:
        raise ConfigurationError(f"Unknown network {name!r}; expected one of {', '.join(NETWORKS)}")
    return network_name


def check_network() -> None:
    """Fail at boot rather than pay out on a network nobody configured."""
    get_network_name()


def _network(name: str | None = None) -> dict:
    return NETWORKS[get_network_name(name)]


def get_network_id(name: str | None = None) -> str:
    """CAIP-2 identifier recorded on payment records, e.g. eip155:84532."""
    return _network(name)["caip2"]


def get_chain_id(name: str | None = None) -> int:
    return _network(name)["chain_id"]


def get_usdc_address(name: str | None = None) -> str:
    return _network(name)["usdc"]


def get_rpc_url(name: str | None = None) -> str:
    """RPC_URL when set, else the public endpoint of the network."""
    return settings.RPC_URL or _network(name)["rpc_url"]


def usd_to_atomic(amount: Decimal) -> int:
    """Convert a USD amount to USDC base units (6 decimals)."""
    return int((amount * (Decimal(10) ** USDC_DECIMALS)).to_integral_value())
