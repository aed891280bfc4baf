"""
Network configuration for the txguard SDK.
"""
import os
import json
import logging
import importlib.resources
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

ENDPOINT_APPROVAL_SECRET_ENV = "TXGUARD_ENDPOINT_APPROVAL_SECRET"
RECEIPT_TIMEOUT_ENV = "TXGUARD_RECEIPT_TIMEOUT"
DEFAULT_RECEIPT_TIMEOUT = 120


class NetworkConfig:
    """Access to the bundled networks.json"""

    _networks_cache: Optional[Dict[str, Dict[str, Any]]] = None

    @classmethod
    def load_networks(cls) -> Dict[str, Dict[str, Any]]:
        """
        Load network definitions, caching them after the first read.

        Returns:
            Mapping of network name to network definition
        """
        if cls._networks_cache is not None:
            return cls._networks_cache

        resource = importlib.resources.files("txguard_sdk").joinpath("networks.json")
        with resource.open("r", encoding="utf-8") as f:
            cls._networks_cache = json.load(f)
        logger.debug(f"Loaded {len(cls._networks_cache)} network definitions")
        return cls._networks_cache

    @classmethod
    def get_network(cls, network: str) -> Dict[str, Any]:
        """
        Get a network definition by name.

        Raises:
            ValueError: If the network is not defined
        """
        networks = cls.load_networks()
        if network not in networks:
            available = ", ".join(sorted(networks))
            raise ValueError(f"Unknown network '{network}'. Available networks: {available}")
        return networks[network]

    @classmethod
    def get_network_name(cls, chain_id: int) -> Optional[str]:
        """Name of the network definition for a chain id, if any"""
        for name, definition in cls.load_networks().items():
            if definition.get("chainId") == chain_id:
                return name
        return None

    @classmethod
    def get_rpc_url(cls, network: str, override: Optional[str] = None) -> str:
        """
        RPC URL for a network.

        Precedence: explicit override, then ``<NETWORK>_RPC_URL`` environment
        variable, then the bundled URL. Only the bundled URL is trusted by
        the chain registry; anything else still needs an endpoint approval.
        """
        if override:
            return override
        env_var = network.upper().replace("-", "_") + "_RPC_URL"
        env_value = os.environ.get(env_var)
        if env_value:
            return env_value
        return cls.get_network(network)["rpc"]

    @classmethod
    def get_chain_id(cls, network: str) -> int:
        return int(cls.get_network(network)["chainId"])

    @classmethod
    def get_explorer_url(cls, network: str) -> Optional[str]:
        return cls.get_network(network).get("explorer")


def get_endpoint_approval_secret() -> Optional[str]:
    """Secret used to verify out-of-band endpoint approvals"""
    return os.environ.get(ENDPOINT_APPROVAL_SECRET_ENV)


def get_receipt_timeout() -> int:
    """Seconds to wait for a transaction receipt"""
    raw = os.environ.get(RECEIPT_TIMEOUT_ENV)
    if not raw:
        return DEFAULT_RECEIPT_TIMEOUT
    try:
        timeout = int(raw)
    except ValueError:
        logger.warning(f"Invalid {RECEIPT_TIMEOUT_ENV}={raw!r}, using {DEFAULT_RECEIPT_TIMEOUT}")
        return DEFAULT_RECEIPT_TIMEOUT
    if timeout <= 0:
        logger.warning(f"Non-positive {RECEIPT_TIMEOUT_ENV}={raw!r}, using {DEFAULT_RECEIPT_TIMEOUT}")
        return DEFAULT_RECEIPT_TIMEOUT
    return timeout
