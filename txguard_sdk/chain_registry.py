"""
ChainRegistry - the allow-list of networks a request may target.
"""
import logging
from typing import Dict, Any, Optional

from pydantic import BaseModel

from .config import NetworkConfig
from .endpoint_approval import (
    endpoint_risk_disclosure, is_secure_url, normalize_rpc_url, verify_endpoint_approval
)
from .exceptions import UnsupportedChain, UntrustedEndpoint
from .models import ALLOWED_CHAIN_IDS, ChainContext
from ._rate_limited_log import rate_limited_log

logger = logging.getLogger(__name__)


class NetworkInfo(BaseModel):
    """Metadata of an allow-listed network"""
    name: str
    chain_id: int
    rpc_url: str
    explorer_url: Optional[str] = None
    native_symbol: str = "AVAX"

    class Config:
        frozen = True


class EndpointContext(BaseModel):
    """An RPC endpoint accepted for one chain"""
    rpc_url: str
    chain_context: ChainContext
    trusted: bool
    approved_by: Optional[str] = None

    class Config:
        frozen = True


class ChainRegistry:
    """
    Holds the allow-list and per-network metadata.

    The allow-list is fixed; network definitions for any other chain id are
    ignored, so configuration can never widen it.
    """

    def __init__(
        self,
        networks: Optional[Dict[str, Dict[str, Any]]] = None,
        approval_secret: Optional[str] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Args:
            networks: Network definitions (defaults to the bundled networks.json)
            approval_secret: Secret for endpoint approvals (defaults to env)
            logger: Optional logger instance
        """
        self.logger = logger or logging.getLogger(__name__)
        self._approval_secret = approval_secret
        self._networks: Dict[int, NetworkInfo] = {}

        definitions = networks if networks is not None else NetworkConfig.load_networks()
        for name, definition in definitions.items():
            chain_id = definition.get("chainId")
            if chain_id not in ALLOWED_CHAIN_IDS:
                self.logger.warning(f"Ignoring network '{name}': chain {chain_id} is not allow-listed")
                continue
            self._networks[chain_id] = NetworkInfo(
                name=name,
                chain_id=chain_id,
                rpc_url=definition["rpc"],
                explorer_url=definition.get("explorer"),
                native_symbol=definition.get("nativeSymbol", "AVAX"),
            )

    def context_for(self, chain_id: int) -> ChainContext:
        """Unvalidated context for a chain id; may be Rejected"""
        return ChainContext.from_chain_id(chain_id)

    def validate(self, chain_id: int) -> ChainContext:
        """
        Validate a caller-supplied chain id.

        Returns:
            An allow-listed ChainContext

        Raises:
            UnsupportedChain: For any value outside the allow-list. There is
                no retry path.
        """
        if isinstance(chain_id, bool) or not isinstance(chain_id, int):
            rate_limited_log(f"Rejected non-integer chain id {chain_id!r}", logger_instance=self.logger)
            raise UnsupportedChain(f"Chain id must be an integer, got {chain_id!r}")

        context = ChainContext.from_chain_id(chain_id)
        if not context.allowlisted:
            rate_limited_log(f"Rejected unsupported chain id {chain_id}", logger_instance=self.logger)
            allowed = ", ".join(str(c) for c in sorted(ALLOWED_CHAIN_IDS))
            raise UnsupportedChain(f"Unsupported chain id {chain_id}; allowed: {allowed}")
        return context

    def network(self, chain_id: int) -> NetworkInfo:
        """
        Metadata for an allow-listed chain.

        Raises:
            UnsupportedChain: If the chain is not allow-listed or has no metadata
        """
        context = self.validate(chain_id)
        info = self._networks.get(context.chain_id)
        if info is None:
            raise UnsupportedChain(f"No network metadata configured for chain {chain_id}")
        return info

    def tx_url(self, chain_id: int, tx_hash: str) -> Optional[str]:
        """Explorer URL for a transaction hash, if the network has an explorer"""
        info = self.network(chain_id)
        if not info.explorer_url:
            return None
        if not tx_hash.startswith("0x"):
            tx_hash = "0x" + tx_hash
        return f"{info.explorer_url.rstrip('/')}/tx/{tx_hash}"

    def risk_disclosure_for(self, rpc_url: str, chain_id: int) -> str:
        """Text to show before asking for a custom endpoint acknowledgement"""
        return endpoint_risk_disclosure(rpc_url, chain_id)

    def validate_endpoint(
        self,
        rpc_url: str,
        chain_id: int,
        approval_token: Optional[str] = None,
        risk_acknowledged: bool = False
    ) -> EndpointContext:
        """
        Accept an RPC endpoint for a chain.

        Bundled endpoints are trusted. Any other endpoint is refused unless
        an out-of-band approval token for exactly this URL and chain is
        supplied and the caller acknowledged ``risk_disclosure_for``.

        Raises:
            UnsupportedChain: If the chain is not allow-listed
            UntrustedEndpoint: If the endpoint cannot be accepted
        """
        info = self.network(chain_id)
        context = self.validate(chain_id)

        if normalize_rpc_url(rpc_url) == normalize_rpc_url(info.rpc_url):
            return EndpointContext(rpc_url=info.rpc_url, chain_context=context, trusted=True)

        if not is_secure_url(rpc_url):
            rate_limited_log(f"Rejected insecure endpoint {rpc_url}", logger_instance=self.logger)
            raise UntrustedEndpoint(f"Endpoint {rpc_url} must use https://")

        if approval_token is None:
            rate_limited_log(f"Rejected unapproved endpoint {rpc_url}", logger_instance=self.logger)
            raise UntrustedEndpoint(
                f"Endpoint {rpc_url} is not a bundled endpoint for chain {chain_id} "
                "and no out-of-band approval was supplied"
            )

        if risk_acknowledged is not True:
            raise UntrustedEndpoint(f"Risk disclosure for endpoint {rpc_url} was not acknowledged")

        claims = verify_endpoint_approval(approval_token, rpc_url, chain_id, secret=self._approval_secret)
        self.logger.warning(f"Using approved custom endpoint {rpc_url} for chain {chain_id}")
        return EndpointContext(
            rpc_url=rpc_url,
            chain_context=context,
            trusted=False,
            approved_by=claims["sub"],
        )
