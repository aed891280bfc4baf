"""
Out-of-band approvals for custom RPC endpoints.

An approval is an HS256 JWT issued by an operator for exactly one RPC URL
and chain id. Verification is strict in every environment: there is no
unverified or development fallback.
"""
import time
import logging
import urllib.parse
from typing import Optional, Dict, Any

import jwt

from .config import get_endpoint_approval_secret
from .exceptions import UntrustedEndpoint

logger = logging.getLogger(__name__)

APPROVAL_ALGORITHM = "HS256"
REQUIRED_CLAIMS = ["rpc_url", "chain_id", "sub", "exp"]
DEFAULT_APPROVAL_TTL = 3600


def normalize_rpc_url(rpc_url: str) -> str:
    """Lower-case scheme and host, drop a trailing slash"""
    parsed = urllib.parse.urlparse(rpc_url.strip())
    path = parsed.path.rstrip("/")
    return urllib.parse.urlunparse(
        (parsed.scheme.lower(), parsed.netloc.lower(), path, "", parsed.query, "")
    )


def is_secure_url(rpc_url: str) -> bool:
    """https, or plain http to localhost / 127.0.0.1"""
    parsed = urllib.parse.urlparse(rpc_url)
    host = parsed.netloc.split(":")[0] if parsed.netloc else ""
    if host in ("localhost", "127.0.0.1"):
        return parsed.scheme in ("http", "https")
    return parsed.scheme == "https"


def endpoint_risk_disclosure(rpc_url: str, chain_id: int) -> str:
    """Text a person must read before a custom endpoint is used"""
    return (
        f"You are about to use a custom RPC endpoint ({rpc_url}) for chain {chain_id}. "
        "A custom endpoint can return false balances, false simulation results and "
        "false receipts, and can observe every transaction you submit before it is mined. "
        "Simulation passing through this endpoint is only as trustworthy as its operator."
    )


def issue_endpoint_approval(
    rpc_url: str,
    chain_id: int,
    approver: str,
    secret: str,
    ttl_seconds: int = DEFAULT_APPROVAL_TTL
) -> str:
    """
    Issue an approval token for one endpoint.

    Args:
        rpc_url: Endpoint being approved
        chain_id: Chain the endpoint is approved for
        approver: Identifier of the person approving
        secret: Shared HS256 secret
        ttl_seconds: Lifetime of the approval

    Returns:
        Encoded JWT
    """
    if not secret:
        raise ValueError("secret must be provided")
    now = int(time.time())
    claims = {
        "rpc_url": normalize_rpc_url(rpc_url),
        "chain_id": chain_id,
        "sub": approver,
        "iat": now,
        "exp": now + ttl_seconds,
    }
    return jwt.encode(claims, secret, algorithm=APPROVAL_ALGORITHM)


def verify_endpoint_approval(
    token: str,
    rpc_url: str,
    chain_id: int,
    secret: Optional[str] = None
) -> Dict[str, Any]:
    """
    Verify an approval token for a specific endpoint and chain.

    Args:
        token: Encoded JWT
        rpc_url: Endpoint the caller wants to use
        chain_id: Chain the caller wants to use it for
        secret: Shared secret (defaults to TXGUARD_ENDPOINT_APPROVAL_SECRET)

    Returns:
        Decoded claims

    Raises:
        UntrustedEndpoint: If the token is missing, malformed, expired,
            unsigned, or issued for another endpoint or chain
    """
    secret = secret or get_endpoint_approval_secret()
    if not secret:
        raise UntrustedEndpoint(
            f"No endpoint approval secret configured; refusing custom endpoint {rpc_url}"
        )
    if not token:
        raise UntrustedEndpoint(f"No approval token supplied for custom endpoint {rpc_url}")

    try:
        header = jwt.get_unverified_header(token)
    except jwt.DecodeError:
        raise UntrustedEndpoint("Approval token is not a valid JWT")

    algorithm = header.get("alg", "")
    if algorithm != APPROVAL_ALGORITHM:
        logger.warning(f"Rejected endpoint approval with algorithm {algorithm!r}")
        raise UntrustedEndpoint(f"Approval token must use {APPROVAL_ALGORITHM}, got {algorithm!r}")

    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[APPROVAL_ALGORITHM],
            options={"require": REQUIRED_CLAIMS},
        )
    except jwt.ExpiredSignatureError:
        raise UntrustedEndpoint("Approval token has expired")
    except jwt.InvalidTokenError as e:
        raise UntrustedEndpoint(f"Approval token rejected: {e}")

    if claims["rpc_url"] != normalize_rpc_url(rpc_url):
        raise UntrustedEndpoint(f"Approval token was issued for {claims['rpc_url']}, not {rpc_url}")
    if claims["chain_id"] != chain_id:
        raise UntrustedEndpoint(f"Approval token was issued for chain {claims['chain_id']}, not {chain_id}")

    logger.info(f"Custom endpoint {rpc_url} approved by {claims['sub']} for chain {chain_id}")
    return claims
