"""Caller identity resolution.

Authentication happens upstream (API gateway / auth proxy). It forwards the
resolved account in the ``X-Account-ID`` header; the value is trusted as-is.
"""

from fastapi import Header

from app.core.exceptions import UnauthorizedError
from app.core.logging import account_id_ctx

ACCOUNT_HEADER = "X-Account-ID"


async def get_account_id(
    x_account_id: str | None = Header(
        None,
        alias=ACCOUNT_HEADER,
        description="Account resolved by the authentication gateway.",
    ),
) -> str:
    """Resolve the calling account.

    Args:
        x_account_id: Account identifier forwarded by the gateway.

    Returns:
        The account identifier scoping every query of the request.

    Raises:
        UnauthorizedError: If no account was forwarded.
    """
    account_id = (x_account_id or "").strip()
    if not account_id:
        raise UnauthorizedError(f"Missing {ACCOUNT_HEADER} header")
    account_id_ctx.set(account_id)
    return account_id
