"""
Cloudflare API token health probe.

First tries an account-level call (the configured account, or the first
account the token can list). If that fails, falls back to
user/tokens/verify. A token that only passes the fallback is reported with
the caller's expected type, so narrowly scoped account tokens are not
flagged as mismatches.

Public API:
    TokenHealth
    check_token(settings, token, expected_type="account", transport=None) → TokenHealth
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from unified_ai.config import AISettings

logger = logging.getLogger(__name__)

API_BASE = "https://api.cloudflare.com/client/v4"


@dataclass
class TokenHealth:
    passed: bool
    reason: Optional[str] = None
    detected_type: Optional[str] = None  # "user" | "account" | "unknown"
    details: Any = None


class _ProbeError(Exception):
    pass


async def _get(client: httpx.AsyncClient, path: str, params: Optional[dict] = None) -> dict:
    response = await client.get(f"{API_BASE}{path}", params=params)
    try:
        data = response.json()
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {}
    if response.status_code >= 400 or not data.get("success", False):
        errors = data.get("errors") or response.reason_phrase
        raise _ProbeError(f"{response.status_code}: {errors}")
    return data.get("result")


async def check_token(
    settings: AISettings,
    token: str,
    expected_type: str = "account",
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> TokenHealth:
    if expected_type not in ("account", "user"):
        raise ValueError(f"expected_type must be 'account' or 'user', got '{expected_type}'")

    detected_type = None
    details = None
    failure_reason = None

    async with httpx.AsyncClient(
        timeout=settings.request_timeout,
        transport=transport,
        headers={"Authorization": f"Bearer {token}"},
    ) as client:
        try:
            if settings.cloudflare_account_id:
                details = await _get(client, f"/accounts/{settings.cloudflare_account_id}")
            else:
                details = await _get(client, "/accounts", params={"per_page": 1})
            detected_type = "account"
        except (_ProbeError, httpx.HTTPError) as exc:
            failure_reason = str(exc)
            logger.debug("Account-level token check failed: %s", exc)

        if detected_type is None:
            try:
                verify = await _get(client, "/user/tokens/verify") or {}
            except (_ProbeError, httpx.HTTPError) as exc:
                return TokenHealth(
                    passed=False,
                    reason=(
                        f"Validation failed. Account check error: [{failure_reason}]. "
                        f"User verify error: [{exc}]"
                    ),
                )

            if verify.get("status") != "active":
                return TokenHealth(
                    passed=False, reason=f"Token status: {verify.get('status')}", details=verify,
                )
            detected_type = "account" if expected_type == "account" else "user"
            details = {**verify, "note": "Validated via user.tokens.verify (likely narrow scope)"}

    if expected_type != detected_type:
        return TokenHealth(
            passed=False,
            reason=(
                f"Token valid but type mismatch. Expected '{expected_type}' "
                f"but detected '{detected_type}'."
            ),
            detected_type=detected_type,
            details=details,
        )
    return TokenHealth(passed=True, detected_type=detected_type, details=details)
