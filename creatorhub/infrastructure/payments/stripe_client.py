"""
Minimal Stripe REST client (requests).

Only the call the engine needs: retrieve a Connect account's capability flags.
Every call carries a bounded timeout; retries are the caller's business.
"""
import logging

import requests

from creatorhub.config import get_settings

logger = logging.getLogger(__name__)


class PaymentProviderError(RuntimeError):
    """Stripe could not be reached or rejected the request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StripeClient:
    def __init__(
        self,
        secret_key: str | None = None,
        api_base: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        settings = get_settings()
        self.secret_key = secret_key if secret_key is not None else settings.STRIPE_SECRET_KEY
        self.api_base = (api_base or settings.STRIPE_API_BASE).rstrip("/")
        self.timeout = timeout or settings.STRIPE_TIMEOUT_SECONDS
        self.http = session or requests.Session()

    def _request(self, method: str, path: str, data: dict | None = None) -> dict:
        if not self.secret_key:
            raise PaymentProviderError("STRIPE_SECRET_KEY is not configured")
        url = f"{self.api_base}{path}"
        try:
            resp = self.http.request(
                method,
                url,
                data=data,
                auth=(self.secret_key, ""),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("Stripe %s %s failed: %s", method, path, e)
            raise PaymentProviderError(f"Stripe request failed: {e}") from e

        if resp.status_code >= 400:
            try:
                message = resp.json().get("error", {}).get("message") or resp.text
            except ValueError:
                message = resp.text
            logger.error("Stripe %s %s -> HTTP %d: %s", method, path, resp.status_code, message)
            raise PaymentProviderError(message, status_code=resp.status_code)
        return resp.json()

    def retrieve_account(self, account_id: str) -> dict:
        """Return {details_submitted, charges_enabled, payouts_enabled} for a Connect account."""
        acct = self._request("GET", f"/v1/accounts/{account_id}")
        return {
            "id": acct.get("id", account_id),
            "details_submitted": bool(acct.get("details_submitted")),
            "charges_enabled": bool(acct.get("charges_enabled")),
            "payouts_enabled": bool(acct.get("payouts_enabled")),
        }
