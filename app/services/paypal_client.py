# app/services/paypal_client.py
import uuid
from decimal import Decimal

import requests
from redis.exceptions import RedisError
from requests import RequestException

from app.domain.errors import PaymentProviderError
from app.domain.pricing import to_money
from app.domain.schemas import CheckoutOrder, CaptureResult
from app.services.token_cache import TokenCache
from app.utils.retry import http_retry
from app.utils.settings import (
    PAYPAL_API_URL,
    PAYPAL_CLIENT_ID,
    PAYPAL_CLIENT_SECRET,
    PAYPAL_TIMEOUT,
    SERVER_URL,
)
from app.utils.logging import get_logger

logger = get_logger(__name__)

TOKEN_CACHE_KEY = "paypal:access_token"
# refresh a minute before PayPal expires the token
TOKEN_EXPIRY_MARGIN = 60


class PaypalClient:
    """
    Thin client for the PayPal REST API (orders v2).

    - access token via client credentials, cached in Redis
    - create checkout order / capture / verify webhook signature
    - transport errors retried by tenacity, anything left over becomes
      PaymentProviderError
    """

    def __init__(
        self,
        base_url: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        token_cache: TokenCache | None = None,
        timeout: int = PAYPAL_TIMEOUT,
    ):
        self.base_url = (base_url or PAYPAL_API_URL).rstrip("/")
        self.client_id = client_id if client_id is not None else PAYPAL_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else PAYPAL_CLIENT_SECRET
        self.token_cache = token_cache
        self.timeout = timeout

    # ------------------------------------------------------------------
    # public operations
    # ------------------------------------------------------------------
    def create_checkout_order(self, reference_id: str, amount: Decimal, currency: str) -> CheckoutOrder:
        body = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": reference_id,
                    "amount": {
                        "currency_code": currency,
                        "value": f"{to_money(amount):.2f}",
                    },
                }
            ],
            "application_context": {
                "return_url": f"{SERVER_URL}/orders/confirm",
                "cancel_url": f"{SERVER_URL}/orders/cancel",
            },
        }
        data = self._call("create order", "/v2/checkout/orders", body)

        approval_url = next(
            (link.get("href") for link in data.get("links", []) if link.get("rel") == "approve"),
            None,
        )
        if not data.get("id") or not approval_url:
            raise PaymentProviderError("PayPal approval URL not found")

        logger.info(f"PayPal order {data['id']} created for reference {reference_id}")
        return CheckoutOrder(provider_order_id=data["id"], approval_url=approval_url)

    def capture_order(self, provider_order_id: str) -> CaptureResult:
        data = self._call(
            "capture",
            f"/v2/checkout/orders/{provider_order_id}/capture",
            {},
            request_id=f"capture-{provider_order_id}",
        )
        payer = data.get("payer") or {}
        logger.info(f"PayPal order {provider_order_id} captured with status {data.get('status')}")
        return CaptureResult(
            payment_id=data.get("id") or provider_order_id,
            status=data.get("status") or "UNKNOWN",
            payer_email=payer.get("email_address"),
            update_time=data.get("update_time"),
        )

    def verify_webhook_signature(self, headers: dict, event: dict, webhook_id: str) -> bool:
        h = {k.lower(): v for k, v in (headers or {}).items()}
        body = {
            "auth_algo": h.get("paypal-auth-algo"),
            "cert_url": h.get("paypal-cert-url"),
            "transmission_id": h.get("paypal-transmission-id"),
            "transmission_sig": h.get("paypal-transmission-sig"),
            "transmission_time": h.get("paypal-transmission-time"),
            "webhook_id": webhook_id,
            "webhook_event": event,
        }
        data = self._call("verify webhook", "/v1/notifications/verify-webhook-signature", body)
        return data.get("verification_status") == "SUCCESS"

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------
    def _call(self, what: str, path: str, body: dict, request_id: str | None = None) -> dict:
        # one request id per logical call, so tenacity retries are de-duplicated by PayPal
        request_id = request_id or str(uuid.uuid4())
        try:
            token = self._access_token()
            return self._post(path, body, token, request_id)
        except RequestException as e:
            logger.error(f"PayPal {what} failed: {e}")
            raise PaymentProviderError(f"PayPal {what} failed") from e

    @http_retry()
    def _post(self, path: str, body: dict, token: str, request_id: str) -> dict:
        url = f"{self.base_url}{path}"
        logger.info(f"PaypalClient POST {url}")

        resp = requests.post(
            url,
            json=body,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
                "PayPal-Request-Id": request_id,
            },
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()

    def _access_token(self) -> str:
        cached = self._cached_token()
        if cached:
            return cached

        data = self._fetch_token()
        token = data["access_token"]
        ttl = int(data.get("expires_in", 0)) - TOKEN_EXPIRY_MARGIN
        if self.token_cache is not None and ttl > 0:
            try:
                self.token_cache.set(TOKEN_CACHE_KEY, token, ttl)
            except RedisError as e:
                logger.warning(f"Could not cache PayPal token: {e}")
        return token

    def _cached_token(self) -> str | None:
        if self.token_cache is None:
            return None
        try:
            return self.token_cache.get(TOKEN_CACHE_KEY)
        except RedisError as e:
            logger.warning(f"Token cache unavailable, fetching a fresh PayPal token: {e}")
            return None

    @http_retry()
    def _fetch_token(self) -> dict:
        resp = requests.post(
            f"{self.base_url}/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            auth=(self.client_id, self.client_secret),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()
