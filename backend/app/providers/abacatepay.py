"""AbacatePay PIX QR codes for BRL purchases."""
import logging
from typing import Any

import httpx
from pydantic import BaseModel
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.core.config import settings
from app.providers import ProviderError

logger = logging.getLogger(__name__)

PIX_EXPIRES_IN_SECONDS = 900


class PixQrCode(BaseModel):
    pix_id: str
    br_code: str
    br_code_base64: str | None = None


@retry(
    retry=retry_if_exception_type(httpx.TransportError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    reraise=True,
)
def _post(path: str, body: dict[str, Any]) -> dict[str, Any]:
    with httpx.Client(timeout=15.0) as client:
        response = client.post(
            f"{settings.ABACATEPAY_API_URL}{path}",
            json=body,
            headers={"Authorization": f"Bearer {settings.ABACATEPAY_API_KEY}"},
        )
        response.raise_for_status()
        return response.json()


def create_pix_qr_code(
    *, amount_cents: int, description: str, external_id: str
) -> PixQrCode:
    if not settings.ABACATEPAY_API_KEY:
        raise ProviderError("abacatepay", "ABACATEPAY_API_KEY is not set")
    try:
        payload = _post(
            "/pixQrCode/create",
            {
                "amount": amount_cents,
                "expiresIn": PIX_EXPIRES_IN_SECONDS,
                "description": description,
                "metadata": {"externalId": external_id},
            },
        )
    except httpx.HTTPStatusError as exc:
        logger.warning(
            "AbacatePay returned %s: %s", exc.response.status_code, exc.response.text
        )
        raise ProviderError("abacatepay", f"HTTP {exc.response.status_code}") from exc
    except httpx.HTTPError as exc:
        logger.warning("AbacatePay request failed: %s", exc)
        raise ProviderError("abacatepay", "request failed") from exc

    data = payload.get("data") or {}
    if not data.get("id") or not data.get("brCode"):
        raise ProviderError("abacatepay", f"unexpected response: {payload}")
    return PixQrCode(
        pix_id=data["id"], br_code=data["brCode"], br_code_base64=data.get("brCodeBase64")
    )
