# parkingmate/services/recaptcha_service.py
"""
Bot verification via Google reCAPTCHA siteverify.

Endpoint: POST https://www.google.com/recaptcha/api/siteverify
Every call is bounded by RECAPTCHA_TIMEOUT_SECONDS. A timeout or transport
error counts as a failed verification; nothing is retried.
In development with no secret configured, verification is skipped.
"""

from dataclasses import dataclass
from typing import Optional

import httpx

from parkingmate.config import settings
from parkingmate.errors import VerificationUnavailableError
from parkingmate.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class VerificationResult:
    success: bool
    score: Optional[float] = None
    error: Optional[str] = None


class RecaptchaVerifier:
    def __init__(self, secret_key: Optional[str] = None, verify_url: Optional[str] = None,
                 timeout: Optional[float] = None, min_score: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.secret_key = secret_key if secret_key is not None else settings.RECAPTCHA_SECRET_KEY
        self.verify_url = verify_url or settings.RECAPTCHA_VERIFY_URL
        self.timeout = timeout or settings.RECAPTCHA_TIMEOUT_SECONDS
        self.min_score = min_score if min_score is not None else settings.RECAPTCHA_MIN_SCORE
        self._transport = transport

    async def verify(self, token: str, client_ip: Optional[str] = None) -> VerificationResult:
        if not self.secret_key:
            if not settings.is_production:
                logger.debug("[RECAPTCHA] No secret configured — skipping verification (development)")
                return VerificationResult(success=True, score=1.0)
            raise VerificationUnavailableError("reCAPTCHA secret key not configured")

        if not token:
            return VerificationResult(success=False, error="reCAPTCHA token is required")

        form = {"secret": self.secret_key, "response": token}
        if client_ip:
            form["remoteip"] = client_ip

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.verify_url, data=form)
            data = response.json()
        except httpx.TimeoutException:
            logger.warning(f"[RECAPTCHA] Verification timed out after {self.timeout}s")
            return VerificationResult(success=False, error="reCAPTCHA verification timed out")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[RECAPTCHA] Verification request failed: {e}")
            return VerificationResult(success=False, error="Failed to verify reCAPTCHA")

        if not data.get("success"):
            codes = data.get("error-codes") or []
            return VerificationResult(
                success=False,
                error=", ".join(codes) if codes else "reCAPTCHA validation failed",
            )

        score = data.get("score")
        if self.min_score is not None and score is not None and score < self.min_score:
            return VerificationResult(
                success=False, score=score,
                error=f"reCAPTCHA score too low: {score} (required: {self.min_score})",
            )
        return VerificationResult(success=True, score=score)


recaptcha_verifier = RecaptchaVerifier()
