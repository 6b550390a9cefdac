"""SMS (Africa's Talking) and email (EmailJS) clients with exponential backoff retry logic"""

import asyncio
import logging
import httpx
from typing import Any, Dict
from fareflow_gateway.config import settings
from fareflow_gateway.domain.exceptions import NotificationError
from fareflow_gateway.infrastructure.observability.metrics import (
    notification_failure_counter,
    notification_latency_histogram,
)

# Africa's Talking per-recipient status codes that mean the message was accepted
AT_ACCEPTED_STATUS_CODES = {100, 101, 102}


class NotificationClient:
    """Client for the rider notification transports"""

    def __init__(
        self,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = max_retries or settings.notification_max_retries
        self.backoff_base = settings.notification_backoff_base if backoff_base is None else backoff_base
        self.transport = transport

    async def send_sms(self, phone: str, message: str) -> None:
        """
        Send an SMS through Africa's Talking.

        Raises:
            NotificationError: Transport unavailable after retries, or the
                recipient was rejected
        """
        data = {"username": settings.at_username, "to": phone, "message": message}
        if settings.at_sender_id:
            data["from"] = settings.at_sender_id

        response = await self._post_with_retry(
            "sms",
            settings.at_sms_url,
            data=data,
            headers={"apiKey": settings.at_api_key, "Accept": "application/json"},
        )

        try:
            recipients = response.json()["SMSMessageData"]["Recipients"]
        except (KeyError, ValueError, TypeError) as e:
            notification_failure_counter.labels(channel="sms").inc()
            raise NotificationError(f"Unexpected SMS gateway response: {e}") from e

        rejected = [r for r in recipients if r.get("statusCode") not in AT_ACCEPTED_STATUS_CODES]
        if not recipients or rejected:
            notification_failure_counter.labels(channel="sms").inc()
            status = rejected[0].get("status") if rejected else "no recipients"
            raise NotificationError(f"SMS to {phone} rejected: {status}")

    async def send_email(self, template_params: Dict[str, Any]) -> None:
        """
        Send a templated email through EmailJS.

        Raises:
            NotificationError: Transport unavailable after retries
        """
        await self._post_with_retry(
            "email",
            settings.emailjs_api_url,
            json={
                "service_id": settings.emailjs_service_id,
                "template_id": settings.emailjs_template_payment_id,
                "user_id": settings.emailjs_public_key,
                "accessToken": settings.emailjs_private_key,
                "template_params": template_params,
            },
        )

    async def _post_with_retry(self, channel: str, url: str, **request_kwargs: Any) -> httpx.Response:
        """
        POST with retries.

        Retry strategy:
        - Exponential backoff: base, 2*base, 4*base, ...
        - Retries on 5xx/4xx errors and network failures
        - Tracks latency histogram and failure counter per channel
        """
        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            while True:
                try:
                    with notification_latency_histogram.labels(channel=channel).time():
                        response = await client.post(url, **request_kwargs)
                        response.raise_for_status()
                        return response

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    notification_failure_counter.labels(channel=channel).inc()

                    if attempt >= self.max_retries:
                        # Final failure after all retries
                        raise NotificationError(f"{channel} delivery failed after {attempt} attempts: {e}") from e

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    logging.warning(
                        f"{channel} delivery attempt {attempt} failed, retrying in {backoff}s",
                        extra={"channel": channel, "attempt": attempt},
                    )
                    await asyncio.sleep(backoff)
