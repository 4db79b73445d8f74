"""Stakeholder notification for high rockfall risk."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional, Protocol

import httpx

from settings import get_settings

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


class DispatchFailure(Exception):
    """An alert channel failed to deliver."""


class AlertDispatcher(Protocol):
    def notify(self, mine_id: str, mine_name: str, location: str, probability: float) -> None:
        ...


def format_alert_message(mine_name: str, location: str, probability: float) -> str:
    return (
        "HIGH ROCKFALL RISK ALERT\n\n"
        f"Mine: {mine_name}\n"
        f"Location: {location}\n"
        f"Risk Level: {round(probability * 100)}%\n\n"
        "Immediate action required! Please implement emergency protocols and consider evacuation."
    )


class TwilioAlertDispatcher:
    """Sends the alert as an SMS through Twilio and writes the email body to the log.

    SMS is skipped when no credentials are configured; the email channel is a
    log line only.
    """

    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        from_number: str,
        to_number: str,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._from_number = from_number
        self._to_number = to_number
        self._client = httpx.Client(base_url=TWILIO_API_BASE, timeout=timeout, transport=transport)

    @property
    def sms_enabled(self) -> bool:
        return bool(self._account_sid and self._auth_token)

    def close(self) -> None:
        self._client.close()

    def notify(self, mine_id: str, mine_name: str, location: str, probability: float) -> None:
        message = format_alert_message(mine_name, location, probability)
        context = {"mine_id": mine_id, "mine_name": mine_name, "probability": probability}
        logger.info("Dispatching rockfall alert", extra=context)

        if self._account_sid and self._auth_token:
            self._send_sms(self._account_sid, self._auth_token, message)
            logger.info("SMS alert sent", extra=context)

        logger.info("Email alert body:\n%s", message, extra=context)

    def _send_sms(self, account_sid: str, auth_token: str, body: str) -> None:
        try:
            response = self._client.post(
                f"/Accounts/{account_sid}/Messages.json",
                auth=(account_sid, auth_token),
                data={"From": self._from_number, "To": self._to_number, "Body": body},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DispatchFailure(
                f"SMS delivery failed with status {exc.response.status_code}: "
                f"{exc.response.text.strip() or 'no detail provided.'}"
            ) from exc
        except httpx.HTTPError as exc:
            raise DispatchFailure(f"SMS delivery failed: {exc}") from exc


def notify_safely(
    dispatcher: AlertDispatcher,
    mine_id: str,
    mine_name: str,
    location: str,
    probability: float,
) -> bool:
    """Fire-and-forget wrapper: a failed dispatch is logged and reported as ``False``."""
    try:
        dispatcher.notify(mine_id, mine_name, location, probability)
    except DispatchFailure as exc:
        logger.error(
            "Alert dispatch failed",
            extra={"mine_id": mine_id, "mine_name": mine_name, "reason": str(exc)},
        )
        return False
    return True


@lru_cache
def build_default_dispatcher() -> TwilioAlertDispatcher:
    settings = get_settings()
    return TwilioAlertDispatcher(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        from_number=settings.twilio_from_number,
        to_number=settings.alert_recipient_number,
    )
