"""Owner notification for private-event requests.

Sends an SMS to the restaurant owner through the Twilio Messages REST API.
Delivery is best effort: failures are logged and reported as ``False``,
never raised, so the caller's turn is not affected.
"""

from __future__ import annotations

import logging

import aiohttp

from reservations.models.booking import OwnerNotice
from reservations.session import redact_pii

log = logging.getLogger("reservations.notify")


def format_notice(notice: OwnerNotice, restaurant_name: str = "") -> str:
    """SMS body for the owner."""
    header = f"[{restaurant_name}] " if restaurant_name else ""
    lines = [
        f"{header}Richiesta evento privato",
        f"Nome: {notice.customer_name or 'n/d'}",
        f"Persone: {notice.party_size or 'n/d'}",
        f"Data: {notice.date or 'n/d'} {notice.time or ''}".rstrip(),
        f"Telefono: {notice.caller_id or 'n/d'}",
    ]
    if notice.customer_email:
        lines.append(f"Email: {notice.customer_email}")
    return "\n".join(lines)


class OwnerNotifier:
    """Twilio SMS to the owner's phone."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        owner_number: str,
        restaurant_name: str = "",
        timeout: float = 10.0,
    ) -> None:
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._from_number = from_number
        self._owner_number = owner_number
        self._restaurant_name = restaurant_name
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(
            self._account_sid and self._auth_token
            and self._from_number and self._owner_number
        )

    async def notify(self, notice: OwnerNotice) -> bool:
        """Send the notice; returns whether Twilio accepted it."""
        if not self.configured:
            log.warning("Twilio/owner phone not configured — private-event notice not sent")
            return False

        url = (
            f"https://api.twilio.com/2010-04-01/Accounts/"
            f"{self._account_sid}/Messages.json"
        )
        form = {
            "From": self._from_number,
            "To": self._owner_number,
            "Body": format_notice(notice, self._restaurant_name),
        }

        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout)
            ) as session:
                async with session.post(
                    url,
                    data=form,
                    auth=aiohttp.BasicAuth(self._account_sid, self._auth_token),
                ) as resp:
                    if resp.status != 201:
                        body = await resp.text()
                        log.error("Twilio SMS request failed (%d): %s", resp.status, body)
                        return False
                    data = await resp.json()

            log.info(
                "Owner notified (sid=%s) for caller %s",
                data.get("sid", "?"),
                redact_pii(notice.caller_id),
            )
            return True

        except Exception as e:
            log.error("Failed to notify owner: %s", e)
            return False
