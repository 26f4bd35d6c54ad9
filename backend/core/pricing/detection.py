from __future__ import annotations

import logging

from pricing.exceptions import NoRateConfigured
from pricing.models import Channel

logger = logging.getLogger(__name__)


def detect_channel(processor: str, raw_payment_method: str | None, direction: str) -> Channel:
    """Map the processor's payment-method string onto a configured channel.

    The first active, non-default channel whose response code appears in the
    lower-cased method string wins. Otherwise the processor's default channel
    for ``direction`` is used.
    """

    method = (raw_payment_method or "").strip().lower()
    channels = list(
        Channel.objects.filter(processor=processor, direction=direction, is_active=True).order_by(
            "id"
        )
    )

    if method:
        for channel in channels:
            if channel.is_default:
                continue
            for code in channel.response_codes or []:
                code = str(code).strip().lower()
                if code and code in method:
                    return channel

    for channel in channels:
        if channel.is_default:
            logger.info(
                "pricing.channel.defaulted processor=%s direction=%s method=%s channel=%s",
                processor,
                direction,
                method,
                channel.code,
            )
            return channel

    raise NoRateConfigured(
        f"No channel matches payment method '{method}' and processor {processor} has no default."
    )
