"""Payment return handling.

The gateway sends the user back to ``<return_url>?status=...&cita_id=...``;
that landing page forwards to the bot deep link ``/start pay_<status>_<cita_id>``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import urlencode

from servilink_bot.dto import PaymentStatus

START_PREFIX = "pay"


class PaymentLanding(str, Enum):
    SUCCESS = "success"
    PROCESSING = "processing"
    ERROR = "error"


LANDING_BY_STATUS = {
    PaymentStatus.APPROVED: PaymentLanding.SUCCESS,
    PaymentStatus.PENDING: PaymentLanding.PROCESSING,
    PaymentStatus.REJECTED: PaymentLanding.ERROR,
}


def landing_for(status: PaymentStatus) -> PaymentLanding:
    return LANDING_BY_STATUS[status]


@dataclass(frozen=True)
class PaymentReturn:
    status: PaymentStatus
    appointment_id: Optional[str] = None

    @property
    def landing(self) -> PaymentLanding:
        return landing_for(self.status)

    @property
    def retryable(self) -> bool:
        return self.landing == PaymentLanding.ERROR


def _status(raw: str | None) -> Optional[PaymentStatus]:
    try:
        return PaymentStatus((raw or "").strip().lower())
    except ValueError:
        return None


def parse_start_payload(payload: str | None) -> Optional[PaymentReturn]:
    parts = (payload or "").split("_", 2)
    if len(parts) < 2 or parts[0] != START_PREFIX:
        return None
    status = _status(parts[1])
    if status is None:
        return None
    appointment_id = parts[2] if len(parts) == 3 and parts[2] else None
    return PaymentReturn(status=status, appointment_id=appointment_id)


def build_return_urls(return_url: str, appointment_id: str) -> dict[str, str]:
    sep = "&" if "?" in return_url else "?"

    def _url(status: PaymentStatus) -> str:
        return f"{return_url}{sep}{urlencode({'status': status.value, 'cita_id': appointment_id})}"

    return {
        "success_url": _url(PaymentStatus.APPROVED),
        "failure_url": _url(PaymentStatus.REJECTED),
    }
