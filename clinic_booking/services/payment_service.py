"""
Payment gateway glue.

The gateway is an opaque "create charge" / "verify charge" service. The only
thing the booking core needs from it is a confirmed charge, which ends up in
``AppointmentService.mark_paid``.
"""
from typing import Optional, Tuple
import logging

import httpx

from ..core.config import settings
from ..core.exceptions import InvalidInput, PaymentGatewayError, PreconditionFailed
from ..core.security import AuthorizationError
from ..models import Appointment
from .appointment_service import AppointmentService

logger = logging.getLogger(__name__)


class RazorpayGateway:
    """Minimal Razorpay Orders API client."""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = settings.RAZORPAY_API_BASE,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.client = httpx.Client(
            base_url=base_url,
            auth=(key_id, key_secret),
            timeout=timeout,
            transport=transport,
        )

    def create_charge(self, reference: str, amount: float, currency: str) -> dict:
        """Create an order; amounts are sent in the smallest currency unit."""
        return self._request("POST", "/orders", json={
            "amount": int(round(amount * 100)),
            "currency": currency,
            "receipt": reference,
        })

    def verify_charge(self, order_id: str) -> Tuple[Optional[str], bool]:
        """Return (receipt reference, paid) for an order."""
        order = self._request("GET", f"/orders/{order_id}")
        return order.get("receipt"), order.get("status") == "paid"

    def close(self) -> None:
        self.client.close()

    def _request(self, method: str, url: str, **kwargs) -> dict:
        try:
            response = self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Payment gateway {method} {url} failed: {e}")
            raise PaymentGatewayError() from e

        if response.status_code != 200:
            logger.error(
                f"Payment gateway {method} {url} returned {response.status_code}: {response.text[:200]}"
            )
            raise PaymentGatewayError(f"Payment gateway returned {response.status_code}")
        return response.json()


class PaymentService:
    def __init__(self, gateway: RazorpayGateway, appointments: AppointmentService):
        self.gateway = gateway
        self.appointments = appointments

    def start_payment(self, appointment_id: int, user_id: Optional[int] = None) -> dict:
        appointment = self.appointments.get_appointment(appointment_id)
        if user_id is not None and appointment.user_id != user_id:
            raise AuthorizationError("Unauthorized action")
        if appointment.cancelled:
            raise PreconditionFailed("Appointment Cancelled or not found")

        order = self.gateway.create_charge(
            str(appointment.id), appointment.amount, settings.CURRENCY
        )
        logger.info(f"Payment order {order.get('id')} created for appointment {appointment_id}")
        return order

    def confirm_payment(self, order_id: str) -> Optional[Appointment]:
        """Verify an order with the gateway; marks the appointment paid on success."""
        receipt, paid = self.gateway.verify_charge(order_id)
        if not paid:
            logger.info(f"Payment order {order_id} is not paid")
            return None

        try:
            appointment_id = int(receipt)
        except (TypeError, ValueError):
            raise InvalidInput(f"Payment order {order_id} has no appointment reference")

        return self.appointments.mark_paid(appointment_id, reference=order_id)


def build_gateway() -> Optional[RazorpayGateway]:
    if not settings.RAZORPAY_KEY_ID or not settings.RAZORPAY_KEY_SECRET:
        return None
    return RazorpayGateway(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET)
