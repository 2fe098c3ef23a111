"""
Delivery module.
Contains the SMS gateway client and phone number helpers.
"""

from notifyq.delivery.client import DeliveryClient, SMSGatewayClient
from notifyq.delivery.phone import normalize_phone

__all__ = ["DeliveryClient", "SMSGatewayClient", "normalize_phone"]
