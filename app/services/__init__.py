from .checkin import CheckInOutcome, CheckInService, status_for
from .delivery import DeliveryPayload, DeliveryRenderer, generate_qr_data_url
from .otp import CurrentCode, OTPEngine, ValidationResult, derive_code, time_slot

__all__ = [
    # checkin
    "CheckInOutcome",
    "CheckInService",
    "status_for",
    # delivery
    "DeliveryPayload",
    "DeliveryRenderer",
    "generate_qr_data_url",
    # otp
    "CurrentCode",
    "OTPEngine",
    "ValidationResult",
    "derive_code",
    "time_slot",
]
