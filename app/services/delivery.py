"""
Delivery rendering: turn a code into a chat deep link and a QR image.

Pure projection, no state beyond the target number and message template,
both validated at construction.
"""
import base64
import io
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, quote, urlsplit

import qrcode
import qrcode.constants
from qrcode.image.svg import SvgImage

from app.core.clock import Clock, SystemClock
from app.core.constants import DEFAULT_MESSAGE_TEMPLATE, OTP_LENGTH, OTP_PLACEHOLDER
from app.core.exceptions import AppError, ErrorCodes, ValidationError
from app.core.sanitization import clean_target_number, sanitize_otp

MOBILE_BASE_URL = "https://wa.me/"
WEB_BASE_URL = "https://web.whatsapp.com/send"
# Shorter message keeps the QR at a lower version, easier to scan from a projector
QR_SHORT_TEMPLATE = "Code: {otp}"

FORMATS = ("mobile", "web")
IMAGE_FORMATS = ("svg", "png")

_DELIVERY_URL = re.compile(r'^https://(wa\.me|web\.whatsapp\.com)/')
# Same characters encodeURIComponent leaves alone
_URI_SAFE = "-_.!~*'()"


@dataclass(frozen=True)
class DeliveryPayload:
    code: str
    url: str
    qr_data_url: str
    format: str
    size: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _template_pattern(template: str) -> re.Pattern:
    prefix, suffix = template.split(OTP_PLACEHOLDER)
    return re.compile(re.escape(prefix) + rf'([A-Za-z0-9]{{{OTP_LENGTH}}})' + re.escape(suffix))


def generate_qr_data_url(data: str, size: int = 200, image_format: str = "svg") -> str:
    """
    Encode ``data`` as a QR code and return it as a ``data:`` URL.

    Args:
        data: The payload to encode
        size: Approximate image width in pixels
        image_format: "svg" (no Pillow needed) or "png"
    """
    if image_format not in IMAGE_FORMATS:
        raise ValidationError(
            f"Image format must be one of {', '.join(IMAGE_FORMATS)}",
            code=ErrorCodes.INVALID_CONFIGURATION,
        )

    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=2,
    )
    qr.add_data(data)
    qr.make(fit=True)
    # Scale modules so the whole image lands close to the requested width
    qr.box_size = max(1, size // (qr.modules_count + 2 * qr.border))

    buffer = io.BytesIO()
    if image_format == "svg":
        img = qr.make_image(image_factory=SvgImage)
        mime = "image/svg+xml"
    else:
        img = qr.make_image(fill_color="black", back_color="white")
        mime = "image/png"
    img.save(buffer)

    return f"data:{mime};base64,{base64.b64encode(buffer.getvalue()).decode('ascii')}"


class DeliveryRenderer:
    """Builds deep links and QR codes for a configured target number."""

    def __init__(
        self,
        target_number: str,
        message_template: str = DEFAULT_MESSAGE_TEMPLATE,
        clock: Optional[Clock] = None,
    ):
        """
        Raises:
            ValidationError: If the target number is malformed or the
                             template does not contain exactly one {otp}
        """
        self.target_number = clean_target_number(target_number)

        if not isinstance(message_template, str) or message_template.count(OTP_PLACEHOLDER) != 1:
            raise ValidationError(
                f"Message template must include the {OTP_PLACEHOLDER} placeholder exactly once",
                code=ErrorCodes.INVALID_CONFIGURATION,
            )
        self.message_template = message_template
        self.clock = clock or SystemClock()
        self._patterns = (_template_pattern(message_template), _template_pattern(QR_SHORT_TEMPLATE))

    def _message(self, code: str, include_timestamp: bool = False, qr_optimized: bool = False) -> str:
        template = QR_SHORT_TEMPLATE if qr_optimized else self.message_template
        message = template.replace(OTP_PLACEHOLDER, code)
        if include_timestamp:
            message += f" (Generated: {self.clock.now().isoformat(timespec='seconds')})"
        return message

    def chat_url(self, code: str, include_timestamp: bool = False, qr_optimized: bool = False) -> str:
        """Mobile deep link with the code pre-filled in the message."""
        normalized = sanitize_otp(code)
        message = self._message(normalized, include_timestamp, qr_optimized)
        return f"{MOBILE_BASE_URL}{self.target_number}?text={quote(message, safe=_URI_SAFE)}"

    def web_url(self, code: str, include_timestamp: bool = False, qr_optimized: bool = False) -> str:
        """Browser fallback link for devices without the chat app."""
        normalized = sanitize_otp(code)
        message = self._message(normalized, include_timestamp, qr_optimized)
        return f"{WEB_BASE_URL}?phone={self.target_number}&text={quote(message, safe=_URI_SAFE)}"

    def url_for(self, code: str, fmt: str = "mobile", **options) -> str:
        if fmt == "web":
            return self.web_url(code, **options)
        if fmt == "mobile":
            return self.chat_url(code, **options)
        raise ValidationError(
            f"Format must be one of {', '.join(FORMATS)}",
            code=ErrorCodes.INVALID_CONFIGURATION,
            details={"provided_value": str(fmt)[:20]},
        )

    def all_formats(self, code: str, qr_optimized: bool = False, include_timestamp: bool = False) -> Dict[str, str]:
        urls = {
            "mobile": self.chat_url(code, include_timestamp=include_timestamp),
            "web": self.web_url(code, include_timestamp=include_timestamp),
        }
        if qr_optimized:
            urls["qr"] = self.chat_url(code, qr_optimized=True)
        return urls

    def render(self, code: str, fmt: str = "mobile", size: int = 200, image_format: str = "svg") -> DeliveryPayload:
        """
        Render a code as a scannable payload.

        Returns:
            DeliveryPayload with the deep link and a QR ``data:`` URL

        Raises:
            ValidationError: On a malformed code, format or size
            AppError: QR_GENERATION_FAILED if the encoder fails
        """
        if isinstance(size, bool) or not isinstance(size, int) or not (50 <= size <= 1000):
            raise ValidationError(
                "Size must be between 50 and 1000 pixels",
                code=ErrorCodes.INVALID_CONFIGURATION,
                details={"provided_value": str(size)[:20]},
            )

        normalized = sanitize_otp(code)
        url = self.url_for(normalized, fmt, qr_optimized=True)

        try:
            qr_data_url = generate_qr_data_url(url, size=size, image_format=image_format)
        except ValidationError:
            raise
        except (ValueError, OSError) as exc:
            raise AppError(
                "Failed to generate QR code",
                code=ErrorCodes.QR_GENERATION_FAILED,
                details={"original_error": str(exc)},
            ) from exc

        return DeliveryPayload(code=normalized, url=url, qr_data_url=qr_data_url, format=fmt, size=size)

    @staticmethod
    def is_delivery_url(url: Any) -> bool:
        return isinstance(url, str) and bool(_DELIVERY_URL.match(url))

    def extract_code(self, url: str) -> Optional[str]:
        """Pull the code back out of a delivery link, or None."""
        if not self.is_delivery_url(url):
            return None

        texts = parse_qs(urlsplit(url).query).get("text")
        if not texts:
            return None

        for pattern in self._patterns:
            match = pattern.search(texts[0])
            if match:
                return match.group(1).upper()
        return None

    def get_config(self) -> Dict[str, str]:
        return {
            "target_number": self.target_number,
            "message_template": self.message_template,
        }
