"""
QR code generation service
"""

import io
import qrcode

from app.core.config import settings

class QRService:
    """Service for generating QR codes"""

    @staticmethod
    def get_ticket_url(organization_id: int, reference_code: str) -> str:
        """URL a door scanner opens to check a guest in"""
        return f"{settings.BASE_URL}/checkin/{organization_id}/{reference_code}"

    @staticmethod
    def get_claim_url(table_id: int) -> str:
        """Shareable link for naming seats on a prepaid table"""
        return f"{settings.BASE_URL}/tables/{table_id}/claim"

    @staticmethod
    def generate_qr(url: str, format: str = 'PNG') -> bytes:
        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=4,
        )
        qr.add_data(url)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        img.save(buffer, format=format)
        return buffer.getvalue()

    @staticmethod
    def generate_ticket_qr(organization_id: int, reference_code: str) -> bytes:
        return QRService.generate_qr(QRService.get_ticket_url(organization_id, reference_code))

    @staticmethod
    def generate_claim_qr(table_id: int) -> bytes:
        return QRService.generate_qr(QRService.get_claim_url(table_id))
