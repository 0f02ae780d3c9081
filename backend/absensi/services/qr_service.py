"""Student QR card generation."""
import base64
import io
from typing import Dict

import qrcode

from absensi.models.subject import Subject, SubjectCategory
from absensi.utils.errors import IdentityNotFound

class QRService:
    """Renders the QR payload scanned by the student flow."""
    
    @staticmethod
    def generate_card(subject: Subject) -> Dict:
        """Return the student's NISN encoded as a PNG data URL."""
        if subject.category != SubjectCategory.STUDENT or not subject.secondary_id:
            raise IdentityNotFound()
        
        qr = qrcode.QRCode(
            version=None,  # Auto-determine size
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=4,
        )
        # the payload is the bare NISN; the scanner looks it up verbatim
        qr.add_data(subject.secondary_id)
        qr.make(fit=True)
        
        img = qr.make_image(fill_color="black", back_color="white")
        
        buffered = io.BytesIO()
        img.save(buffered, format="PNG")
        img_str = base64.b64encode(buffered.getvalue()).decode()
        
        return {
            'subject_id': subject.id,
            'name': subject.name,
            'nisn': subject.secondary_id,
            'class_name': subject.class_name,
            'qr_code': f"data:image/png;base64,{img_str}"
        }
