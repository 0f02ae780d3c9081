# backend/absensi/services/notification_service.py
"""Best-effort Telegram notifications for recorded attendance."""
import logging
from concurrent.futures import Executor, Future
from datetime import datetime
from typing import Dict, Optional

import requests

from absensi.models.attendance import AttendanceStatus, AttendanceType
from absensi.services.identity_service import SubjectSnapshot
from absensi.utils.errors import NotificationFailure
from absensi.utils.localtime import long_date

logger = logging.getLogger(__name__)

STUDENT_ABSENCE_LABELS = {
    AttendanceStatus.SICK: 'SAKIT',
    AttendanceStatus.PERMITTED: 'IZIN',
    AttendanceStatus.ABSENT: 'ALPHA (tanpa keterangan)',
}

def build_message(
    subject: SubjectSnapshot,
    attendance_type: AttendanceType,
    status: AttendanceStatus,
    moment: datetime,
    note: str = '',
    tz_label: str = 'WIB'
) -> str:
    """Indonesian message text for one record."""
    date_text = long_date(moment)
    
    if attendance_type != AttendanceType.NOT_APPLICABLE:
        direction = 'MASUK' if attendance_type == AttendanceType.CHECK_IN else 'PULANG'
        message = (
            f'GTK dengan nama {subject.name} telah melakukan "Absen {direction}" '
            f'di Sekolah pada tanggal {date_text} pukul {moment.strftime("%H:%M:%S")} {tz_label}.'
        )
        if status == AttendanceStatus.LATE:
            message += ' Status: TERLAMBAT.'
        return message
    
    if status in (AttendanceStatus.PRESENT, AttendanceStatus.LATE):
        late = ' (terlambat)' if status == AttendanceStatus.LATE else ''
        message = (
            f'Ananda {subject.name} telah hadir di sekolah{late} pada {date_text} '
            f'pukul {moment.strftime("%H:%M")} {tz_label}.'
        )
    else:
        message = (
            f'Ananda {subject.name} tidak hadir di sekolah pada {date_text} '
            f'dengan status {STUDENT_ABSENCE_LABELS[status]}.'
        )
    
    if note:
        message += f'\n\nKeterangan: {note}'
    return message

class TelegramNotifier:
    """Thin client for the Bot API ``sendMessage`` method."""
    
    def __init__(self, api_base: str = 'https://api.telegram.org', timeout: float = 10):
        self.api_base = api_base.rstrip('/')
        self.timeout = timeout
    
    def send(self, bot_token: str, chat_id: str, text: str) -> None:
        try:
            response = requests.post(
                f"{self.api_base}/bot{bot_token}/sendMessage",
                json={'chat_id': chat_id, 'text': text},
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            status = getattr(getattr(e, 'response', None), 'status_code', None)
            raise NotificationFailure(f"Telegram sendMessage failed (status={status}): {e}")

class NotificationDispatcher:
    """Fire-and-forget delivery; never raises to the caller."""
    
    def __init__(
        self,
        notifier: TelegramNotifier,
        executor: Optional[Executor] = None,
        tz_label: str = 'WIB'
    ):
        self.notifier = notifier
        self.executor = executor
        self.tz_label = tz_label
    
    def notify(
        self,
        subject: SubjectSnapshot,
        attendance_type: AttendanceType,
        status: AttendanceStatus,
        moment: datetime,
        credentials: Dict[str, Optional[str]],
        destination: Optional[str],
        note: str = ''
    ) -> Optional[Future]:
        bot_token = credentials.get('bot_token')
        
        if not bot_token:
            logger.info("Telegram bot token not configured; skipping notification for subject %s", subject.id)
            return None
        if not destination:
            logger.info("No chat ID found for notification of subject %s", subject.id)
            return None
        
        text = build_message(subject, attendance_type, status, moment, note, self.tz_label)
        
        if self.executor is not None:
            return self.executor.submit(self._deliver, bot_token, destination, text, subject.id)
        
        self._deliver(bot_token, destination, text, subject.id)
        return None
    
    def _deliver(self, bot_token: str, destination: str, text: str, subject_id: int) -> bool:
        try:
            self.notifier.send(bot_token, destination, text)
        except Exception as e:
            logger.error("Error sending Telegram notification for subject %s: %s", subject_id, e)
            return False
        
        logger.info("Telegram notification sent for subject %s", subject_id)
        return True
