"""School wall-clock helpers with Indonesian calendar names."""
from datetime import datetime
from zoneinfo import ZoneInfo

WEEKDAYS_ID = ['Senin', 'Selasa', 'Rabu', 'Kamis', 'Jumat', 'Sabtu', 'Minggu']

MONTHS_ID = [
    'Januari', 'Februari', 'Maret', 'April', 'Mei', 'Juni',
    'Juli', 'Agustus', 'September', 'Oktober', 'November', 'Desember'
]

class SchoolClock:
    """Current local time for a school's timezone."""
    
    def __init__(self, timezone: str = 'Asia/Jakarta'):
        self.tz = ZoneInfo(timezone)
    
    def now(self) -> datetime:
        return datetime.now(self.tz)

def date_key(moment: datetime) -> str:
    return moment.strftime('%Y-%m-%d')

def time_key(moment: datetime) -> str:
    return moment.strftime('%H:%M:%S')

def month_key(moment: datetime) -> str:
    return moment.strftime('%m-%Y')

def weekday_name(moment: datetime) -> str:
    return WEEKDAYS_ID[moment.weekday()]

def long_date(moment: datetime) -> str:
    """e.g. '19 Oktober 2026'."""
    return f"{moment.day} {MONTHS_ID[moment.month - 1]} {moment.year}"
