from .employees import Employee
from .sessions import AdminSession, EmployeeSession
from .customers import Customer
from .settings import StoreSettings, StorageLocation
from .tickets import (
    Ticket, TicketStatus, OPEN_STATUSES, AppendOnlyError,
    TicketStatusHistory, TicketFieldHistory, TicketNote, TicketPhoto,
)
from .security import SecurityEvent, RateLimitRecord, RateLimitAttempt

__all__ = [
    'Employee',
    'AdminSession', 'EmployeeSession',
    'Customer',
    'StoreSettings', 'StorageLocation',
    'Ticket', 'TicketStatus', 'OPEN_STATUSES', 'AppendOnlyError',
    'TicketStatusHistory', 'TicketFieldHistory', 'TicketNote', 'TicketPhoto',
    'SecurityEvent', 'RateLimitRecord', 'RateLimitAttempt',
]
