from .auth import User, SessionToken, USER_ROLES
from .shops import Shop, ShopService, Worker
from .bookings import Booking, WorkerReassignment
from .billing import Invoice, CancellationTokenLedger, CancellationRecord
from .audit import AdminLog

__all__ = [
    'User', 'SessionToken', 'USER_ROLES',
    'Shop', 'ShopService', 'Worker',
    'Booking', 'WorkerReassignment',
    'Invoice', 'CancellationTokenLedger', 'CancellationRecord',
    'AdminLog',
]
