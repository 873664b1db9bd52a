from .user import User, UserStatus
from .admin_user import AdminUser, AdminRole
from .profile import ArtistProfile, ProviderProfile
from .event import Event, EventState
from .booking import Booking, BookingState, BookingType
from .transaction import Transaction, TransactionState, TransactionType
from .ticket import Ticket, TicketStatus
from .review import Review, ReviewHelpfulVote
from .report import Report, ReportStatus, ReportPriority, ReportedType
from .payout import PayoutRequest, PayoutStatus
from .refund import RefundRequest, RefundStatus, RefundMethod
from .audit_log import AdminAuditLog
from .notification import Notification, NotificationType, NotificationPreference
from .message import Conversation, Message
from .email_log import EmailLog

__all__ = [
    "User",
    "UserStatus",
    "AdminUser",
    "AdminRole",
    "ArtistProfile",
    "ProviderProfile",
    "Event",
    "EventState",
    "Booking",
    "BookingState",
    "BookingType",
    "Transaction",
    "TransactionState",
    "TransactionType",
    "Ticket",
    "TicketStatus",
    "Review",
    "ReviewHelpfulVote",
    "Report",
    "ReportStatus",
    "ReportPriority",
    "ReportedType",
    "PayoutRequest",
    "PayoutStatus",
    "RefundRequest",
    "RefundStatus",
    "RefundMethod",
    "AdminAuditLog",
    "Notification",
    "NotificationType",
    "NotificationPreference",
    "Conversation",
    "Message",
    "EmailLog",
]
