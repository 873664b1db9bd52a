from .user import UserBase, UserCreate, UserResponse, TokenData
from .event import EventBase, EventCreate, EventResponse, EventTransition
from .booking import BookingCreate, BookingAction, BookingResponse
from .payment import (
    DepositRequest,
    WithdrawRequest,
    VerifyAccountRequest,
    TicketPurchaseRequest,
    BookingPaymentRequest,
    PayoutRequestCreate,
    RefundRequestCreate,
)
from .ticket import TicketValidateRequest, TicketCheckinRequest
from .review import ReviewBase, ReviewCreate, ReviewUpdate, ReviewResponse, RatingSummary
from .message import ConversationStart, MessageCreate, MessageResponse, ConversationResponse
from .notification import NotificationResponse, NotificationList, NotificationMarkRead
from .report import ReportCreate, ReportResponse
from .admin import (
    SendEmailRequest,
    BulkEmailRequest,
    PayoutAction,
    RefundAction,
    ReportAction,
    ReviewVisibility,
    PayoutRequestResponse,
    RefundRequestResponse,
    AuditLogResponse,
)
