from typing import Optional

from pydantic import BaseModel


class TicketValidateRequest(BaseModel):
    ticket_code: Optional[str] = None
    event_id: Optional[int] = None


class TicketCheckinRequest(BaseModel):
    ticket_code: Optional[str] = None
    ticket_id: Optional[int] = None
    event_id: Optional[int] = None
