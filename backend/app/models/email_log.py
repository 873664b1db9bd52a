from sqlalchemy import Column, Integer, String, Text, ForeignKey, JSON

from .base import BaseModel


class EmailLog(BaseModel):
    __tablename__ = "email_logs"

    id = Column(Integer, primary_key=True, index=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    recipient_ids = Column(JSON, nullable=True)
    recipient_emails = Column(JSON, nullable=True)
    subject = Column(String, nullable=False)
    body = Column(Text, nullable=False)
    email_type = Column(String, nullable=False)  # individual|bulk
    status = Column(String, nullable=False, default="sent")
    sent_count = Column(Integer, nullable=False, default=0)
