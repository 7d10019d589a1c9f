from sqlalchemy import Column, ForeignKey, Text, Boolean, String, CheckConstraint
from sqlalchemy.orm import relationship
from .base import BaseModel

class Message(BaseModel):
    __tablename__ = "messages"
    
    sender_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    receiver_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    text = Column(Text, nullable=False, default="")
    image = Column(String(512), nullable=True)
    document = Column(String(512), nullable=True)
    # Flips false -> true once, on behalf of the receiver
    seen = Column(Boolean, default=False, nullable=False, index=True)
    
    # Связи
    sender = relationship("User", foreign_keys=[sender_id], back_populates="sent_messages")
    receiver = relationship("User", foreign_keys=[receiver_id], back_populates="received_messages")

    __table_args__ = (
        CheckConstraint(
            "text <> '' OR image IS NOT NULL OR document IS NOT NULL",
            name="message_has_content",
        ),
    )
