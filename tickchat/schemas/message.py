from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List
from datetime import datetime

class CamelModel(BaseModel):
    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True

class MessageResponse(CamelModel):
    id: str
    sender_id: str
    receiver_id: str
    text: str = ""
    image: Optional[str] = None
    document: Optional[str] = None
    seen: bool = False
    created_at: datetime
    updated_at: datetime

class SendTextMessage(BaseModel):
    text: Optional[str] = None

class MarkSeenRequest(CamelModel):
    message_ids: List[str] = Field(default_factory=list)

class MarkSeenResponse(CamelModel):
    success: bool = True
    updated_count: int

def serialize_message(message) -> dict:
    """Wire form of a stored message, shared by REST responses and push events."""
    return MessageResponse.model_validate(message).model_dump(by_alias=True, mode="json")
