from typing import List, Optional
from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from tickchat.database import get_db
from tickchat.repositories.message_repository import MessageRepository
from tickchat.repositories.user_repository import UserRepository
from tickchat.schemas.message import MessageResponse, SendTextMessage, MarkSeenRequest, MarkSeenResponse
from tickchat.schemas.user import UserResponse
from tickchat.auth import get_current_active_user
from tickchat.models.user import User
from tickchat.delivery import DeliveryRouter
from tickchat.dependencies import get_delivery_router, get_file_storage
from tickchat.errors import NotFoundError, ValidationError
from tickchat.storage import FileStorage

router = APIRouter()

async def ensure_peer_exists(db: AsyncSession, peer_id: str) -> User:
    peer = await UserRepository(db).get_by_id(peer_id)
    if not peer:
        raise NotFoundError("Recipient not found")
    return peer

@router.get("/users", response_model=List[UserResponse])
async def get_users_for_sidebar(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """Список всех пользователей, кроме текущего"""
    return await UserRepository(db).list_except(current_user.id)

@router.get("/{peer_id}", response_model=List[MessageResponse])
async def get_conversation(
    peer_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """История переписки с пользователем (по возрастанию времени)"""
    message_repo = MessageRepository(db)
    return await message_repo.get_conversation(current_user.id, peer_id)

@router.post("/send/{peer_id}", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
    peer_id: str,
    message_data: SendTextMessage,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    delivery: DeliveryRouter = Depends(get_delivery_router)
):
    """Отправка текстового сообщения"""
    if not message_data.text or not message_data.text.strip():
        raise ValidationError("Message text is required")
    await ensure_peer_exists(db, peer_id)

    message = await MessageRepository(db).create(current_user.id, peer_id, text=message_data.text)
    await delivery.on_message_created(message)
    return message

@router.post("/send-image/{peer_id}", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_image(
    peer_id: str,
    image: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    delivery: DeliveryRouter = Depends(get_delivery_router),
    storage: FileStorage = Depends(get_file_storage)
):
    """Отправка изображения"""
    if image is None:
        raise ValidationError("No image file uploaded")
    await ensure_peer_exists(db, peer_id)

    image_url = await storage.save_image(image)
    message = await MessageRepository(db).create(current_user.id, peer_id, image=image_url)
    await delivery.on_message_created(message)
    return message

@router.post("/send-pdf/{peer_id}", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_pdf(
    peer_id: str,
    pdf: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    delivery: DeliveryRouter = Depends(get_delivery_router),
    storage: FileStorage = Depends(get_file_storage)
):
    """Отправка PDF-документа"""
    if pdf is None:
        raise ValidationError("No PDF file uploaded")
    await ensure_peer_exists(db, peer_id)

    document_path = await storage.save_pdf(pdf)
    message = await MessageRepository(db).create(current_user.id, peer_id, document=document_path)
    await delivery.on_message_created(message)
    return message

@router.post("/mark-seen", response_model=MarkSeenResponse)
async def mark_messages_seen(
    seen_data: MarkSeenRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    delivery: DeliveryRouter = Depends(get_delivery_router)
):
    """Отметка сообщений как просмотренных получателем"""
    message_repo = MessageRepository(db)
    updated_count = await message_repo.mark_seen(seen_data.message_ids, current_user.id)

    if updated_count > 0:
        await delivery.on_messages_marked_seen(seen_data.message_ids, message_repo, current_user.id)

    return MarkSeenResponse(success=True, updated_count=updated_count)
