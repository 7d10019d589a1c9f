from datetime import timedelta
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from tickchat.database import get_db
from tickchat.repositories.user_repository import UserRepository
from tickchat.schemas.user import UserCreate, UserResponse, Token, UserLogin
from tickchat.auth import authenticate_user, get_current_active_user
from tickchat.security import create_access_token
from tickchat.config import settings

router = APIRouter()

def issue_token(username: str) -> dict:
    expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    token = create_access_token(data={"sub": username}, expires_delta=expires)
    return {"access_token": token, "token_type": "bearer", "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60}

@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register_user(user_data: UserCreate, db: AsyncSession = Depends(get_db)):
    user_repo = UserRepository(db)

    if await user_repo.exists_by_username_or_email(user_data.username, user_data.email):
        raise HTTPException(status_code=400, detail="User already exists")

    return await user_repo.create(user_data)

@router.post("/login", response_model=Token)
async def login_user(form_data: OAuth2PasswordRequestForm = Depends(), db: AsyncSession = Depends(get_db)):
    user = await authenticate_user(db, form_data.username, form_data.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    return issue_token(user.username)

@router.post("/login-json", response_model=Token)
async def login_user_json(user_data: UserLogin, db: AsyncSession = Depends(get_db)):
    user = await authenticate_user(db, user_data.username, user_data.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    return issue_token(user.username)

@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user = Depends(get_current_active_user)):
    return current_user

@router.post("/refresh", response_model=Token)
async def refresh_token(current_user = Depends(get_current_active_user)):
    return issue_token(current_user.username)
