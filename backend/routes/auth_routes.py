"""
Auth Routes - Sign-up, sign-in and the current principal
"""
from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr
from typing import Optional
from datetime import datetime, timezone, timedelta
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
import uuid
import logging

from database import get_postgres_session, app_settings, Company, Profile
from app.requests.domain.models import Principal

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Security
security = HTTPBearer(auto_error=False)

# Create router
auth_router = APIRouter(prefix="/api", tags=["Auth"])


# ==================== PYDANTIC MODELS ====================

class SignUpRequest(BaseModel):
    email: EmailStr
    password: str
    company_name: str
    full_name: Optional[str] = None


class SignInRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileResponse(BaseModel):
    id: str
    email: str
    full_name: Optional[str] = None
    company_id: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: ProfileResponse


# ==================== HELPER FUNCTIONS ====================

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(data: dict) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=app_settings.access_token_expire_minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, app_settings.secret_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> str:
    """Return the profile id carried by a token, or raise HTTP 401."""
    try:
        payload = jwt.decode(token, app_settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid authentication token")
    profile_id = payload.get("sub")
    if profile_id is None:
        raise HTTPException(status_code=401, detail="Invalid authentication token")
    return profile_id


def to_principal(profile: Profile) -> Principal:
    return Principal(
        id=profile.id,
        email=profile.email,
        company_id=profile.company_id,
        full_name=profile.full_name,
    )


def to_profile_response(profile: Profile) -> ProfileResponse:
    return ProfileResponse(
        id=profile.id,
        email=profile.email,
        full_name=profile.full_name,
        company_id=profile.company_id,
    )


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    session: AsyncSession = Depends(get_postgres_session)
) -> Principal:
    """Resolve the bearer token to a principal with its company"""
    if credentials is None:
        raise HTTPException(status_code=401, detail="User not authenticated")

    profile_id = decode_access_token(credentials.credentials)
    result = await session.execute(select(Profile).where(Profile.id == profile_id))
    profile = result.scalar_one_or_none()

    if profile is None:
        raise HTTPException(status_code=401, detail="User not authenticated")
    if not profile.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled")

    return to_principal(profile)


# ==================== AUTH ROUTES ====================

@auth_router.post("/auth/sign-up", response_model=TokenResponse, status_code=201)
async def sign_up(
    data: SignUpRequest,
    session: AsyncSession = Depends(get_postgres_session)
):
    """Create a company and its first profile"""
    result = await session.execute(select(Profile).where(Profile.email == data.email))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Email is already registered")

    if len(data.password) < 6:
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters")

    if not data.company_name.strip():
        raise HTTPException(status_code=400, detail="Company name is required")

    company = Company(id=str(uuid.uuid4()), name=data.company_name.strip())
    profile = Profile(
        id=str(uuid.uuid4()),
        email=data.email,
        password=get_password_hash(data.password),
        full_name=data.full_name,
        company_id=company.id,
        is_active=True,
    )
    session.add(company)
    session.add(profile)
    await session.commit()
    logger.info(f"Profile {profile.id} signed up for company {company.id}")

    return TokenResponse(
        access_token=create_access_token({"sub": profile.id}),
        user=to_profile_response(profile),
    )


@auth_router.post("/auth/sign-in", response_model=TokenResponse)
async def sign_in(
    credentials: SignInRequest,
    session: AsyncSession = Depends(get_postgres_session)
):
    """Sign in with email and password"""
    result = await session.execute(select(Profile).where(Profile.email == credentials.email))
    profile = result.scalar_one_or_none()

    if not profile or not verify_password(credentials.password, profile.password):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    if not profile.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled")

    return TokenResponse(
        access_token=create_access_token({"sub": profile.id}),
        user=to_profile_response(profile),
    )


@auth_router.get("/auth/me", response_model=ProfileResponse)
async def get_me(principal: Principal = Depends(get_current_principal)):
    """Get current user info"""
    return ProfileResponse(
        id=principal.id,
        email=principal.email,
        full_name=principal.full_name,
        company_id=principal.company_id,
    )
