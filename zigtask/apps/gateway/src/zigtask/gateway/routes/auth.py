"""鉴权路由

POST /auth/signup: 注册，返回 201 {message, user, token}；邮箱已注册返回 409。
POST /auth/signin: 登录，返回 200 {message, user, token}；凭证错误返回 401。
GET  /auth/me:     当前 token 对应的用户。
"""

from fastapi import APIRouter, Depends
from pydantic import Field
from zigtask.core.models import ApiModel, User

from ..deps import get_auth_service, get_current_user
from ..services.auth_service import AuthService

router = APIRouter()


class SignUpRequest(ApiModel):
    """注册请求体"""

    email: str = Field(description="邮箱")
    password: str = Field(min_length=6, description="密码，至少 6 位")
    first_name: str = Field(default="", description="名")
    last_name: str = Field(default="", description="姓")


class SignInRequest(ApiModel):
    """登录请求体"""

    email: str
    password: str


class AuthResponse(ApiModel):
    """注册/登录响应"""

    message: str
    user: User
    token: str


@router.post("/auth/signup", status_code=201, response_model=AuthResponse)
async def sign_up(
    body: SignUpRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """注册新用户"""
    user, token = await auth_service.sign_up(
        body.email,
        body.password,
        body.first_name,
        body.last_name,
    )
    return AuthResponse(message="User registered successfully", user=user, token=token)


@router.post("/auth/signin", response_model=AuthResponse)
async def sign_in(
    body: SignInRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """邮箱 + 密码登录"""
    user, token = await auth_service.sign_in(body.email, body.password)
    return AuthResponse(message="User logged in successfully", user=user, token=token)


@router.get("/auth/me", response_model=User)
async def me(user: User = Depends(get_current_user)):
    """当前登录用户"""
    return user
