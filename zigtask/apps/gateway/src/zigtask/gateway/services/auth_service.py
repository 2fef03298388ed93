"""AuthService -- 注册/登录/token 校验

密码使用 bcrypt 哈希（CPU 密集，放到线程池执行），token 为 HS256 JWT，
claims 为 {"userId", "email", "iat", "exp"}。
HTTP 与实时通道共用同一套 token 校验。
"""

import asyncio
from datetime import UTC, datetime, timedelta

import bcrypt
import jwt
import structlog
from ulid import ULID
from zigtask.core.config import JWT_ALGORITHM
from zigtask.core.exceptions import (
    ConflictError,
    UnauthorizedError,
    ValidationError,
)
from zigtask.core.models import StoredUser, User
from zigtask.core.store.protocols import UserStore

log = structlog.get_logger()

_INVALID_CREDENTIALS = "Invalid credentials"


class AuthService:
    """鉴权服务"""

    def __init__(
        self,
        user_store: UserStore,
        secret: str,
        token_ttl_seconds: int,
        bcrypt_rounds: int = 12,
    ) -> None:
        self._users = user_store
        self._secret = secret
        self._token_ttl = timedelta(seconds=token_ttl_seconds)
        self._bcrypt_rounds = bcrypt_rounds

    async def sign_up(
        self,
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
    ) -> tuple[User, str]:
        """注册新用户

        Returns:
            (user, token)

        Raises:
            ValidationError: 邮箱格式非法或密码为空
            ConflictError: 邮箱已被注册
        """
        email = email.strip().lower()
        if "@" not in email:
            raise ValidationError("email must be a valid email address")
        if not password:
            raise ValidationError("password should not be empty")

        if await self._users.get_user_by_email(email) is not None:
            log.warning("signup_email_taken", email=email)
            raise ConflictError("User with this email already exists")

        password_hash = await asyncio.to_thread(self._hash_password, password)
        now = datetime.now(UTC)
        stored = StoredUser(
            id=str(ULID()),
            email=email,
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            password_hash=password_hash,
            created_at=now,
            updated_at=now,
        )
        # 并发注册同一邮箱时由唯一约束兜底，store 抛出 ConflictError
        await self._users.create_user(stored)

        log.info("user_signed_up", user_id=stored.id)
        user = stored.public()
        return user, self.issue_token(user)

    async def sign_in(self, email: str, password: str) -> tuple[User, str]:
        """邮箱 + 密码登录

        邮箱不存在与密码错误返回相同错误，避免泄露账号是否存在。

        Raises:
            UnauthorizedError: 凭证错误
        """
        stored = await self._users.get_user_by_email(email.strip())
        if stored is None:
            log.warning("signin_unknown_email")
            raise UnauthorizedError(_INVALID_CREDENTIALS)

        valid = await asyncio.to_thread(
            bcrypt.checkpw,
            password.encode("utf-8"),
            stored.password_hash.encode("utf-8"),
        )
        if not valid:
            log.warning("signin_invalid_password", user_id=stored.id)
            raise UnauthorizedError(_INVALID_CREDENTIALS)

        log.info("user_signed_in", user_id=stored.id)
        user = stored.public()
        return user, self.issue_token(user)

    def issue_token(self, user: User) -> str:
        """签发 token"""
        now = datetime.now(UTC)
        claims = {
            "userId": user.id,
            "email": user.email,
            "iat": now,
            "exp": now + self._token_ttl,
        }
        return jwt.encode(claims, self._secret, algorithm=JWT_ALGORITHM)

    def verify_token(self, token: str) -> str:
        """校验 token 签名与有效期

        Returns:
            token 中的 userId

        Raises:
            UnauthorizedError: token 缺失、过期、签名错误或缺少 userId
        """
        if not token:
            raise UnauthorizedError("Missing bearer token")
        try:
            claims = jwt.decode(token, self._secret, algorithms=[JWT_ALGORITHM])
        except jwt.ExpiredSignatureError as e:
            raise UnauthorizedError("Token expired") from e
        except jwt.InvalidTokenError as e:
            raise UnauthorizedError("Invalid token") from e

        user_id = claims.get("userId")
        if not isinstance(user_id, str) or not user_id:
            raise UnauthorizedError("Invalid token")
        return user_id

    async def authenticate(self, token: str) -> User:
        """校验 token 并加载用户（用户已删除视为未授权）"""
        user_id = self.verify_token(token)
        stored = await self._users.get_user(user_id)
        if stored is None:
            log.warning("token_user_not_found", user_id=user_id)
            raise UnauthorizedError("User not found")
        return stored.public()

    def _hash_password(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self._bcrypt_rounds)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")
