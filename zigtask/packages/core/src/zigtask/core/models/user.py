"""User Domain Model

用户由鉴权服务创建，对任务核心只读。密码哈希只存在于 StoredUser，不会被序列化。
"""

from pydantic import Field

from .task import ApiModel, UtcDatetime


class User(ApiModel):
    """对外暴露的用户信息"""

    id: str = Field(description="唯一标识，ULID 格式")
    email: str = Field(description="邮箱（小写，唯一）")
    first_name: str = Field(default="", description="名")
    last_name: str = Field(default="", description="姓")
    created_at: UtcDatetime = Field(description="创建时间")
    updated_at: UtcDatetime = Field(description="更新时间")


class StoredUser(User):
    """存储层用户记录（含密码哈希）"""

    password_hash: str = Field(exclude=True, repr=False)

    def public(self) -> User:
        """去掉密码哈希的对外视图"""
        return User.model_validate(self.model_dump())
