# models/user.py
from enum import Enum

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from models.base import PartialUpdate, RequestModel


class UserRole(str, Enum):
    # 註冊後就不能再改
    CLIENT = "client"
    FREELANCER = "freelancer"


class CallerContext(BaseModel):
    """
    「現在是誰在呼叫」。

    每個請求由 routes/auth.py 解析 Token 後產生一次，
    之後當作參數傳進各個 service 函式，不會再被修改。
    """

    model_config = ConfigDict(frozen=True)

    user_id: int
    role: UserRole

    @property
    def is_client(self) -> bool:
        return self.role == UserRole.CLIENT

    @property
    def is_freelancer(self) -> bool:
        return self.role == UserRole.FREELANCER


class SignupRequest(RequestModel):
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    # bcrypt 只看前 72 bytes，超過的部分直接擋掉
    password: str = Field(min_length=6, max_length=72)
    role: UserRole = Field(alias="userType")


class LoginRequest(RequestModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=72)


class ProfileUpdate(PartialUpdate):
    """可以修改的欄位都列在這裡，沒列的 (role、wallet、rating) 一律不能改"""

    # 大頭貼、類別可以清空
    NULLABLE_FIELDS = frozenset({"profile_picture", "category"})

    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    profile_picture: str | None = Field(default=None, max_length=500)
    skills: list[str] | None = None
    category: str | None = Field(default=None, max_length=50)


def public_profile(user: dict, include_private: bool = False) -> dict:
    """
    把資料庫的 user row 轉成可以對外公開的格式。
    錢包餘額只有本人看得到 (include_private=True)。
    """
    profile = {
        "id": user["id"],
        "name": user["name"],
        "email": user["email"],
        "role": user["role"],
        "profile_picture": user.get("profile_picture"),
        "description": user.get("description") or "",
        "skills": user.get("skills") or [],
        "category": user.get("category"),
        "rating": user.get("rating", 0),
        "total_reviews": user.get("total_reviews", 0),
        "created_at": user.get("created_at"),
    }
    if include_private:
        profile["wallet_balance"] = user.get("wallet_balance", 0)
    return profile
