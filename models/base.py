# models/base.py
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel


class RequestModel(BaseModel):
    """
    所有 Request Body 的共同基底。

    前端 (React) 習慣送 camelCase，例如 {"gigId": 1}，
    Python 這邊用 snake_case，兩種寫法都接受。
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class PartialUpdate(RequestModel):
    """
    部分更新 (PUT) 用的基底：沒送的欄位不動。

    明確送 null 只允許 NULLABLE_FIELDS 裡的欄位 (資料庫可以是 NULL 的)，
    其他欄位送 null 直接回 400，不會寫到 NOT NULL 欄位去。
    """

    NULLABLE_FIELDS: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def reject_explicit_nulls(self):
        for name in sorted(self.model_fields_set - self.NULLABLE_FIELDS):
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self
