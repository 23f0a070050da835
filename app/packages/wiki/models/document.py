"""文档模型（精简）：仅保留目录树引擎需要的字段。

文档的内容、版本与检索由文档子系统负责；这里只通过 `directory_id`
统计与清理目录下的文档，且不声明外键级联，删除策略由业务代码手动控制。
"""

from typing import Optional

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.packages.wiki.models.base import Base, TimestampMixin


class Document(TimestampMixin, Base):
    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    directory_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
