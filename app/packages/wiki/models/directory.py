"""目录模型：知识库中以物化路径表示的目录树节点。

存储规则：
- path：以 '/' 开头，不以 '/' 结尾，各段为清洗后的目录名；全表唯一；
- parent_id：为空表示根级目录；不声明 ORM 关系，树结构按需在内存中重建；
- sort_order：同级目录的排序键，非负，不要求连续。
"""

from typing import Optional

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.packages.wiki.core.constants import (
    DIRECTORY_NAME_MAX_LENGTH,
    DIRECTORY_PATH_MAX_LENGTH,
)
from app.packages.wiki.models.base import Base, TimestampMixin


class Directory(TimestampMixin, Base):
    __tablename__ = "directories"
    __table_args__ = (
        # 物化路径全表唯一，是并发移动/复制冲突的最终裁决
        UniqueConstraint("path", name="uq_directories_path"),
        CheckConstraint("parent_id IS NULL OR parent_id <> id", name="no_self_parent"),
        CheckConstraint("sort_order >= 0", name="sort_order_non_negative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(DIRECTORY_NAME_MAX_LENGTH), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    parent_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("directories.id"), nullable=True, index=True
    )
    path: Mapped[str] = mapped_column(String(DIRECTORY_PATH_MAX_LENGTH), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False, index=True)

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"<Directory id={self.id} path={self.path!r}>"
