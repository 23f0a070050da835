"""目录 CRUD：物化路径目录树的持久化层。

约定：
- 单行写操作默认自动提交（``auto_commit=True``）；服务层需要把多步写入组合为
  一个事务时传入 ``auto_commit=False``，由最后一步统一提交；
- 涉及多行的写操作（批量改路径、同级重排）失败时整体回滚并原样抛出异常。
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.packages.wiki.core.exceptions import NotFoundError, ValidationError
from app.packages.wiki.core.logger import logger
from app.packages.wiki.core.timezone import now as tz_now
from app.packages.wiki.crud.base import CRUDBase
from app.packages.wiki.crud.document import document_crud
from app.packages.wiki.models.directory import Directory
from app.packages.wiki.utils.path_utils import (
    LIKE_ESCAPE_CHAR,
    ancestor_paths,
    descendant_pattern,
    escape_like,
    level,
)

_UNSET: Any = object()

_UPDATABLE_FIELDS = ("name", "description", "parent_id", "path", "sort_order")
_SORTABLE_FIELDS = {
    "sort_order": Directory.sort_order,
    "name": Directory.name,
    "path": Directory.path,
    "created_at": Directory.created_at,
    "updated_at": Directory.updated_at,
    "id": Directory.id,
}


def _parent_clause(parent_id: Optional[int]):
    if parent_id is None:
        return Directory.parent_id.is_(None)
    return Directory.parent_id == parent_id


class CRUDDirectory(CRUDBase[Directory]):
    """目录实体的数据访问方法。"""

    # ------------------------------------------------------------------
    # 写入
    # ------------------------------------------------------------------

    def create(self, db: Session, obj_in: Mapping[str, Any], *, auto_commit: bool = True) -> Directory:
        """插入一行由调用方计算好的目录数据，返回回读后的持久化对象。"""
        payload = {
            "name": obj_in["name"],
            "description": obj_in.get("description"),
            "parent_id": obj_in.get("parent_id"),
            "path": obj_in["path"],
            "sort_order": obj_in.get("sort_order") or 0,
        }
        created = super().create(db, payload, auto_commit=auto_commit)
        directory = self.find_by_id(db, created.id)
        if directory is None:
            raise NotFoundError("创建目录后无法找到该目录")
        return directory

    def update(
        self,
        db: Session,
        directory_id: int,
        partial: Mapping[str, Any],
        *,
        auto_commit: bool = True,
    ) -> Optional[Directory]:
        """仅更新传入的字段并刷新 ``updated_at``；无字段时直接返回当前行。"""
        directory = self.find_by_id(db, directory_id)
        if directory is None:
            return None
        fields = {key: partial[key] for key in _UPDATABLE_FIELDS if key in partial}
        if not fields:
            return directory
        for key, value in fields.items():
            setattr(directory, key, value)
        directory.updated_at = tz_now()
        return self.save(db, directory, auto_commit=auto_commit)

    def delete(self, db: Session, directory_id: int, *, auto_commit: bool = True) -> bool:
        """删除单个目录，仅当确实删除了一行时返回 ``True``。"""
        deleted = self.query(db).filter(Directory.id == directory_id).delete()
        if auto_commit:
            try:
                db.commit()
            except Exception:
                db.rollback()
                raise
        return deleted > 0

    def update_paths(
        self,
        db: Session,
        path_updates: Sequence[Mapping[str, Any]],
        *,
        auto_commit: bool = True,
    ) -> None:
        """批量改写路径：每项 ``{"id", "new_path"}`` 对应一条 UPDATE，整体一个事务。"""
        if not path_updates:
            return
        timestamp = tz_now()
        try:
            for item in path_updates:
                self.query(db).filter(Directory.id == item["id"]).update(
                    {Directory.path: item["new_path"], Directory.updated_at: timestamp}
                )
            if auto_commit:
                db.commit()
        except Exception:
            db.rollback()
            logger.exception("Batch path rewrite failed, rolled back %s updates", len(path_updates))
            raise

    def reorder_siblings(
        self,
        db: Session,
        parent_id: Optional[int],
        ordered_ids: Sequence[int],
    ) -> None:
        """按给定顺序把同级目录的 ``sort_order`` 设为 0..n-1，整体一个事务。"""
        timestamp = tz_now()
        try:
            for index, directory_id in enumerate(ordered_ids):
                affected = (
                    self.query(db)
                    .filter(Directory.id == directory_id)
                    .filter(_parent_clause(parent_id))
                    .update({Directory.sort_order: index, Directory.updated_at: timestamp})
                )
                if not affected:
                    raise NotFoundError(f"目录 {directory_id} 不存在或不属于指定的父目录")
            db.commit()
        except Exception:
            db.rollback()
            raise

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def find_by_id(self, db: Session, directory_id: Any) -> Optional[Directory]:
        return self.get(db, directory_id)

    def find_by_path(self, db: Session, path: str) -> Optional[Directory]:
        return self.query(db).filter(Directory.path == path).first()

    def find_by_parent_id(
        self,
        db: Session,
        parent_id: Optional[int],
        *,
        name: Optional[str] = None,
        sort_by: Optional[str] = None,
        sort_desc: bool = False,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[Directory]:
        """返回指定父目录的直接子目录，默认按 ``sort_order`` 升序。"""
        return self.find_all(
            db,
            parent_id=parent_id,
            name=name,
            sort_by=sort_by,
            sort_desc=sort_desc,
            limit=limit,
            offset=offset,
        )

    def find_all(
        self,
        db: Session,
        *,
        parent_id: Any = _UNSET,
        name: Optional[str] = None,
        sort_by: Optional[str] = None,
        sort_desc: bool = False,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[Directory]:
        query = self.query(db)
        if parent_id is not _UNSET:
            query = query.filter(_parent_clause(parent_id))
        if name:
            query = query.filter(Directory.name.like(f"%{escape_like(name)}%", escape=LIKE_ESCAPE_CHAR))

        sort_key = sort_by or "sort_order"
        column = _SORTABLE_FIELDS.get(sort_key)
        if column is None:
            raise ValidationError(f"不支持的排序字段：{sort_key}")
        primary = column.desc() if sort_desc else column.asc()
        query = query.order_by(primary, Directory.id.asc())

        if offset:
            query = query.offset(offset)
        if limit:
            query = query.limit(limit)
        return query.all()

    def list_by_ids(self, db: Session, ids: Iterable[int]) -> list[Directory]:
        tokens = {int(i) for i in ids if i is not None}
        if not tokens:
            return []
        return self.query(db).filter(Directory.id.in_(tokens)).all()

    def exists(self, db: Session, directory_id: int) -> bool:
        return (
            db.query(Directory.id).filter(Directory.id == directory_id).first() is not None
        )

    def path_exists(self, db: Session, path: str, exclude_id: Optional[int] = None) -> bool:
        """路径是否已被占用；``exclude_id`` 用于重命名时排除自身。"""
        query = db.query(Directory.id).filter(Directory.path == path)
        if exclude_id is not None:
            query = query.filter(Directory.id != exclude_id)
        return query.first() is not None

    def get_descendants(self, db: Session, directory_id: int) -> list[Directory]:
        """返回全部后代（不含自身），按 ``path`` 排序，保证祖先排在后代之前。"""
        directory = self.find_by_id(db, directory_id)
        if directory is None:
            return []
        rows = (
            self.query(db)
            .filter(Directory.path.like(descendant_pattern(directory.path), escape=LIKE_ESCAPE_CHAR))
            .order_by(Directory.path.asc())
            .all()
        )
        # 数据库排序规则可能忽略标点，这里按码点再排一次
        return sorted(rows, key=lambda d: d.path)

    def get_ancestors(self, db: Session, directory_id: int) -> list[Directory]:
        """返回祖先目录，顺序为根 -> 父。"""
        directory = self.find_by_id(db, directory_id)
        if directory is None:
            return []
        paths = ancestor_paths(directory.path)
        if not paths:
            return []
        rows = self.query(db).filter(Directory.path.in_(paths)).all()
        return sorted(rows, key=lambda d: level(d.path))

    def get_next_sort_order(self, db: Session, parent_id: Optional[int]) -> int:
        """同级最大 ``sort_order`` + 1；没有同级时为 0。"""
        current = (
            db.query(func.max(Directory.sort_order))
            .filter(_parent_clause(parent_id))
            .scalar()
        )
        return 0 if current is None else int(current) + 1

    def get_document_count(self, db: Session, directory_id: int) -> int:
        return document_crud.count_by_directory_id(db, directory_id)

    def get_document_counts(self, db: Session, directory_ids: Iterable[int]) -> dict[int, int]:
        return document_crud.count_by_directory_ids(db, directory_ids)

    def get_stats(self, db: Session) -> dict[str, int]:
        total = db.query(func.count(Directory.id)).scalar() or 0
        roots = (
            db.query(func.count(Directory.id))
            .filter(Directory.parent_id.is_(None))
            .scalar()
            or 0
        )
        # 路径中 '/' 的个数即层级
        max_depth = (
            db.query(
                func.max(
                    func.length(Directory.path)
                    - func.length(func.replace(Directory.path, "/", ""))
                )
            ).scalar()
            or 0
        )
        return {
            "total_directories": int(total),
            "root_directories": int(roots),
            "max_depth": int(max_depth),
            "total_documents": int(document_crud.count_with_directory(db)),
        }


directory_crud = CRUDDirectory(Directory)
