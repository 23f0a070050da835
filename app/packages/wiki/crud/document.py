"""文档 CRUD（目录树引擎所需的最小子集）：按目录统计、列举与清理文档。"""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.packages.wiki.crud.base import CRUDBase
from app.packages.wiki.models.document import Document


class CRUDDocument(CRUDBase[Document]):
    def count_by_directory_id(self, db: Session, directory_id: int) -> int:
        return (
            db.query(func.count(Document.id))
            .filter(Document.directory_id == directory_id)
            .scalar()
            or 0
        )

    def count_by_directory_ids(self, db: Session, directory_ids: Iterable[int]) -> dict[int, int]:
        """一次分组查询返回 ``{directory_id: count}``；空输入不发起查询。"""
        ids = {int(i) for i in directory_ids if i is not None}
        if not ids:
            return {}
        rows = (
            db.query(Document.directory_id, func.count(Document.id))
            .filter(Document.directory_id.in_(ids))
            .group_by(Document.directory_id)
            .all()
        )
        return {int(directory_id): int(count) for directory_id, count in rows}

    def count_with_directory(self, db: Session) -> int:
        return (
            db.query(func.count(Document.id))
            .filter(Document.directory_id.isnot(None))
            .scalar()
            or 0
        )

    def list_ids_by_directory_ids(self, db: Session, directory_ids: Iterable[int]) -> list[int]:
        ids = {int(i) for i in directory_ids if i is not None}
        if not ids:
            return []
        rows = (
            db.query(Document.id)
            .filter(Document.directory_id.in_(ids))
            .order_by(Document.id.asc())
            .all()
        )
        return [row[0] for row in rows]

    def delete_by_directory_ids(
        self, db: Session, directory_ids: Iterable[int], *, auto_commit: bool = True
    ) -> int:
        """物理删除指定目录下的全部文档，返回删除行数。"""
        ids = {int(i) for i in directory_ids if i is not None}
        if not ids:
            return 0
        deleted = (
            db.query(Document)
            .filter(Document.directory_id.in_(ids))
            .delete(synchronize_session=False)
        )
        if auto_commit:
            try:
                db.commit()
            except Exception:
                db.rollback()
                raise
        return deleted


document_crud = CRUDDocument(Document)
