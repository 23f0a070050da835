"""Database bootstrapping utilities."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from app.packages.wiki.core.config import get_settings
from app.packages.wiki.db import session as db_session
from app.packages.wiki.models.base import Base
from app.packages.wiki.models.directory import Directory
from app.packages.wiki.models.document import Document  # noqa: F401 - ensure table creation
from app.packages.wiki.utils.path_utils import build_path

logger = logging.getLogger(__name__)

# (名称, 描述, 子目录)
DEFAULT_DIRECTORIES: Sequence[tuple[str, str, Sequence[tuple[str, str]]]] = (
    (
        "技术文档",
        "技术相关的文档和资料",
        (
            ("前端开发", "前端开发相关文档"),
            ("后端开发", "后端开发相关文档"),
            ("数据库", "数据库设计与运维文档"),
        ),
    ),
    (
        "产品文档",
        "产品需求和设计文档",
        (
            ("需求文档", "产品需求说明"),
            ("设计文档", "交互与视觉设计"),
        ),
    ),
    (
        "运营文档",
        "运营相关的文档和资料",
        (),
    ),
)


def init_db() -> None:
    """Create all database tables if they do not exist and optionally seed directories."""
    Base.metadata.create_all(bind=db_session.engine)

    if not get_settings().seed_default_directories:
        return

    session = db_session.SessionLocal()
    try:
        seeded = seed_default_directories(session)
        session.commit()
        if seeded:
            logger.info("Seeded %s default directories", seeded)
    except Exception:  # pragma: no cover - initialization failures should surface
        session.rollback()
        logger.exception("Failed to seed default directories during database initialization")
        raise
    finally:
        session.close()


def seed_default_directories(db: Session) -> int:
    """写入默认目录结构（已存在的路径跳过），返回新增目录数；不提交事务。"""
    created = 0
    for root_index, (name, description, children) in enumerate(DEFAULT_DIRECTORIES):
        root, root_created = _ensure_directory(db, name, description, None, root_index)
        created += root_created
        for child_index, (child_name, child_description) in enumerate(children):
            _, child_created = _ensure_directory(db, child_name, child_description, root, child_index)
            created += child_created
    return created


def _ensure_directory(
    db: Session,
    name: str,
    description: str,
    parent: Optional[Directory],
    sort_order: int,
) -> tuple[Directory, int]:
    path = build_path(parent.path if parent is not None else None, name)
    existing = db.query(Directory).filter(Directory.path == path).first()
    if existing is not None:
        return existing, 0
    directory = Directory(
        name=name,
        description=description,
        parent_id=parent.id if parent is not None else None,
        path=path,
        sort_order=sort_order,
    )
    db.add(directory)
    db.flush()
    return directory, 1
