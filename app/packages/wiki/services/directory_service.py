"""目录服务：处理目录树的增删改查、移动、复制与级联逻辑。

所有跨行的树不变量都在这里维护：
- 路径唯一：写入前用 ``path_exists`` 预检，提交时由数据库唯一约束最终裁决，
  违反约束统一转换为 ``ConflictError``；
- 无环：任何改变 ``parent_id`` 的操作都先做环检测；
- 级联：移动/重命名时，源目录与全部后代的路径改写在同一个事务里提交。

方法返回普通的 dict/list，路由层负责包装为统一响应。
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.packages.wiki.core.constants import (
    DIRECTORY_COPY_SUFFIX,
    DIRECTORY_PATH_MAX_LENGTH,
    ROOT_PATH,
    VIRTUAL_ROOT_ID,
    VIRTUAL_ROOT_NAME,
)
from app.packages.wiki.core.exceptions import (
    ConflictError,
    CycleError,
    NotEmptyError,
    NotFoundError,
    ValidationError,
)
from app.packages.wiki.core.logger import logger
from app.packages.wiki.core.timezone import format_datetime
from app.packages.wiki.crud.directory import directory_crud
from app.packages.wiki.crud.document import document_crud
from app.packages.wiki.models.directory import Directory
from app.packages.wiki.services.directory_tree import directory_tree_builder
from app.packages.wiki.utils.path_utils import (
    build_path,
    level,
    parent_path,
    rebase_path,
    validate_description,
    validate_name,
    validate_sort_order,
    would_create_cycle,
)

SUPPORTED_OPERATIONS = ("create", "update", "delete", "move")


def _normalize_parent_id(value: Optional[int]) -> Optional[int]:
    # 0 表示虚拟根目录，与 None 等价
    if value is None or value == 0:
        return None
    return int(value)


def _item(move: Any, key: str) -> Any:
    if isinstance(move, Mapping):
        return move.get(key)
    return getattr(move, key, None)


class DirectoryService:
    """封装目录树相关的业务逻辑。"""

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def list_directories(
        self,
        db: Session,
        *,
        parent_id: Optional[int] = None,
        include_children: bool = False,
        include_documents: bool = False,
        max_depth: Optional[int] = None,
        name: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        sort_by: Optional[str] = None,
        sort_desc: bool = False,
    ) -> dict[str, Any]:
        """返回目录列表；``include_children`` 时返回以 ``parent_id`` 子目录为根的树。"""
        parent_id = _normalize_parent_id(parent_id)
        if parent_id is not None:
            self._require(db, parent_id, "父目录不存在")

        if include_children:
            rows = self._load_subtree_rows(db, parent_id=parent_id, max_depth=max_depth, name=name)
            counts = (
                directory_crud.get_document_counts(db, [row.id for row in rows])
                if include_documents
                else None
            )
            tree = directory_tree_builder.build_tree(rows, counts)
            return {"directories": tree, "total": len(tree)}

        if parent_id is not None:
            rows = directory_crud.find_by_parent_id(
                db,
                parent_id,
                name=name,
                sort_by=sort_by,
                sort_desc=sort_desc,
                limit=limit,
                offset=offset,
            )
        else:
            rows = directory_crud.find_all(
                db,
                name=name,
                sort_by=sort_by,
                sort_desc=sort_desc,
                limit=limit,
                offset=offset,
            )

        counts = (
            directory_crud.get_document_counts(db, [row.id for row in rows])
            if include_documents
            else None
        )
        items = []
        for row in rows:
            if counts is None:
                items.append(self._serialize(row))
            else:
                count = counts.get(row.id, 0)
                items.append(self._serialize(row, document_count=count, total_document_count=count))
        return {"directories": items, "total": len(items)}

    def get_directory(self, db: Session, directory_id: int) -> dict[str, Any]:
        directory = self._require(db, directory_id)
        document_count = directory_crud.get_document_count(db, directory.id)
        descendants = directory_crud.get_descendants(db, directory.id)
        descendant_counts = directory_crud.get_document_counts(db, [d.id for d in descendants])
        return self._serialize(
            directory,
            document_count=document_count,
            total_document_count=document_count + sum(descendant_counts.values()),
        )

    def get_stats(self, db: Session) -> dict[str, int]:
        return directory_crud.get_stats(db)

    def get_directory_path_info(self, db: Session, directory_id: int) -> dict[str, Any]:
        """返回目录自身、祖先、直接子目录与面包屑（首项为虚拟根目录）。"""
        directory = self._require(db, directory_id)
        ancestors = directory_crud.get_ancestors(db, directory.id)
        children = directory_crud.find_by_parent_id(db, directory.id)

        breadcrumb = [{"id": VIRTUAL_ROOT_ID, "name": VIRTUAL_ROOT_NAME, "path": ROOT_PATH}]
        breadcrumb.extend({"id": a.id, "name": a.name, "path": a.path} for a in ancestors)
        breadcrumb.append({"id": directory.id, "name": directory.name, "path": directory.path})

        return {
            "directory": self._serialize(directory),
            "ancestors": [self._serialize(a) for a in ancestors],
            "children": [self._serialize(c) for c in children],
            "breadcrumb": breadcrumb,
        }

    # ------------------------------------------------------------------
    # 创建 / 更新
    # ------------------------------------------------------------------

    def create_directory(
        self,
        db: Session,
        *,
        name: str,
        description: Optional[str] = None,
        parent_id: Optional[int] = None,
        sort_order: Optional[int] = None,
    ) -> dict[str, Any]:
        validate_name(name)
        validate_description(description)
        validate_sort_order(sort_order)

        parent_id = _normalize_parent_id(parent_id)
        parent_dir_path: Optional[str] = None
        if parent_id is not None:
            parent = self._require(db, parent_id, "父目录不存在")
            parent_dir_path = parent.path

        path = build_path(parent_dir_path, name)
        self._ensure_path_length([path])
        if directory_crud.path_exists(db, path):
            raise ConflictError("该路径下已存在同名目录")

        if sort_order is None:
            sort_order = directory_crud.get_next_sort_order(db, parent_id)

        try:
            created = directory_crud.create(
                db,
                {
                    "name": name.strip(),
                    "description": description,
                    "parent_id": parent_id,
                    "path": path,
                    "sort_order": sort_order,
                },
            )
        except IntegrityError as exc:
            raise ConflictError("该路径下已存在同名目录") from exc

        logger.info("Created directory id=%s path=%s", created.id, created.path)
        return self._serialize(created)

    def update_directory(
        self,
        db: Session,
        directory_id: int,
        changes: Mapping[str, Any],
    ) -> dict[str, Any]:
        """更新名称/描述/排序/父目录；路径变化时级联改写全部后代路径。

        ``changes`` 只包含调用方显式提供的字段；``parent_id`` 为 ``None``
        表示移动到根级。
        """
        directory = self._require(db, directory_id)
        old_path = directory.path

        if "name" in changes:
            validate_name(changes["name"])
        if "description" in changes:
            validate_description(changes["description"])
        if changes.get("sort_order") is not None:
            validate_sort_order(changes["sort_order"])

        partial: dict[str, Any] = {}
        if "parent_id" in changes:
            new_parent_id = _normalize_parent_id(changes["parent_id"])
            if new_parent_id == directory.id:
                raise CycleError("目录不能设置自己为父目录")
            new_parent_path: Optional[str] = None
            if new_parent_id is not None:
                parent = self._require(db, new_parent_id, "父目录不存在")
                if would_create_cycle(directory.path, parent.path):
                    raise CycleError()
                new_parent_path = parent.path
            partial["parent_id"] = new_parent_id
        else:
            new_parent_path = parent_path(directory.path)

        new_name = directory.name
        if "name" in changes:
            new_name = changes["name"].strip()
            partial["name"] = new_name
        if "description" in changes:
            partial["description"] = changes["description"]
        if changes.get("sort_order") is not None:
            partial["sort_order"] = changes["sort_order"]

        new_path = build_path(new_parent_path, new_name)
        path_updates: list[dict[str, Any]] = []
        if new_path != old_path:
            if directory_crud.path_exists(db, new_path, exclude_id=directory.id):
                raise ConflictError("该路径下已存在同名目录")
            partial["path"] = new_path
            path_updates = [
                {"id": d.id, "new_path": rebase_path(d.path, old_path, new_path)}
                for d in directory_crud.get_descendants(db, directory.id)
            ]
            self._ensure_path_length([new_path, *(u["new_path"] for u in path_updates)])

        try:
            updated = directory_crud.update(db, directory.id, partial, auto_commit=False)
            directory_crud.update_paths(db, path_updates, auto_commit=False)
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ConflictError("该路径下已存在同名目录") from exc
        except Exception:
            db.rollback()
            logger.exception("Failed to update directory id=%s", directory_id)
            raise

        if new_path != old_path:
            logger.info(
                "Renamed directory id=%s %s -> %s (%s descendants rewritten)",
                directory_id,
                old_path,
                new_path,
                len(path_updates),
            )
        return self._serialize(updated)

    # ------------------------------------------------------------------
    # 删除
    # ------------------------------------------------------------------

    def check_delete_status(self, db: Session, directory_id: int) -> dict[str, Any]:
        """检查删除前的状态：仅当没有直接子目录且没有直接文档时可删除。"""
        directory = self._require(db, directory_id)

        children = directory_crud.find_by_parent_id(db, directory.id)
        children_count = len(children)
        document_count = directory_crud.get_document_count(db, directory.id)

        descendants = directory_crud.get_descendants(db, directory.id)
        descendant_counts = directory_crud.get_document_counts(db, [d.id for d in descendants])
        descendant_documents = sum(descendant_counts.values())
        total_document_count = document_count + descendant_documents

        warnings: list[str] = []
        if children_count > 0:
            warnings.append(f"该目录包含 {children_count} 个子目录")
        if document_count > 0:
            warnings.append(f"该目录包含 {document_count} 个文档")
        if descendant_documents > 0:
            warnings.append(f"子目录中包含 {descendant_documents} 个文档")
        if descendants:
            warnings.append(f"删除操作将影响 {len(descendants) + 1} 个目录")

        return {
            "can_delete": children_count == 0 and document_count == 0,
            "has_children": children_count > 0,
            "has_documents": document_count > 0,
            "children_count": children_count,
            "document_count": document_count,
            "total_document_count": total_document_count,
            "warnings": warnings,
        }

    def delete_directory(self, db: Session, directory_id: int, *, force: bool = False) -> dict[str, Any]:
        """删除目录；非强制删除要求目录为空，否则抛出 ``NotEmptyError``。"""
        if force:
            return self.force_delete_directory(db, directory_id)

        check = self.check_delete_status(db, directory_id)
        if not check["can_delete"]:
            raise NotEmptyError(data=check)

        if not directory_crud.delete(db, directory_id):
            raise NotFoundError()
        logger.info("Deleted directory id=%s", directory_id)
        return {"deleted_directories": [directory_id], "deleted_documents": [], "warnings": []}

    def force_delete_directory(self, db: Session, directory_id: int) -> dict[str, Any]:
        """级联删除目录、全部后代目录及其文档（不可逆），按层级由深到浅删除。"""
        directory = self._require(db, directory_id)
        descendants = directory_crud.get_descendants(db, directory.id)
        targets = [directory, *descendants]
        target_ids = [d.id for d in targets]

        document_ids = document_crud.list_ids_by_directory_ids(db, target_ids)

        warnings: list[str] = []
        if descendants:
            warnings.append(f"将删除 {len(descendants)} 个子目录")
        if document_ids:
            warnings.append(f"将删除 {len(document_ids)} 个文档")
        warnings.append("此操作不可逆，请确认后再执行")

        ordered_ids = [d.id for d in sorted(targets, key=lambda d: level(d.path), reverse=True)]
        deleted_directories: list[int] = []
        try:
            document_crud.delete_by_directory_ids(db, target_ids, auto_commit=False)
            for target_id in ordered_ids:
                if directory_crud.delete(db, target_id, auto_commit=False):
                    deleted_directories.append(target_id)
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Force delete of directory id=%s failed, rolled back", directory_id)
            raise

        logger.info(
            "Force deleted directory id=%s: %s directories, %s documents",
            directory_id,
            len(deleted_directories),
            len(document_ids),
        )
        return {
            "deleted_directories": deleted_directories,
            "deleted_documents": document_ids,
            "warnings": warnings,
        }

    # ------------------------------------------------------------------
    # 移动 / 复制 / 排序
    # ------------------------------------------------------------------

    def move_directory_with_children(
        self,
        db: Session,
        source_id: int,
        target_parent_id: Optional[int] = None,
        new_sort_order: Optional[int] = None,
    ) -> dict[str, Any]:
        """移动目录及其全部后代；``target_parent_id`` 为空表示移动到根级。"""
        source = self._require(db, source_id, "源目录不存在")
        validate_sort_order(new_sort_order)

        target_parent_id = _normalize_parent_id(target_parent_id)
        target_parent_path: Optional[str] = None
        if target_parent_id is not None:
            if target_parent_id == source.id:
                raise CycleError("不能将目录移动到自己下面")
            target_parent = self._require(db, target_parent_id, "目标父目录不存在")
            if would_create_cycle(source.path, target_parent.path):
                raise CycleError()
            target_parent_path = target_parent.path

        old_path = source.path
        new_path = build_path(target_parent_path, source.name)
        if directory_crud.path_exists(db, new_path, exclude_id=source.id):
            raise ConflictError()

        # 变更前先取出全部后代
        descendants = [(d.id, d.path) for d in directory_crud.get_descendants(db, source.id)]

        if new_sort_order is None:
            new_sort_order = directory_crud.get_next_sort_order(db, target_parent_id)

        affected_paths = [
            {"id": did, "old_path": path, "new_path": rebase_path(path, old_path, new_path)}
            for did, path in descendants
        ]
        self._ensure_path_length([new_path, *(a["new_path"] for a in affected_paths)])

        try:
            moved = directory_crud.update(
                db,
                source.id,
                {"parent_id": target_parent_id, "path": new_path, "sort_order": new_sort_order},
                auto_commit=False,
            )
            directory_crud.update_paths(
                db,
                [{"id": a["id"], "new_path": a["new_path"]} for a in affected_paths],
                auto_commit=False,
            )
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            logger.warning("Move of directory id=%s rejected by unique path constraint", source_id)
            raise ConflictError() from exc
        except Exception:
            db.rollback()
            logger.exception("Failed to move directory id=%s", source_id)
            raise

        logger.info(
            "Moved directory id=%s %s -> %s (%s descendants)",
            source_id,
            old_path,
            new_path,
            len(affected_paths),
        )
        return {"moved_directory": self._serialize(moved), "affected_paths": affected_paths}

    def batch_move_directories(self, db: Session, moves: Iterable[Any]) -> dict[str, Any]:
        """逐个执行移动，单个失败只记录到 ``failed_moves``，不影响其余移动。

        不存在跨移动的事务：每个移动各自提交或回滚。任何异常（包括参数格式错误）
        都记为 ``{source_id, error}``，整个批次总是正常返回。
        """
        successful_moves: list[dict[str, Any]] = []
        failed_moves: list[dict[str, Any]] = []
        for move in moves:
            source_id = _item(move, "source_id")
            try:
                result = self.move_directory_with_children(
                    db,
                    source_id,
                    _item(move, "target_parent_id"),
                    _item(move, "new_sort_order"),
                )
            except Exception as exc:
                db.rollback()
                logger.warning("Batch move of directory id=%s failed: %s", source_id, exc)
                failed_moves.append({"source_id": source_id, "error": str(exc) or "未知错误"})
                continue
            successful_moves.append(result)
        return {"successful_moves": successful_moves, "failed_moves": failed_moves}

    def copy_directory_structure(
        self,
        db: Session,
        source_id: int,
        target_parent_id: Optional[int] = None,
        new_name: Optional[str] = None,
    ) -> dict[str, Any]:
        """复制目录骨架（不复制文档）到目标父目录下，默认名称为 ``<原名>_copy``。

        目标父目录为源目录自身或其后代时抛出 ``CycleError``，不允许复制进自身子树。
        """
        source = self._require(db, source_id, "源目录不存在")

        target_parent_id = _normalize_parent_id(target_parent_id)
        target_parent_path: Optional[str] = None
        if target_parent_id is not None:
            target_parent = self._require(db, target_parent_id, "目标父目录不存在")
            if would_create_cycle(source.path, target_parent.path):
                raise CycleError("不能将目录复制到其自身或子目录下")
            target_parent_path = target_parent.path

        copy_name = new_name if new_name is not None else f"{source.name}{DIRECTORY_COPY_SUFFIX}"
        validate_name(copy_name)
        copy_name = copy_name.strip()
        copy_path = build_path(target_parent_path, copy_name)
        if directory_crud.path_exists(db, copy_path):
            raise ConflictError()

        descendants = sorted(
            directory_crud.get_descendants(db, source.id),
            key=lambda d: (level(d.path), d.path),
        )
        self._ensure_path_length(
            [copy_path, *(rebase_path(d.path, source.path, copy_path) for d in descendants)]
        )

        try:
            copied_root = directory_crud.create(
                db,
                {
                    "name": copy_name,
                    "description": source.description,
                    "parent_id": target_parent_id,
                    "path": copy_path,
                    "sort_order": directory_crud.get_next_sort_order(db, target_parent_id),
                },
                auto_commit=False,
            )
            created_by_path: dict[str, Directory] = {copied_root.path: copied_root}
            copied_children: list[Directory] = []
            for descendant in descendants:
                child_path = rebase_path(descendant.path, source.path, copied_root.path)
                parent_copy_path = parent_path(child_path)
                parent_copy = created_by_path.get(parent_copy_path) or directory_crud.find_by_path(
                    db, parent_copy_path
                )
                if parent_copy is None:
                    raise NotFoundError(f"复制目录时未找到父目录：{parent_copy_path}")
                child = directory_crud.create(
                    db,
                    {
                        "name": descendant.name,
                        "description": descendant.description,
                        "parent_id": parent_copy.id,
                        "path": child_path,
                        "sort_order": descendant.sort_order,
                    },
                    auto_commit=False,
                )
                created_by_path[child.path] = child
                copied_children.append(child)
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ConflictError() from exc
        except Exception:
            db.rollback()
            logger.exception("Failed to copy directory id=%s", source_id)
            raise

        logger.info(
            "Copied directory id=%s %s -> %s (%s descendants)",
            source_id,
            source.path,
            copied_root.path,
            len(copied_children),
        )
        return {
            "copied_directory": self._serialize(copied_root),
            "copied_children": [self._serialize(c) for c in copied_children],
        }

    def reorder_directories(
        self,
        db: Session,
        parent_id: Optional[int],
        ordered_ids: Sequence[int],
    ) -> list[dict[str, Any]]:
        """按给定顺序重排同级目录，返回重排后的同级列表。"""
        parent_id = _normalize_parent_id(parent_id)
        if parent_id is not None and not directory_crud.exists(db, parent_id):
            raise NotFoundError("父目录不存在")
        if len(set(ordered_ids)) != len(ordered_ids):
            raise ValidationError("目录ID不能重复")

        rows = {d.id: d for d in directory_crud.list_by_ids(db, ordered_ids)}
        for directory_id in ordered_ids:
            directory = rows.get(directory_id)
            if directory is None:
                raise NotFoundError(f"目录 {directory_id} 不存在")
            if directory.parent_id != parent_id:
                raise ValidationError(f"目录 {directory_id} 不属于指定的父目录")

        directory_crud.reorder_siblings(db, parent_id, ordered_ids)
        logger.info("Reordered %s directories under parent_id=%s", len(ordered_ids), parent_id)
        return [self._serialize(d) for d in directory_crud.find_by_parent_id(db, parent_id)]

    # ------------------------------------------------------------------
    # 预检
    # ------------------------------------------------------------------

    def validate_directory_operation(
        self,
        db: Session,
        operation: str,
        directory_id: Optional[int] = None,
        target_parent_id: Optional[int] = None,
    ) -> dict[str, Any]:
        """无副作用的操作预检，规则与实际执行的操作一致。"""
        errors: list[str] = []
        warnings: list[str] = []

        if operation not in SUPPORTED_OPERATIONS:
            errors.append(f"不支持的操作类型：{operation}")
            return {"valid": False, "errors": errors, "warnings": warnings}

        target_parent_id = _normalize_parent_id(target_parent_id)
        try:
            parent_checked = False
            if directory_id is not None:
                directory = directory_crud.find_by_id(db, directory_id)
                if directory is None:
                    errors.append("目录不存在")
                    return {"valid": False, "errors": errors, "warnings": warnings}

                if operation == "delete":
                    check = self.check_delete_status(db, directory_id)
                    if not check["can_delete"]:
                        errors.append("目录不为空，无法删除")
                        warnings.extend(check["warnings"])

                if operation == "move":
                    if target_parent_id == directory.id:
                        errors.append("不能将目录移动到自己下面")
                        parent_checked = True
                    else:
                        target_path: Optional[str] = None
                        if target_parent_id is not None:
                            parent_checked = True
                            target_parent = directory_crud.find_by_id(db, target_parent_id)
                            if target_parent is None:
                                errors.append("目标父目录不存在")
                            elif would_create_cycle(directory.path, target_parent.path):
                                errors.append("不能将目录移动到其子目录下")
                            else:
                                target_path = target_parent.path
                        if not errors:
                            new_path = build_path(target_path, directory.name)
                            if directory_crud.path_exists(db, new_path, exclude_id=directory.id):
                                errors.append("目标位置已存在同名目录")

            if target_parent_id is not None and not parent_checked:
                if not directory_crud.exists(db, target_parent_id):
                    errors.append("父目录不存在")
        except SQLAlchemyError:
            logger.exception("Directory operation pre-check failed: %s", operation)
            errors.append("验证操作时发生错误")

        return {"valid": not errors, "errors": errors, "warnings": warnings}

    # ------------------------------------------------------------------
    # 内部工具
    # ------------------------------------------------------------------

    def _require(self, db: Session, directory_id: Optional[int], msg: str = "目录不存在") -> Directory:
        directory = directory_crud.find_by_id(db, directory_id) if directory_id is not None else None
        if directory is None:
            raise NotFoundError(msg)
        return directory

    def _load_subtree_rows(
        self,
        db: Session,
        *,
        parent_id: Optional[int],
        max_depth: Optional[int],
        name: Optional[str],
    ) -> list[Directory]:
        if parent_id is None:
            rows = directory_crud.find_all(db, name=name)
            base_level = 0
        else:
            rows = directory_crud.get_descendants(db, parent_id)
            if name:
                rows = [row for row in rows if name in row.name]
            base_level = level(self._require(db, parent_id).path)
        if max_depth is not None:
            rows = [row for row in rows if level(row.path) - base_level <= max_depth]
        return rows

    @staticmethod
    def _ensure_path_length(paths: Iterable[str]) -> None:
        for path in paths:
            if len(path) > DIRECTORY_PATH_MAX_LENGTH:
                raise ValidationError(f"目录路径长度不能超过{DIRECTORY_PATH_MAX_LENGTH}个字符")

    @staticmethod
    def _serialize(
        directory: Directory,
        *,
        document_count: Optional[int] = None,
        total_document_count: Optional[int] = None,
    ) -> dict[str, Any]:
        payload = {
            "id": directory.id,
            "name": directory.name,
            "description": directory.description,
            "parent_id": directory.parent_id,
            "path": directory.path,
            "sort_order": directory.sort_order,
            "level": level(directory.path),
            "created_at": format_datetime(directory.created_at),
            "updated_at": format_datetime(directory.updated_at),
        }
        if document_count is not None:
            payload["document_count"] = document_count
        if total_document_count is not None:
            payload["total_document_count"] = total_document_count
        return payload


directory_service = DirectoryService()
