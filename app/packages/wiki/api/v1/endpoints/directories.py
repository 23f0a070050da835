"""目录管理相关的路由定义。"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.packages.wiki.api.v1.schemas.directories import (
    BatchMoveResponse,
    CopyResponse,
    DeleteCheckResponse,
    DeleteResponse,
    DirectoryBatchMoveRequest,
    DirectoryCopyRequest,
    DirectoryCreateRequest,
    DirectoryListResponse,
    DirectoryMoveRequest,
    DirectoryPathInfoResponse,
    DirectoryReorderRequest,
    DirectoryResponse,
    DirectoryStatsResponse,
    DirectoryUpdateRequest,
    DirectoryValidateRequest,
    MoveResponse,
    ReorderResponse,
    ValidationResponse,
)
from app.packages.wiki.core.constants import HTTP_STATUS_CREATED, HTTP_STATUS_OK
from app.packages.wiki.core.dependencies import get_db
from app.packages.wiki.core.responses import create_response
from app.packages.wiki.services.directory_service import directory_service

router = APIRouter(prefix="/directories", tags=["directories"])


@router.get("", response_model=DirectoryListResponse)
def list_directories(
    parent_id: Optional[int] = Query(None, description="父目录 ID，缺省返回全部目录"),
    include_children: bool = Query(False, description="是否以树形结构返回"),
    include_documents: bool = Query(False, description="是否附带文档数量"),
    max_depth: Optional[int] = Query(None, ge=1, le=10, description="树形结构的最大深度"),
    name: Optional[str] = Query(None, description="目录名称模糊匹配"),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    offset: Optional[int] = Query(None, ge=0),
    sort_by: Optional[str] = Query(None, description="排序字段"),
    sort_desc: bool = Query(False, description="是否倒序"),
    db: Session = Depends(get_db),
) -> DirectoryListResponse:
    data = directory_service.list_directories(
        db,
        parent_id=parent_id,
        include_children=include_children,
        include_documents=include_documents,
        max_depth=max_depth,
        name=name,
        limit=limit,
        offset=offset,
        sort_by=sort_by,
        sort_desc=sort_desc,
    )
    return create_response("获取目录列表成功", data, HTTP_STATUS_OK)


@router.get("/stats", response_model=DirectoryStatsResponse)
def get_directory_stats(db: Session = Depends(get_db)) -> DirectoryStatsResponse:
    return create_response("获取目录统计成功", directory_service.get_stats(db), HTTP_STATUS_OK)


@router.post("/move", response_model=MoveResponse)
def move_directory(payload: DirectoryMoveRequest, db: Session = Depends(get_db)) -> MoveResponse:
    """移动目录及其全部子目录。"""
    data = directory_service.move_directory_with_children(
        db,
        payload.source_id,
        payload.target_parent_id,
        payload.new_sort_order,
    )
    return create_response("移动目录成功", data, HTTP_STATUS_OK)


@router.post("/batch-move", response_model=BatchMoveResponse)
def batch_move_directories(
    payload: DirectoryBatchMoveRequest,
    db: Session = Depends(get_db),
) -> BatchMoveResponse:
    """逐个移动目录，部分失败不影响其余移动。"""
    data = directory_service.batch_move_directories(db, [move.model_dump() for move in payload.moves])
    return create_response("批量移动目录完成", data, HTTP_STATUS_OK)


@router.post("/reorder", response_model=ReorderResponse)
def reorder_directories(
    payload: DirectoryReorderRequest,
    db: Session = Depends(get_db),
) -> ReorderResponse:
    data = directory_service.reorder_directories(db, payload.parent_id, payload.directory_ids)
    return create_response("目录排序成功", data, HTTP_STATUS_OK)


@router.post("/validate", response_model=ValidationResponse)
def validate_directory_operation(
    payload: DirectoryValidateRequest,
    db: Session = Depends(get_db),
) -> ValidationResponse:
    """对操作做无副作用的预检。"""
    data = directory_service.validate_directory_operation(
        db,
        payload.operation,
        payload.directory_id,
        payload.target_parent_id,
    )
    return create_response("验证完成", data, HTTP_STATUS_OK)


@router.post("", response_model=DirectoryResponse, status_code=HTTP_STATUS_CREATED)
def create_directory(payload: DirectoryCreateRequest, db: Session = Depends(get_db)) -> DirectoryResponse:
    data = directory_service.create_directory(
        db,
        name=payload.name,
        description=payload.description,
        parent_id=payload.parent_id,
        sort_order=payload.sort_order,
    )
    return create_response("创建目录成功", data, HTTP_STATUS_CREATED)


@router.get("/{directory_id}", response_model=DirectoryResponse)
def get_directory(directory_id: int, db: Session = Depends(get_db)) -> DirectoryResponse:
    return create_response("获取目录详情成功", directory_service.get_directory(db, directory_id), HTTP_STATUS_OK)


@router.get("/{directory_id}/path-info", response_model=DirectoryPathInfoResponse)
def get_directory_path_info(directory_id: int, db: Session = Depends(get_db)) -> DirectoryPathInfoResponse:
    """返回祖先、子目录与面包屑导航。"""
    data = directory_service.get_directory_path_info(db, directory_id)
    return create_response("获取目录路径信息成功", data, HTTP_STATUS_OK)


@router.get("/{directory_id}/delete-check", response_model=DeleteCheckResponse)
def check_delete_status(directory_id: int, db: Session = Depends(get_db)) -> DeleteCheckResponse:
    data = directory_service.check_delete_status(db, directory_id)
    return create_response("获取删除检查结果成功", data, HTTP_STATUS_OK)


@router.put("/{directory_id}", response_model=DirectoryResponse)
def update_directory(
    directory_id: int,
    payload: DirectoryUpdateRequest,
    db: Session = Depends(get_db),
) -> DirectoryResponse:
    data = directory_service.update_directory(db, directory_id, payload.model_dump(exclude_unset=True))
    return create_response("更新目录成功", data, HTTP_STATUS_OK)


@router.delete("/{directory_id}", response_model=DeleteResponse)
def delete_directory(
    directory_id: int,
    force: bool = Query(False, description="是否级联删除子目录与文档"),
    db: Session = Depends(get_db),
) -> DeleteResponse:
    data = directory_service.delete_directory(db, directory_id, force=force)
    return create_response("删除目录成功", data, HTTP_STATUS_OK)


@router.post("/{directory_id}/copy", response_model=CopyResponse)
def copy_directory(
    directory_id: int,
    payload: DirectoryCopyRequest,
    db: Session = Depends(get_db),
) -> CopyResponse:
    """复制目录骨架（不含文档）。"""
    data = directory_service.copy_directory_structure(
        db,
        directory_id,
        payload.target_parent_id,
        payload.new_name,
    )
    return create_response("复制目录成功", data, HTTP_STATUS_OK)
