"""目录相关的请求与响应模型。"""

from __future__ import annotations

from typing import Annotated, List, Optional, Union

from pydantic import BaseModel, Field

from app.packages.wiki.api.v1.schemas.common import ResponseEnvelope


class DirectoryCreateRequest(BaseModel):
    """新建目录的请求体；名称规则由服务层统一校验。"""

    name: str = Field(..., description="目录名称")
    description: Optional[str] = Field(default=None, description="目录描述")
    parent_id: Optional[int] = Field(default=None, description="父目录 ID，空或 0 表示根级")
    sort_order: Optional[int] = Field(default=None, ge=0, description="排序值，缺省时追加到同级末尾")


class DirectoryUpdateRequest(BaseModel):
    """更新目录的请求体，只有显式提交的字段会被更新。"""

    name: Optional[str] = Field(default=None, description="目录名称")
    description: Optional[str] = Field(default=None, description="目录描述")
    parent_id: Optional[int] = Field(default=None, description="新的父目录 ID，null 表示移动到根级")
    sort_order: Optional[int] = Field(default=None, ge=0, description="排序值")


class DirectoryMoveRequest(BaseModel):
    source_id: int = Field(..., description="源目录 ID")
    target_parent_id: Optional[int] = Field(default=None, description="目标父目录 ID，空表示根级")
    new_sort_order: Optional[int] = Field(default=None, ge=0, description="移动后的排序值")


class DirectoryBatchMoveRequest(BaseModel):
    moves: List[DirectoryMoveRequest] = Field(..., min_length=1, description="待执行的移动列表")


class DirectoryCopyRequest(BaseModel):
    target_parent_id: Optional[int] = Field(default=None, description="目标父目录 ID，空表示根级")
    new_name: Optional[str] = Field(default=None, description="副本名称，缺省为 <原名>_copy")


class DirectoryReorderRequest(BaseModel):
    parent_id: Optional[int] = Field(default=None, description="父目录 ID，空表示根级")
    directory_ids: List[int] = Field(..., min_length=1, description="按新顺序排列的同级目录 ID")


class DirectoryValidateRequest(BaseModel):
    operation: str = Field(..., description="操作类型：create/update/delete/move")
    directory_id: Optional[int] = Field(default=None, description="目标目录 ID")
    target_parent_id: Optional[int] = Field(default=None, description="目标父目录 ID")


class DirectoryItem(BaseModel):
    """目录详情。"""

    id: int
    name: str
    description: Optional[str] = None
    parent_id: Optional[int] = None
    path: str
    sort_order: int
    level: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    document_count: Optional[int] = None
    total_document_count: Optional[int] = None


class DirectoryTreeNode(BaseModel):
    """目录树节点。"""

    id: int
    name: str
    description: Optional[str] = None
    parent_id: Optional[int] = None
    path: str
    sort_order: int
    level: int
    document_count: int
    total_document_count: int
    children: List["DirectoryTreeNode"]


class DirectoryListData(BaseModel):
    # 平铺列表为 DirectoryItem，树形列表为 DirectoryTreeNode
    directories: List[Annotated[Union[DirectoryTreeNode, DirectoryItem], Field(union_mode="left_to_right")]]
    total: int


class BreadcrumbItem(BaseModel):
    id: int
    name: str
    path: str


class DirectoryPathInfo(BaseModel):
    directory: DirectoryItem
    ancestors: List[DirectoryItem]
    children: List[DirectoryItem]
    breadcrumb: List[BreadcrumbItem]


class DeleteCheckResult(BaseModel):
    can_delete: bool
    has_children: bool
    has_documents: bool
    children_count: int
    document_count: int
    total_document_count: int
    warnings: List[str]


class DeleteResult(BaseModel):
    deleted_directories: List[int]
    deleted_documents: List[int]
    warnings: List[str]


class AffectedPath(BaseModel):
    id: int
    old_path: str
    new_path: str


class MoveResult(BaseModel):
    moved_directory: DirectoryItem
    affected_paths: List[AffectedPath]


class FailedMove(BaseModel):
    source_id: Optional[int] = None
    error: str


class BatchMoveResult(BaseModel):
    successful_moves: List[MoveResult]
    failed_moves: List[FailedMove]


class CopyResult(BaseModel):
    copied_directory: DirectoryItem
    copied_children: List[DirectoryItem]


class ValidationResult(BaseModel):
    valid: bool
    errors: List[str]
    warnings: List[str]


class DirectoryStats(BaseModel):
    total_directories: int
    root_directories: int
    max_depth: int
    total_documents: int


DirectoryResponse = ResponseEnvelope[DirectoryItem]
DirectoryListResponse = ResponseEnvelope[DirectoryListData]
DirectoryPathInfoResponse = ResponseEnvelope[DirectoryPathInfo]
DeleteCheckResponse = ResponseEnvelope[DeleteCheckResult]
DeleteResponse = ResponseEnvelope[DeleteResult]
MoveResponse = ResponseEnvelope[MoveResult]
BatchMoveResponse = ResponseEnvelope[BatchMoveResult]
CopyResponse = ResponseEnvelope[CopyResult]
ReorderResponse = ResponseEnvelope[List[DirectoryItem]]
ValidationResponse = ResponseEnvelope[ValidationResult]
DirectoryStatsResponse = ResponseEnvelope[DirectoryStats]
