"""目录服务测试：基础场景、树不变量、级联改写、批量移动与复制。"""

import random

import pytest
from sqlalchemy.orm import Session

from app.packages.wiki.core.exceptions import (
    ConflictError,
    CycleError,
    NotEmptyError,
    NotFoundError,
    ValidationError,
)
from app.packages.wiki.crud.directory import directory_crud
from app.packages.wiki.models.directory import Directory
from app.packages.wiki.models.document import Document
from app.packages.wiki.services.directory_service import directory_service
from app.packages.wiki.utils.path_utils import build_path, sanitize_name, would_create_cycle


def assert_tree_invariants(db: Session) -> None:
    """路径与父子关系一致、路径唯一、无环。"""
    db.expire_all()
    rows = db.query(Directory).all()
    by_id = {row.id: row for row in rows}

    paths = [row.path for row in rows]
    assert len(paths) == len(set(paths))

    for row in rows:
        if row.parent_id is None:
            assert row.path == "/" + sanitize_name(row.name)
        else:
            parent = by_id[row.parent_id]
            assert row.path == parent.path + "/" + sanitize_name(row.name)

        seen = set()
        current = row
        while current.parent_id is not None:
            assert current.id not in seen
            seen.add(current.id)
            current = by_id[current.parent_id]


def _create(db: Session, name: str, parent_id=None, **kwargs) -> dict:
    return directory_service.create_directory(db, name=name, parent_id=parent_id, **kwargs)


def _add_documents(db: Session, directory_id: int, count: int) -> None:
    db.add_all(Document(title=f"doc-{directory_id}-{i}", directory_id=directory_id) for i in range(count))
    db.commit()


# ----------------------------------------------------------------------
# 基础场景
# ----------------------------------------------------------------------


def test_create_root_directory(db: Session):
    docs = _create(db, "Docs")
    assert docs["path"] == "/Docs"
    assert docs["parent_id"] is None
    assert docs["sort_order"] == 0
    assert docs["level"] == 1
    assert_tree_invariants(db)


def test_create_child_directory(db: Session):
    docs = _create(db, "Docs")
    api = _create(db, "API", docs["id"])
    assert api["path"] == "/Docs/API"
    assert api["parent_id"] == docs["id"]
    assert_tree_invariants(db)


def test_move_child_to_root_rewrites_descendants(db: Session):
    docs = _create(db, "Docs")
    api = _create(db, "API", docs["id"])
    v1 = _create(db, "v1", api["id"])

    result = directory_service.move_directory_with_children(db, api["id"], None)

    assert result["moved_directory"]["path"] == "/API"
    assert result["moved_directory"]["parent_id"] is None
    assert result["affected_paths"] == [{"id": v1["id"], "old_path": "/Docs/API/v1", "new_path": "/API/v1"}]
    assert directory_crud.find_by_id(db, v1["id"]).path == "/API/v1"
    assert_tree_invariants(db)


def test_move_into_descendant_raises_cycle(db: Session):
    docs = _create(db, "Docs")
    api = _create(db, "API", docs["id"])

    with pytest.raises(CycleError):
        directory_service.move_directory_with_children(db, docs["id"], api["id"])
    with pytest.raises(CycleError):
        directory_service.move_directory_with_children(db, docs["id"], docs["id"])
    assert directory_crud.find_by_id(db, docs["id"]).path == "/Docs"
    assert_tree_invariants(db)


def test_create_duplicate_path_raises_conflict(db: Session):
    _create(db, "Docs")
    assert directory_crud.path_exists(db, "/Docs")
    with pytest.raises(ConflictError) as exc_info:
        _create(db, "Docs")
    assert exc_info.value.status_code == 409
    # 清洗后相同的名称同样冲突
    with pytest.raises(ConflictError):
        _create(db, "  Docs  ")


def test_check_delete_status_with_child_and_documents(db: Session):
    docs = _create(db, "Docs")
    _create(db, "API", docs["id"])
    _add_documents(db, docs["id"], 2)

    status = directory_service.check_delete_status(db, docs["id"])

    assert status["can_delete"] is False
    assert status["children_count"] == 1
    assert status["document_count"] == 2
    assert status["total_document_count"] == 2
    assert status["warnings"][:2] == ["该目录包含 1 个子目录", "该目录包含 2 个文档"]
    assert len(status["warnings"]) == 3


# ----------------------------------------------------------------------
# 创建 / 更新
# ----------------------------------------------------------------------


def test_create_assigns_next_sort_order_and_sanitizes_path(db: Session):
    first = _create(db, "First")
    second = _create(db, "  Second   Draft  ")
    assert first["sort_order"] == 0
    assert second["sort_order"] == 1
    assert second["name"] == "Second   Draft"
    assert second["path"] == "/Second Draft"


def test_create_validation_errors(db: Session):
    with pytest.raises(NotFoundError):
        _create(db, "Orphan", 99999)
    with pytest.raises(ValidationError):
        _create(db, "   ")
    with pytest.raises(ValidationError):
        _create(db, "CON")
    with pytest.raises(ValidationError):
        _create(db, "ok", description="x" * 1001)
    with pytest.raises(ValidationError):
        _create(db, "ok", sort_order=-1)


def test_parent_id_zero_means_root(db: Session):
    created = _create(db, "Docs", 0)
    assert created["parent_id"] is None
    assert created["path"] == "/Docs"


def test_rename_cascades_to_descendants(db: Session):
    a = _create(db, "A")
    b = _create(db, "B", a["id"])
    c = _create(db, "C", b["id"])

    renamed = directory_service.update_directory(db, a["id"], {"name": "Z", "description": "renamed"})

    assert renamed["path"] == "/Z"
    assert renamed["description"] == "renamed"
    assert directory_crud.find_by_id(db, b["id"]).path == "/Z/B"
    assert directory_crud.find_by_id(db, c["id"]).path == "/Z/B/C"
    assert_tree_invariants(db)


def test_rename_into_existing_sibling_conflicts(db: Session):
    a = _create(db, "A")
    _create(db, "B")
    with pytest.raises(ConflictError):
        directory_service.update_directory(db, a["id"], {"name": "B"})
    assert directory_crud.find_by_id(db, a["id"]).name == "A"


def test_update_reparent_and_cycle_checks(db: Session):
    a = _create(db, "A")
    b = _create(db, "B", a["id"])
    x = _create(db, "X")

    moved = directory_service.update_directory(db, b["id"], {"parent_id": x["id"]})
    assert moved["path"] == "/X/B"

    to_root = directory_service.update_directory(db, b["id"], {"parent_id": None})
    assert to_root["path"] == "/B"
    assert to_root["parent_id"] is None

    with pytest.raises(CycleError):
        directory_service.update_directory(db, a["id"], {"parent_id": a["id"]})

    child = _create(db, "child", a["id"])
    with pytest.raises(CycleError):
        directory_service.update_directory(db, a["id"], {"parent_id": child["id"]})
    assert_tree_invariants(db)


def test_update_without_path_change_keeps_descendants(db: Session):
    a = _create(db, "A")
    b = _create(db, "B", a["id"])
    updated = directory_service.update_directory(db, a["id"], {"sort_order": 9})
    assert updated["sort_order"] == 9
    assert updated["path"] == "/A"
    assert directory_crud.find_by_id(db, b["id"]).path == "/A/B"


# ----------------------------------------------------------------------
# 删除
# ----------------------------------------------------------------------


def test_delete_gating(db: Session):
    empty = _create(db, "Empty")
    with_docs = _create(db, "WithDocs")
    _add_documents(db, with_docs["id"], 1)

    assert directory_service.check_delete_status(db, empty["id"])["can_delete"] is True
    assert directory_service.check_delete_status(db, empty["id"])["warnings"] == []

    with pytest.raises(NotEmptyError) as exc_info:
        directory_service.delete_directory(db, with_docs["id"])
    assert exc_info.value.data["document_count"] == 1

    result = directory_service.delete_directory(db, empty["id"])
    assert result["deleted_directories"] == [empty["id"]]
    assert directory_crud.find_by_id(db, empty["id"]) is None

    with pytest.raises(NotFoundError):
        directory_service.check_delete_status(db, empty["id"])


def test_descendant_documents_warning(db: Session):
    a = _create(db, "A")
    b = _create(db, "B", a["id"])
    c = _create(db, "C", b["id"])
    _add_documents(db, c["id"], 3)

    status = directory_service.check_delete_status(db, a["id"])
    assert status["can_delete"] is False
    assert status["document_count"] == 0
    assert status["total_document_count"] == 3
    assert status["warnings"] == [
        "该目录包含 1 个子目录",
        "子目录中包含 3 个文档",
        "删除操作将影响 3 个目录",
    ]


def test_force_delete_removes_subtree_and_documents(db: Session):
    a = _create(db, "A")
    b = _create(db, "B", a["id"])
    c = _create(db, "C", b["id"])
    keep = _create(db, "Keep")
    _add_documents(db, a["id"], 1)
    _add_documents(db, c["id"], 2)
    _add_documents(db, keep["id"], 1)

    result = directory_service.delete_directory(db, a["id"], force=True)

    assert result["deleted_directories"] == [c["id"], b["id"], a["id"]]
    assert len(result["deleted_documents"]) == 3
    assert result["warnings"][-1] == "此操作不可逆，请确认后再执行"
    db.expire_all()
    assert db.query(Directory).count() == 1
    assert db.query(Document).count() == 1
    assert_tree_invariants(db)


# ----------------------------------------------------------------------
# 移动
# ----------------------------------------------------------------------


def test_move_rewrites_only_leading_prefix(db: Session):
    a = _create(db, "A")
    inner = _create(db, "A", a["id"])
    deep = _create(db, "x", inner["id"])
    target = _create(db, "T")

    directory_service.move_directory_with_children(db, a["id"], target["id"])

    assert directory_crud.find_by_id(db, a["id"]).path == "/T/A"
    assert directory_crud.find_by_id(db, inner["id"]).path == "/T/A/A"
    assert directory_crud.find_by_id(db, deep["id"]).path == "/T/A/A/x"
    assert_tree_invariants(db)


def test_move_cascade_is_complete(db: Session):
    root = _create(db, "Root")
    frontier = [root]
    for depth in range(3):
        next_frontier = []
        for node in frontier:
            for i in range(2):
                next_frontier.append(_create(db, f"n{depth}-{i}", node["id"]))
        frontier = next_frontier
    target = _create(db, "Target")

    result = directory_service.move_directory_with_children(db, root["id"], target["id"], 5)

    assert len(result["affected_paths"]) == 14
    assert result["moved_directory"]["sort_order"] == 5
    db.expire_all()
    leftovers = db.query(Directory).filter(Directory.path.like("/Root%")).all()
    assert leftovers == []
    assert db.query(Directory).filter(Directory.path.like("/Target/Root/%")).count() == 14
    assert_tree_invariants(db)


def test_move_errors(db: Session):
    a = _create(db, "A")
    b = _create(db, "B")
    _create(db, "A", b["id"])

    with pytest.raises(NotFoundError) as missing_source:
        directory_service.move_directory_with_children(db, 99999, None)
    assert missing_source.value.msg == "源目录不存在"

    with pytest.raises(NotFoundError) as missing_target:
        directory_service.move_directory_with_children(db, a["id"], 99999)
    assert missing_target.value.msg == "目标父目录不存在"

    with pytest.raises(ConflictError):
        directory_service.move_directory_with_children(db, a["id"], b["id"])
    assert_tree_invariants(db)


def test_unique_constraint_is_authoritative_on_move(db: Session, monkeypatch):
    a = _create(db, "A")
    _create(db, "child", a["id"])
    b = _create(db, "B")
    _create(db, "A", b["id"])

    # 预检被绕过时，提交阶段的唯一约束仍然拒绝冲突并整体回滚
    monkeypatch.setattr(directory_crud, "path_exists", lambda *args, **kwargs: False)
    with pytest.raises(ConflictError):
        directory_service.move_directory_with_children(db, a["id"], b["id"])

    db.expire_all()
    assert directory_crud.find_by_id(db, a["id"]).path == "/A"
    assert directory_crud.find_by_path(db, "/A/child") is not None
    assert_tree_invariants(db)


def test_unique_constraint_is_authoritative_on_create(db: Session, monkeypatch):
    _create(db, "Docs")
    monkeypatch.setattr(directory_crud, "path_exists", lambda *args, **kwargs: False)
    with pytest.raises(ConflictError):
        _create(db, "Docs")
    assert db.query(Directory).count() == 1


def test_random_moves_preserve_invariants_and_reject_cycles(db: Session):
    rng = random.Random(1337)
    names = ["a", "b", "c", "d"]
    ids = []
    for _ in range(20):
        parent_id = rng.choice(ids) if ids and rng.random() < 0.7 else None
        try:
            ids.append(_create(db, rng.choice(names) + str(rng.randint(0, 3)), parent_id)["id"])
        except ConflictError:
            continue

    for _ in range(60):
        source_id = rng.choice(ids)
        target_id = rng.choice(ids + [None])
        db.expire_all()
        source = directory_crud.find_by_id(db, source_id)
        target = directory_crud.find_by_id(db, target_id) if target_id is not None else None
        target_path = target.path if target is not None else None

        if target is not None and would_create_cycle(source.path, target.path):
            with pytest.raises(CycleError):
                directory_service.move_directory_with_children(db, source_id, target_id)
        elif directory_crud.path_exists(db, build_path(target_path, source.name), exclude_id=source_id):
            with pytest.raises(ConflictError):
                directory_service.move_directory_with_children(db, source_id, target_id)
        else:
            result = directory_service.move_directory_with_children(db, source_id, target_id)
            assert result["moved_directory"]["path"] == build_path(target_path, source.name)
        assert_tree_invariants(db)

    for directory_id in ids:
        with pytest.raises(CycleError):
            directory_service.move_directory_with_children(db, directory_id, directory_id)


def test_batch_move_partial_success(db: Session):
    a = _create(db, "A")
    b = _create(db, "B", a["id"])
    x = _create(db, "X")

    result = directory_service.batch_move_directories(
        db,
        [
            {"source_id": b["id"], "target_parent_id": x["id"]},
            {"source_id": a["id"], "target_parent_id": a["id"]},
            {"source_id": 99999, "target_parent_id": None},
        ],
    )

    assert len(result["successful_moves"]) == 1
    assert result["successful_moves"][0]["moved_directory"]["path"] == "/X/B"
    assert [f["source_id"] for f in result["failed_moves"]] == [a["id"], 99999]
    assert result["failed_moves"][0]["error"] == "不能将目录移动到自己下面"
    assert result["failed_moves"][1]["error"] == "源目录不存在"
    assert_tree_invariants(db)


def test_batch_move_continues_after_malformed_entry(db: Session):
    a = _create(db, "A")
    b = _create(db, "B")

    result = directory_service.batch_move_directories(
        db,
        [
            {"source_id": a["id"], "target_parent_id": "not-an-id"},
            {"source_id": b["id"], "target_parent_id": a["id"]},
        ],
    )

    assert [m["moved_directory"]["path"] for m in result["successful_moves"]] == ["/A/B"]
    assert len(result["failed_moves"]) == 1
    assert result["failed_moves"][0]["source_id"] == a["id"]
    assert "not-an-id" in result["failed_moves"][0]["error"]
    assert directory_crud.find_by_id(db, a["id"]).path == "/A"
    assert_tree_invariants(db)


# ----------------------------------------------------------------------
# 复制
# ----------------------------------------------------------------------


def test_copy_directory_skeleton(db: Session):
    a = _create(db, "A", description="源目录")
    b = _create(db, "B", a["id"])
    _create(db, "C", b["id"])
    _create(db, "D", a["id"])
    _add_documents(db, b["id"], 2)

    result = directory_service.copy_directory_structure(db, a["id"])

    copied = result["copied_directory"]
    assert copied["name"] == "A_copy"
    assert copied["path"] == "/A_copy"
    assert copied["description"] == "源目录"
    assert sorted(c["path"] for c in result["copied_children"]) == [
        "/A_copy/B",
        "/A_copy/B/C",
        "/A_copy/D",
    ]
    new_b = directory_crud.find_by_path(db, "/A_copy/B")
    assert directory_crud.get_document_count(db, new_b.id) == 0
    assert directory_crud.find_by_path(db, "/A_copy/B/C").parent_id == new_b.id
    assert directory_crud.find_by_path(db, "/A/B/C") is not None
    assert_tree_invariants(db)

    with pytest.raises(ConflictError):
        directory_service.copy_directory_structure(db, a["id"])


def test_copy_with_name_and_target(db: Session):
    a = _create(db, "A")
    b = _create(db, "B", a["id"])
    target = _create(db, "T")

    result = directory_service.copy_directory_structure(db, a["id"], target["id"], "Clone")
    assert result["copied_directory"]["path"] == "/T/Clone"
    assert result["copied_directory"]["parent_id"] == target["id"]
    assert [c["path"] for c in result["copied_children"]] == ["/T/Clone/B"]

    with pytest.raises(CycleError):
        directory_service.copy_directory_structure(db, a["id"], a["id"])
    with pytest.raises(CycleError):
        directory_service.copy_directory_structure(db, a["id"], b["id"])
    with pytest.raises(ValidationError):
        directory_service.copy_directory_structure(db, a["id"], None, "bad/name")
    assert_tree_invariants(db)


# ----------------------------------------------------------------------
# 查询 / 排序 / 预检
# ----------------------------------------------------------------------


def test_path_info_breadcrumb(db: Session):
    a = _create(db, "A")
    b = _create(db, "B", a["id"])
    c = _create(db, "C", b["id"])
    _create(db, "D", c["id"])

    info = directory_service.get_directory_path_info(db, c["id"])

    assert info["directory"]["path"] == "/A/B/C"
    assert [x["path"] for x in info["ancestors"]] == ["/A", "/A/B"]
    assert [x["name"] for x in info["children"]] == ["D"]
    assert info["breadcrumb"] == [
        {"id": 0, "name": "root", "path": "/"},
        {"id": a["id"], "name": "A", "path": "/A"},
        {"id": b["id"], "name": "B", "path": "/A/B"},
        {"id": c["id"], "name": "C", "path": "/A/B/C"},
    ]


def test_list_directories_flat_and_tree(db: Session):
    a = _create(db, "A")
    b = _create(db, "B", a["id"])
    _create(db, "C", b["id"])
    _create(db, "Z")
    _add_documents(db, b["id"], 2)

    flat = directory_service.list_directories(db)
    assert flat["total"] == 4

    children = directory_service.list_directories(db, parent_id=a["id"], include_documents=True)
    assert [d["name"] for d in children["directories"]] == ["B"]
    assert children["directories"][0]["document_count"] == 2

    tree = directory_service.list_directories(db, include_children=True, include_documents=True)
    assert [n["name"] for n in tree["directories"]] == ["A", "Z"]
    assert tree["directories"][0]["total_document_count"] == 2

    shallow = directory_service.list_directories(db, include_children=True, max_depth=1)
    assert all(n["children"] == [] for n in shallow["directories"])

    subtree = directory_service.list_directories(db, parent_id=a["id"], include_children=True)
    assert [n["name"] for n in subtree["directories"]] == ["B"]
    assert subtree["directories"][0]["children"][0]["name"] == "C"


def test_get_directory_counts(db: Session):
    a = _create(db, "A")
    b = _create(db, "B", a["id"])
    _add_documents(db, a["id"], 1)
    _add_documents(db, b["id"], 2)

    detail = directory_service.get_directory(db, a["id"])
    assert detail["document_count"] == 1
    assert detail["total_document_count"] == 3
    with pytest.raises(NotFoundError):
        directory_service.get_directory(db, 99999)


def test_reorder_directories(db: Session):
    parent = _create(db, "P")
    x = _create(db, "x", parent["id"])
    y = _create(db, "y", parent["id"])
    z = _create(db, "z", parent["id"])
    outsider = _create(db, "outsider")

    ordered = directory_service.reorder_directories(db, parent["id"], [z["id"], x["id"], y["id"]])
    assert [d["name"] for d in ordered] == ["z", "x", "y"]
    assert [d["sort_order"] for d in ordered] == [0, 1, 2]

    with pytest.raises(ValidationError):
        directory_service.reorder_directories(db, parent["id"], [x["id"], x["id"]])
    with pytest.raises(ValidationError):
        directory_service.reorder_directories(db, parent["id"], [outsider["id"]])
    with pytest.raises(NotFoundError):
        directory_service.reorder_directories(db, 99999, [x["id"]])


def test_validate_directory_operation(db: Session):
    a = _create(db, "A")
    b = _create(db, "B", a["id"])

    assert directory_service.validate_directory_operation(db, "move", b["id"], None)["valid"] is True

    cycle = directory_service.validate_directory_operation(db, "move", a["id"], b["id"])
    assert cycle["valid"] is False
    assert cycle["errors"] == ["不能将目录移动到其子目录下"]

    self_move = directory_service.validate_directory_operation(db, "move", a["id"], a["id"])
    assert self_move["errors"] == ["不能将目录移动到自己下面"]

    delete = directory_service.validate_directory_operation(db, "delete", a["id"])
    assert delete["valid"] is False
    assert "目录不为空，无法删除" in delete["errors"]
    assert delete["warnings"]

    missing = directory_service.validate_directory_operation(db, "update", 99999)
    assert missing["errors"] == ["目录不存在"]

    create = directory_service.validate_directory_operation(db, "create", None, 99999)
    assert create["errors"] == ["父目录不存在"]

    unknown = directory_service.validate_directory_operation(db, "rename", a["id"])
    assert unknown["valid"] is False

    # 预检不修改任何数据
    assert directory_crud.find_by_id(db, b["id"]).path == "/A/B"
