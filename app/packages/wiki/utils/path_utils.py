"""Path utilities: materialized directory paths and directory name rules.

These helpers centralize the rules shared by the directory store and the tree
service:
- A directory path always starts with '/', never ends with '/', and each
  segment is a sanitized directory name; the root itself ('/') is never stored;
- ``sanitize_name`` is deterministic and idempotent, ``validate_name`` is the
  single gate used before any create/rename.
"""

from __future__ import annotations

import re
from typing import Any, Optional

from app.packages.wiki.core.constants import (
    DIRECTORY_DESCRIPTION_MAX_LENGTH,
    DIRECTORY_ILLEGAL_CHARS,
    DIRECTORY_NAME_MAX_LENGTH,
    DIRECTORY_RESERVED_NAMES,
    PATH_SEPARATOR,
    ROOT_PATH,
)
from app.packages.wiki.core.exceptions import ValidationError

_ILLEGAL_CHARS_RE = re.compile("[" + re.escape(DIRECTORY_ILLEGAL_CHARS) + r"\x00-\x1f\x7f]")
_WHITESPACE_RE = re.compile(r"\s+")
_LIKE_ESCAPE = "\\"


def _sanitize_once(value: str) -> str:
    s = value.strip()
    s = _ILLEGAL_CHARS_RE.sub("", s)
    s = _WHITESPACE_RE.sub(" ", s)
    s = s.strip(".")
    return s.strip()


def sanitize_name(raw: Optional[str]) -> str:
    """清洗目录名称，得到可作为路径段使用的名称。

    去除首尾空白、文件系统非法字符与控制字符，合并连续空白，去除首尾的点；
    反复执行直到结果稳定，因此 ``sanitize_name(sanitize_name(x)) == sanitize_name(x)``。
    """
    current = raw or ""
    while True:
        cleaned = _sanitize_once(current)
        if cleaned == current:
            return cleaned
        current = cleaned


def validate_name(name: Any) -> None:
    """校验目录名称，非法时抛出 ``ValidationError``。"""
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("目录名称不能为空")
    trimmed = name.strip()
    if len(trimmed) > DIRECTORY_NAME_MAX_LENGTH:
        raise ValidationError(f"目录名称长度必须在1-{DIRECTORY_NAME_MAX_LENGTH}个字符之间")
    if _ILLEGAL_CHARS_RE.search(trimmed):
        raise ValidationError("目录名称包含非法字符")
    if trimmed.upper() in DIRECTORY_RESERVED_NAMES:
        raise ValidationError("目录名称为系统保留名称")
    if not sanitize_name(trimmed):
        raise ValidationError("目录名称无效")


def is_valid_name(name: Any) -> bool:
    try:
        validate_name(name)
    except ValidationError:
        return False
    return True


def validate_description(description: Any) -> None:
    if description is None:
        return
    if not isinstance(description, str):
        raise ValidationError("目录描述格式无效")
    if len(description) > DIRECTORY_DESCRIPTION_MAX_LENGTH:
        raise ValidationError(f"目录描述长度不能超过{DIRECTORY_DESCRIPTION_MAX_LENGTH}个字符")


def validate_sort_order(sort_order: Any) -> None:
    if sort_order is None:
        return
    # bool 是 int 的子类，需要单独排除
    if isinstance(sort_order, bool) or not isinstance(sort_order, int) or sort_order < 0:
        raise ValidationError("排序顺序必须是非负整数")


def build_path(parent_path: Optional[str], name: str) -> str:
    """根据父路径与目录名构造物化路径；父路径为空或 '/' 时生成根级路径。"""
    segment = sanitize_name(name)
    if not parent_path or parent_path == ROOT_PATH:
        return ROOT_PATH + segment
    return parent_path.rstrip(PATH_SEPARATOR) + PATH_SEPARATOR + segment


def split_path(path: Optional[str]) -> list[str]:
    return [segment for segment in (path or "").split(PATH_SEPARATOR) if segment]


def level(path: Optional[str]) -> int:
    """返回路径层级：根级目录为 1。"""
    return len(split_path(path))


def parent_path(path: str) -> str:
    segments = split_path(path)
    if len(segments) <= 1:
        return ROOT_PATH
    return ROOT_PATH + PATH_SEPARATOR.join(segments[:-1])


def ancestor_paths(path: str) -> list[str]:
    """返回所有真祖先路径（根 -> 父），不含虚拟根 '/' 与自身。"""
    segments = split_path(path)
    result: list[str] = []
    current = ""
    for segment in segments[:-1]:
        current = f"{current}{PATH_SEPARATOR}{segment}"
        result.append(current)
    return result


def is_descendant_path(candidate: Optional[str], ancestor: Optional[str]) -> bool:
    if not candidate or not ancestor or candidate == ancestor:
        return False
    return candidate.startswith(ancestor.rstrip(PATH_SEPARATOR) + PATH_SEPARATOR)


def would_create_cycle(source_path: str, target_parent_path: Optional[str]) -> bool:
    """目标父目录为源目录本身或其后代时，移动会形成环。"""
    if not target_parent_path:
        return False
    return target_parent_path == source_path or is_descendant_path(target_parent_path, source_path)


def escape_like(value: str) -> str:
    return (
        value.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", _LIKE_ESCAPE + "%")
        .replace("_", _LIKE_ESCAPE + "_")
    )


def descendant_pattern(path: str) -> str:
    """返回匹配全部后代的 LIKE 模式（已转义 ``%``/``_``，转义符为反斜杠）。"""
    return escape_like(path.rstrip(PATH_SEPARATOR)) + PATH_SEPARATOR + "%"


def rebase_path(path: str, old_prefix: str, new_prefix: str) -> str:
    """把 ``path`` 开头的 ``old_prefix`` 替换为 ``new_prefix``（只替换一次、只替换前缀）。"""
    if path == old_prefix:
        return new_prefix
    if not is_descendant_path(path, old_prefix):
        raise ValueError(f"{path!r} is not under {old_prefix!r}")
    return new_prefix + path[len(old_prefix):]


LIKE_ESCAPE_CHAR = _LIKE_ESCAPE
