"""目录树构建：把扁平的目录行组装为森林，并计算文档数量汇总。

纯内存、只读；每次调用都从输入行重新构建，不保留任何对象图。
遍历均为显式栈实现，不受递归深度限制。
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, Iterable, Mapping, Optional

from app.packages.wiki.utils.path_utils import level as path_level

TreeNode = dict[str, Any]


def _field(item: Any, key: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(key)
    return getattr(item, key, None)


class DirectoryTreeBuilder:
    """目录树的构建、扁平化与查找。"""

    def build_tree(
        self,
        directories: Iterable[Any],
        document_counts: Optional[Mapping[int, int]] = None,
    ) -> list[TreeNode]:
        """按 ``parent_id`` 组装森林。

        父节点不在输入集合中的行也视为根节点；每个节点的
        ``total_document_count`` 为自身文档数加全部后代文档数；
        同级按 ``(sort_order, id)`` 升序排列。
        """
        counts = document_counts or {}
        nodes: dict[int, TreeNode] = {}
        order: list[int] = []
        for item in directories:
            node = self._to_node(item, int(counts.get(_field(item, "id"), 0) or 0))
            if node["id"] in nodes:
                continue
            nodes[node["id"]] = node
            order.append(node["id"])

        roots: list[TreeNode] = []
        children_map: dict[int, list[TreeNode]] = defaultdict(list)
        for node_id in order:
            node = nodes[node_id]
            parent_id = node["parent_id"]
            if parent_id is None or parent_id == node_id or parent_id not in nodes:
                roots.append(node)
            else:
                children_map[parent_id].append(node)

        def sort_key(n: TreeNode) -> tuple[int, int]:
            return (n["sort_order"] or 0, n["id"])

        roots.sort(key=sort_key)
        for node_id, children in children_map.items():
            children.sort(key=sort_key)
            nodes[node_id]["children"] = children

        # 先序遍历后逆序回填，保证子节点总数先于父节点算出
        visit_order = self.flatten_tree(roots)
        for node in reversed(visit_order):
            node["total_document_count"] = node["document_count"] + sum(
                child["total_document_count"] for child in node["children"]
            )
        return roots

    def flatten_tree(self, nodes: Iterable[TreeNode]) -> list[TreeNode]:
        """先序遍历，返回扁平列表。"""
        result: list[TreeNode] = []
        stack = list(reversed(list(nodes)))
        while stack:
            node = stack.pop()
            result.append(node)
            stack.extend(reversed(node.get("children") or []))
        return result

    def find_node_in_tree(
        self,
        nodes: Iterable[TreeNode],
        predicate: Callable[[TreeNode], bool],
    ) -> Optional[TreeNode]:
        """深度优先查找第一个满足条件的节点。"""
        stack = list(reversed(list(nodes)))
        while stack:
            node = stack.pop()
            if predicate(node):
                return node
            stack.extend(reversed(node.get("children") or []))
        return None

    @staticmethod
    def _to_node(item: Any, document_count: int) -> TreeNode:
        path = _field(item, "path")
        return {
            "id": _field(item, "id"),
            "name": _field(item, "name"),
            "description": _field(item, "description"),
            "parent_id": _field(item, "parent_id"),
            "path": path,
            "sort_order": _field(item, "sort_order") or 0,
            "level": path_level(path),
            "document_count": document_count,
            "total_document_count": document_count,
            "children": [],
        }


directory_tree_builder = DirectoryTreeBuilder()
