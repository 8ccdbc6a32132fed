from .cascade import CascadeEngine
from .languages import infer_language
from .paths import resolve_path
from .sqlite_client import SQLiteClient
from .tree import TreeBuilder, TreeNode, assemble_tree

__all__ = [
    "CascadeEngine",
    "SQLiteClient",
    "TreeBuilder",
    "TreeNode",
    "assemble_tree",
    "infer_language",
    "resolve_path",
]
