from .generate import router as generate_router
from .logs import router as logs_router
from .runner import router as runner_router
from .spaces import router as spaces_router
from .tree import router as tree_router
from .vaults import router as vaults_router

__all__ = [
    "generate_router",
    "logs_router",
    "runner_router",
    "spaces_router",
    "tree_router",
    "vaults_router",
]
