from .ai_client import AIClient, extract_code
from .piston_client import PistonClient

__all__ = ["AIClient", "PistonClient", "extract_code"]
