"""
Utility modules for the Health Search Engine
"""
from .formatting import format_time, truncate_preview, strip_markdown_code_blocks
from .supabase_client import get_supabase_client
from .embeddings import get_embedding
from .validators import resolve_client_key, user_from_token

__all__ = [
    "format_time",
    "truncate_preview",
    "strip_markdown_code_blocks",
    "get_supabase_client",
    "get_embedding",
    "resolve_client_key",
    "user_from_token",
]
