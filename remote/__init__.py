# remote/__init__.py
from .sheets import RemoteStoreClient, WriteAction, build_payload
from .content_assist import ContentAssist, GeminiContentAssist, parts_from_analysis

__all__ = [
    "RemoteStoreClient",
    "WriteAction",
    "build_payload",
    "ContentAssist",
    "GeminiContentAssist",
    "parts_from_analysis",
]
