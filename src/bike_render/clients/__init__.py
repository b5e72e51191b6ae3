"""
Backend gateway and per-model request strategies for the image-edit service.
"""
from .gateway import RenderGateway
from .strategies import BackendStrategy, get_strategy, register_strategy

__all__ = ["RenderGateway", "BackendStrategy", "get_strategy", "register_strategy"]
