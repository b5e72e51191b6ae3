"""
Motorcycle accessory render pipeline: catalog, prompt, image normalization and backend gateway.
"""
from .config import load_config
from .tasks.render_pipeline import RenderPipeline, RenderResult

__all__ = ["load_config", "RenderPipeline", "RenderResult"]
