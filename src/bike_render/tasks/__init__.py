"""
Render pipeline stages and batch execution utilities.
"""
from .image_normalize import ImagePolicy, normalize_image
from .prompt_compose import compose_prompt

__all__ = ["ImagePolicy", "normalize_image", "compose_prompt"]
