"""Service components for context packing."""

from .content_transforms import apply_transforms, minify_markdown, reduce_whitespace, strip_comments
from .model_profiles import ModelProfile, ModelProfileRegistry

__all__ = [
    "apply_transforms",
    "minify_markdown",
    "reduce_whitespace",
    "strip_comments",
    "ModelProfile",
    "ModelProfileRegistry",
]
