"""Renderers for mirrored items."""

from gh_offline.adapters.render.text_renderer import TextRenderer

__all__ = ["TextRenderer"]
