"""Command-line surface for ``art-plan``."""

from release_train.ui.render import CLIRenderer, create_renderer

__all__ = ["CLIRenderer", "create_renderer"]
