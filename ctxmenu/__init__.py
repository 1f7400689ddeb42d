"""ctxmenu — manage your own entries in the desktop background context menu."""

__version__ = "0.1.0"
