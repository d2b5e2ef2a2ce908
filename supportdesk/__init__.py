"""SupportDesk: AI chat widget backend with human escalation and live chat."""

from .__version__ import __version__

__all__ = ["__version__"]
