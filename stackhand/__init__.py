"""stackhand - lifecycle orchestration for software on managed servers."""

__version__ = "0.1.0"
