"""agentbrowser - command-line client for the browser automation daemon."""

__version__ = "1.0.0"
