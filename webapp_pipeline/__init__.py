"""Build-test-deploy pipeline runner for the web application."""

__version__ = "0.1.0"
