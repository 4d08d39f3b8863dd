"""Run a test suite in several docker build environments at once."""

__version__ = "0.1.0"
