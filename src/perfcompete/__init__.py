"""perfcompete: continuous performance-regression checks for competing implementations."""

__version__ = "0.1.0"
