"""Support chat client: menu, FAQs, inquiry wizard and voice input."""

__version__ = "0.1.0"
