"""Run project tasks one at a time with a progress bar learned from past runs."""

__version__ = "0.1.0"
