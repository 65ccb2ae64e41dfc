"""Configuration, import-file and REST helpers for demo Mattermost servers, and a weather bot."""

__version__ = "0.1.0"