"""Configuration module for familytree."""

from familytree.config.settings import Config, get_config

__all__ = ["Config", "get_config"]
