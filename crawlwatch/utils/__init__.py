"""
Utility modules for the crawl and feed monitoring system.
"""

from .config import Config, ConfigManager, load_config

__all__ = ['Config', 'ConfigManager', 'load_config']
