"""
System components for modeltidy.

This module provides the configuration layer shared by the tidiers.
"""

from modeltidy.components.config import Config, ConfigManager, get_option, configure_logging
