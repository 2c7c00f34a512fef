"""Core package containing the managers and process execution.

The configuration schema lives in ``colaplug.core.config_manager`` and is
imported from there; it depends on the plugin system.
"""

from colaplug.core.base import ColaManager
from colaplug.core.logging_manager import LoggingManager
from colaplug.core.process import ProcessExecutor, ProcessResult, SubprocessExecutor
