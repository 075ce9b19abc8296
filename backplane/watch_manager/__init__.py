"""
Watch manager that turns cluster events into reconciles
"""

# Local
from .python_watch_manager import PythonWatchManager
