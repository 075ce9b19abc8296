"""
Package exports
"""

# Local
from . import config, reconcile, status, watch_manager
from .components import Component, ComponentName, component
from .controller import MultiClusterEngineController
from .deploy_manager import DeployManagerBase
from .exceptions import assert_cluster, assert_config, assert_synthesis
from .images import ImageResolver, validate_image_environment
from .overrides import EffectiveConfig
from .reconcile import ReconcileManager, ReconciliationResult
from .session import Session
from .synthesizer import synthesize
