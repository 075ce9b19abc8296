"""
Run the MultiClusterEngine operator
"""

# Standard
from typing import Optional
import argparse
import os
import signal

# Third Party
import yaml

# First Party
import alog

# Local
from .. import config
from ..deploy_manager import DeployManagerBase, DryRunDeployManager
from ..images import validate_image_environment
from ..watch_manager import PythonWatchManager
from .base import CmdBase

log = alog.use_channel("MAIN")


class RunOperatorCmd(CmdBase):
    __doc__ = __doc__
    name = "run-operator"

    ## Interface ##

    def add_args(self, group: argparse._ArgumentGroup):
        group.add_argument(
            "--cr",
            "-c",
            default=None,
            help="(dry run) A MultiClusterEngine manifest yaml to apply directly",
        )

    def cmd(self, args: argparse.Namespace):
        assert args.cr is None or (
            config.dry_run and os.path.isfile(args.cr)
        ), "Can only specify --cr with dry run and it must point to a valid file"

        # Every known image key needs a default before anything is reconciled
        validate_image_environment()

        deploy_manager = self._setup_deploy_manager()
        watch_manager = PythonWatchManager(deploy_manager=deploy_manager)

        def do_stop(*_, **__):  # pragma: no cover
            watch_manager.stop()

        signal.signal(signal.SIGINT, do_stop)
        signal.signal(signal.SIGTERM, do_stop)

        log.info("Starting Watches")
        if not watch_manager.watch():
            log.error("Failed to start watches")
            return

        if args.cr:
            self._apply_cr(deploy_manager, args.cr)

        watch_manager.wait()
        log.info("SHUTTING DOWN")

    ## Impl ##

    @staticmethod
    def _setup_deploy_manager() -> Optional[DeployManagerBase]:
        """In dry run mode all passes share one in-memory cluster"""
        if config.dry_run:
            log.info("Running DRY RUN")
            return DryRunDeployManager()
        return None

    @staticmethod
    def _apply_cr(deploy_manager: DeployManagerBase, cr_path: str):
        log.info("Applying CR [%s]", cr_path)
        with open(cr_path, encoding="utf-8") as handle:
            cr_manifest = yaml.safe_load(handle)
        log.debug3(cr_manifest)
        success, _ = deploy_manager.deploy([cr_manifest])
        if not success:
            log.warning("Failed to apply CR [%s]", cr_path)
