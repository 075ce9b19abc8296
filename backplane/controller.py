"""
The MultiClusterEngine controller runs one reconcile pass against a session:
override resolution, image resolution, synthesis, apply and status, strictly
in that order.
"""

# Standard
from datetime import timedelta
from typing import Mapping, Optional

# First Party
import alog

# Local
from . import config, constants, overrides, status
from .apply import reconcile_resources
from .images import ImageResolver
from .session import Session
from .synthesizer import synthesize_by_component
from .utils import parse_time_delta
from .verify_resources import Health

log = alog.use_channel("CTRLR")


class MultiClusterEngineController:
    """Controller for the MultiClusterEngine kind. It holds no state between
    passes; everything is derived from the session.
    """

    group = constants.PRIMARY_GROUP
    version = constants.PRIMARY_VERSION
    kind = constants.PRIMARY_KIND

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        """
        Args:
            environ:  Optional[Mapping[str, str]]
                Source of the OPERAND_IMAGE_ defaults, os.environ if not given
        """
        self.environ = environ

    def __str__(self):
        return f"Controller({self.group}/{self.version}/{self.kind})"

    @classmethod
    def api_version(cls) -> str:
        return f"{cls.group}/{cls.version}"

    ## Public Interface ########################################################

    def run_reconcile(self, session: Session) -> Health:
        """Run one pass and publish its status

        Args:
            session:  Session
                The session for this pass

        Returns:
            health:  Health
                The aggregated health of the owned resources after apply
        """
        primary = session.primary

        # Overrides, persisting the deduplicated list before anything else
        if overrides.persist_deduplicated_components(primary, session.deploy_manager):
            log.debug("Wrote deduplicated overrides for %s", session.name)
        effective_config = overrides.resolve(primary)

        # Images are snapshotted once for the whole pass
        session.assert_active()
        resolver = ImageResolver.from_primary(
            primary,
            session.deploy_manager,
            session.operator_namespace,
            environ=self.environ,
        )

        desired_by_component = synthesize_by_component(
            effective_config, resolver, primary
        )
        desired = [
            manifest
            for manifests in desired_by_component.values()
            for manifest in manifests
        ]
        log.debug(
            "Synthesized %d resources across %d components",
            len(desired),
            len(desired_by_component),
        )

        changed, pruned = reconcile_resources(session, desired)
        log.debug2("Apply changed=%s pruned=%d", changed, pruned)

        observations = status.observe(session, desired_by_component)
        health, components = status.aggregate(observations)
        status.update_resource_status(
            session.deploy_manager,
            session.kind,
            session.api_version,
            session.name,
            session.metadata.get("namespace"),
            status.make_status(
                health,
                components,
                previous_status=session.status,
                observed_generation=session.metadata.get("generation"),
            ),
        )
        return health

    @staticmethod
    def requeue_after(health: Health) -> Optional[timedelta]:
        """How long to wait before the next pass for a given outcome. Passes
        that end Progressing always come back so status converges without a
        new event.
        """
        if health == Health.PROGRESSING:
            return timedelta(seconds=float(config.progressing_requeue_seconds))
        if health == Health.DEGRADED:
            return timedelta(seconds=float(config.requeue_after_seconds))
        return parse_time_delta(config.python_watch_manager.reconcile_period)
