"""
JSON log format carrying the identity of the resource being reconciled
"""

# First Party
from alog import AlogJsonFormatter


class BackplaneJsonFormatter(AlogJsonFormatter):
    """AlogJsonFormatter with reconciliationId and resource identity fields"""

    _FIELDS_TO_PRINT = AlogJsonFormatter._FIELDS_TO_PRINT + [
        "thread",
        "threadName",
        "kind",
        "resourceName",
        "resourceNamespace",
        "resourceVersion",
        "reconciliationId",
    ]

    def __init__(self, manifest=None, reconciliation_id=None):
        super().__init__()
        self.manifest = manifest
        self.reconciliation_id = reconciliation_id

    def format(self, record):
        if self.reconciliation_id:
            record.reconciliationId = self.reconciliation_id

        resource = getattr(record, "resource", self.manifest)
        if resource:
            metadata = resource.get("metadata", {})
            record.kind = resource.get("kind")
            record.resourceName = metadata.get("name")
            record.resourceNamespace = metadata.get("namespace")
            record.resourceVersion = metadata.get("resourceVersion")

        return super().format(record)
