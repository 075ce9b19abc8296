"""
Light wrapper over a kubernetes object dict managed by the operator
"""


class ManagedObject:
    """Identity of a kubernetes object, keyed by (apiVersion, kind, namespace,
    name) so that desired manifests and live objects compare equal
    """

    def __init__(self, definition: dict):
        self.definition = definition
        self.kind = definition.get("kind")
        self.api_version = definition.get("apiVersion")
        self.metadata = definition.get("metadata") or {}
        self.name = self.metadata.get("name")
        self.namespace = self.metadata.get("namespace")
        self.uid = self.metadata.get("uid")

    @property
    def key(self):
        return (self.api_version, self.kind, self.namespace, self.name)

    @property
    def owner_references(self):
        return self.metadata.get("ownerReferences") or []

    def get(self, *args, **kwargs):
        """Pass get calls to the objects definition"""
        return self.definition.get(*args, **kwargs)

    def __str__(self):
        if self.namespace:
            return f"{self.api_version}/{self.kind}/{self.namespace}/{self.name}"
        return f"{self.api_version}/{self.kind}/{self.name}"

    def __repr__(self):
        return str(self)

    def __hash__(self):
        return hash(self.key)

    def __eq__(self, other):
        return isinstance(other, ManagedObject) and self.key == other.key
