"""
Shared constant values for the operator
"""

# The primary resource this operator reconciles
PRIMARY_GROUP = "multicluster.openshift.io"
PRIMARY_VERSION = "v1"
PRIMARY_KIND = "MultiClusterEngine"
PRIMARY_API_VERSION = f"{PRIMARY_GROUP}/{PRIMARY_VERSION}"

# Annotations on the primary resource that feed image resolution
IMAGE_REPOSITORY_ANNOTATION_NAME = "imageRepository"
IMAGE_OVERRIDES_CM_ANNOTATION_NAME = "imageOverridesCM"

# Reconciliation control annotations
PAUSE_ANNOTATION_NAME = "pause"
LOG_DEFAULT_LEVEL_NAME = "backplane.open-cluster-management.io/log-level"
LOG_FILTERS_NAME = "backplane.open-cluster-management.io/log-filters"

# Data key holding the JSON array of image pins in the override ConfigMap
IMAGE_OVERRIDES_DATA_KEY = "overrides.json"

# Environment variable prefix for the build-time default image of each key
OPERAND_IMAGE_ENV_PREFIX = "OPERAND_IMAGE_"

# Label placed on every managed resource naming its primary resource
OWNER_LABEL_NAME = "backplaneconfig.name"

# Label that asks the cluster network operator to inject the trusted CA bundle
TRUSTED_CA_INJECT_LABEL_NAME = "config.openshift.io/inject-trusted-cabundle"

# Pull policy values
PULL_POLICY_ALWAYS = "Always"
PULL_POLICY_IF_NOT_PRESENT = "IfNotPresent"
PULL_POLICY_NEVER = "Never"
DEFAULT_PULL_POLICY = PULL_POLICY_IF_NOT_PRESENT

# Default namespace if none given
DEFAULT_NAMESPACE = "default"

# Delimiter used for nested dict keys
NESTED_DICT_DELIM = "."

# Namespace for component workloads when spec.targetNamespace is unset
DEFAULT_TARGET_NAMESPACE = "multicluster-engine"
