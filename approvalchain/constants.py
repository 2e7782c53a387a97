"""Shared defaults for approvalchain."""

DEFAULT_CONFIG_PATH = "approvalchain.yaml"
DEFAULT_PAGE_SIZE = 10
DEFAULT_HTTP_TIMEOUT = 10.0
DEFAULT_CONFLICT_RETRIES = 3

ROLE_PREFIX = "role:"

# Request code prefixes, one per gated entity kind.
REQUEST_CODE_PREFIXES = {
    "Clients": "CLT",
    "Projects": "PRJ",
    "Contracts": "CON",
    "Tasks": "TSK",
    "Financial": "FIN",
    "Employment": "EMP",
}
