class LedgerError(Exception):
    """Base class for everything the ingestion pipeline raises on purpose."""


class ConfigError(LedgerError):
    """Missing or malformed contract identity / settings. Fatal at startup."""


class NodeConnectionError(LedgerError, ConnectionError):
    """The node stream is unreachable or dropped. Triggers a reconnect."""


class SubscriptionError(LedgerError):
    """The subscriber gave up reconnecting."""


class MalformedEventError(LedgerError):
    """A known signature whose topics/data do not fit its layout."""


class StoreError(LedgerError):
    """Persistence failed for one event or query."""


class QueryError(LedgerError):
    """A query-surface operation failed on the server side."""
