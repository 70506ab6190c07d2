class IndexerError(Exception):
    """Base class for errors that abort a single indexing cycle."""


class FactoryUnavailableError(IndexerError):
    """The factory contract could not be read; no pool list for this cycle."""


class BlockTimestampError(IndexerError):
    """A block timestamp needed to enrich a swap could not be resolved."""
