import logging

PACKAGE = "dex_indexer"


class ShortNameFilter(logging.Filter):
    """Sets `record.shortname` to the logger's last two dotted parts without the package root, e.g. `pipeline-registry`."""

    def filter(self, record):
        path = [part for part in record.name.split(".") if part != PACKAGE]
        record.shortname = "-".join(path[-2:]) or record.name
        return True
