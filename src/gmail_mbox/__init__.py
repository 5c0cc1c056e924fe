"""Export a Gmail mailbox into a compressed mbox archive."""

__version__ = "0.1.0"
