"""ATS Verify: customs-verification ticket board and ticket service."""

__version__ = "0.1.0"
