"""dictbridge: multi-dictionary lookup engine for MDict bundles."""

__version__ = "0.1.0"
