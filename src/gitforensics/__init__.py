"""GitForensics - incremental Git repository mining and reference build discovery for CI."""

__version__ = "0.1.0"
