"""
Built-in extractors. Importing this package registers them.
"""
from . import containers, records, nodes  # noqa: F401
