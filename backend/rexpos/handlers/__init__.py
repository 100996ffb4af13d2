"""
Bridge handler modules. Importing this package registers every operation on
rexpos.bridge.bridge.
"""
from . import identity, catalog, purchasing, sales, accounting, reporting  # noqa: F401
