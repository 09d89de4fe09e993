from __future__ import annotations


__version__ = "0.3.0"
__version_tuple__ = (0, 3, 0)
