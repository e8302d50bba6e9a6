"""
ModelCache CLI — ``mcache``.

Usage:
    mcache flush                      # every model scope
    mcache flush app.models:Post      # one model scope
    mcache check
    mcache inspect
    mcache --config config/cache.yaml flush
"""

__version__ = "1.0.0"
__cli_name__ = "mcache"
