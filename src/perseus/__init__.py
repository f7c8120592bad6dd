"""Perseus - Go module dependency graph service and query tools.

Records the module dependency graph of Go projects in PostgreSQL,
exposes it over a REST API, and walks it from the command line.
"""

__version__ = "0.1.0"
