"""
Retrieve and standardise data from the PJS surveillance database.

Modules:
- config: paths, database URL, view names and lookup locations
- core: retrieval, standardisation, filtering and code translation
- cli: command line entry points
"""
