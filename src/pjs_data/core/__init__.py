"""
Core data layer.

This package contains:
- sql_builder: selections on year and code, and queries for the PJS views
- data_loader: retrieve query results from PJS and save datasets
- lookup_loader: column standards and the code -> text translation table
- standardize: standard column names and types
- filters: exclude rows, choose record levels
- translate: add descriptive text for code columns
- pipeline: the full retrieve -> standardise -> translate -> save sequence
- summary: key figures of a pipeline run
"""
