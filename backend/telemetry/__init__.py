"""
Request telemetry persisted to a local DuckDB file.
"""
