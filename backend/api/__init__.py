"""
HTTP routes served by `main.app`.
"""
