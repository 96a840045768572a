"""
Runtime configuration: YAML profiles under `profiles/*/profile.yaml`, plus env overrides.
"""
