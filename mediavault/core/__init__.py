"""
Core storage logic for MediaVault.

This module is framework-agnostic - it doesn't import FastAPI or boto3.
Backends are handed in from the infrastructure layer, so replication,
sync and restore can be tested against plain directories.
"""
