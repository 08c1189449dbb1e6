"""Logging estruturado, correlation-id e latência."""
