"""Checker core: findings, configuration, metrics, the pass runner and the manager."""
