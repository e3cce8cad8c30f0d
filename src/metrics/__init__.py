# src/metrics/__init__.py — v1
