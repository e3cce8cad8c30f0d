# src/resources/__init__.py — v1
