"""Entrypoints - command line interface and plan report."""
