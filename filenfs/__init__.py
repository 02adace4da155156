"""Filen cloud storage exposed as a hierarchical filesystem for transfer tools."""
