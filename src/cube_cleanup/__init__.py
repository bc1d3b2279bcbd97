"""
Cube Cleanup Service.

Lifecycle management for versioned RDF Data Cubes in SPARQL triplestores:
version cleanup with backups, orphan removal and restore.
"""

__version__ = "1.0.0"
