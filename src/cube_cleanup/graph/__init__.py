"""
Graph Module.

Triplestore access, SPARQL construction, backups and cube lifecycle.
"""
