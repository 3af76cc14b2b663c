"""
Graph algorithms used by the control flow analyses.

- Dominator analysis over plain successor mappings (dominator.py)
"""
