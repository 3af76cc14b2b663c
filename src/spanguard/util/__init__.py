"""
Utility modules for spanguard.

- Type-based dispatch with closed node families (typedispatch.py)
- Graph algorithms (graphalgorithim/)
"""
