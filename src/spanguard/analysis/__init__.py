"""
Analyses over one function at a time.

- scopes: scope tree and handle bindings
- cfg: control flow graphs, dominators
- escape: whether a use hands the release obligation to someone else
- lifetime: release-on-every-path check
"""
