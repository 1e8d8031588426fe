"""
Topology reconciler package.

Modules:
- ids: resource identifier generation and parsing
- state: resource descriptors, topology nodes, and the resource catalog
- topology: construction of coordinator/machine topology nodes
- inventory: cluster inventory clients (Kubernetes nodes and pods)
- scheduler: scheduler facades that accept new topology nodes
- placement: workload placement policies
- reconciler: the polling reconciliation loop
- api: REST status surface over the catalog
"""
