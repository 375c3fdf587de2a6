"""tug - push and pull dependency-ordered resource topologies into a cluster.

A manifest lists deployments (one cluster resource each) and the deployments
they depend on. tug builds a dependency graph from the manifest and walks it
concurrently: dependencies first when pushing, dependents first when pulling.
"""

__version__ = '0.4.0'
