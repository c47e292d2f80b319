"""devctl - Cluster Credential Directory.

Track bastion-fronted management clusters and resolve kubeconfigs for the
workload clusters behind them without juggling files by hand.
"""

__version__ = "0.1.0"
__author__ = "Platform Engineering Team"
__license__ = "Apache-2.0"
