"""
RightSize AI - Kubernetes Resource Rightsizing & Cost Simulation

This package analyzes historical per-container utilization, recommends
statistically justified CPU and memory requests/limits with confidence and
risk scores, estimates the monetary savings, and projects the cost of
hypothetical allocation changes.
"""

__version__ = "1.0.0"
__author__ = "RightSize AI Team"
