"""
Shipyard - build and deploy orchestrator for two-tier Node web applications.

This package validates a workspace, rewrites ESM sources to CommonJS, runs the
backend and frontend builds, and deploys the result behind nginx under pm2.
"""

__version__ = "0.1.0"
__author__ = "Shipyard"
