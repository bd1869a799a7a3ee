"""
Send-It - repository analysis and deployment orchestration.

This package analyzes a source repository, scores hosting platforms for it,
and drives deployments to Vercel, Netlify, Cloudflare, AWS, Azure and GCP
through a bounded-retry, cancellable orchestrator.
"""

__version__ = "0.1.0"
__author__ = "Send-It"
