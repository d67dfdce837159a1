"""
PowerBrief API - FastAPI application for the OneSheet AI pipeline.

Exposes creative brainstorm, library prompt and ad analysis endpoints plus
brief and UGC script generation for the PowerBrief frontend.
"""

__version__ = "1.0.0"
