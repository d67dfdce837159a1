"""
PowerBrief - OneSheet context assembly and AI generation service

Builds AI context from a brand's OneSheet research record, dispatches it to
Gemini or Claude according to the brand's stored prompt configuration, and
merges the normalized output back into the record.
"""

__version__ = "1.0.0"
__author__ = "PowerBrief Team"
