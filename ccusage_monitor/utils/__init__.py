"""Utility modules for ccusage-monitor."""
