"""Data models for ccusage-monitor."""
