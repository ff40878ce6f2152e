"""Stream Apex debug logs to disk, rotate and archive them, and scan them for errors."""
__version__ = "1.0.0"
