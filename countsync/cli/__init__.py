"""
countsync CLI

Commands:
- countsync simulate - Run the reference scenario against a simulated sink
- countsync config - Show effective configuration
- countsync version - Show version information
"""
