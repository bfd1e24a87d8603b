"""Core domain package for telerelay.

Core contains markup transcoding, length-bounded splitting, and message chain
logic without any Bot API or storage-specific code, keeping the engine portable.
"""
