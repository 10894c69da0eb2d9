"""Media offload core.

Optimizes local images through the remote optimization API and migrates
eligible files to CDN storage, rewriting stored references along the way.
"""
