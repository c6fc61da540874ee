"""
database — local sqlite store for pointer-file mappings.
"""
