"""
Command-line interface for the upload mover.
"""
