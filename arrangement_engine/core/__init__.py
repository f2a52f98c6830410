"""
Core infrastructure for the Arrangement Engine: errors and logging.
"""
