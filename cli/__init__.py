"""
team51 command-line interface.
"""
