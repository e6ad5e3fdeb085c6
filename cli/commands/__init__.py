"""
Command groups of the team51 CLI, one module per provider.
"""
