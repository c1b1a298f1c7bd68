"""
Per-tool flows behind the CLI commands
"""
