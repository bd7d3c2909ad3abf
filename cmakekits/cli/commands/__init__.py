"""
CLI command handlers. Each ``run_*`` function takes the parsed arguments
and returns an exit code.
"""
