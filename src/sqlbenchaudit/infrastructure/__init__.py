"""
Infrastructure layer: SQL Server access, report output, configuration, logging.
"""
