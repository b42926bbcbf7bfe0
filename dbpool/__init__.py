"""
dbpool - connection pool для PostgreSQL с query() и transaction().
"""

__version__ = "1.0.0"
