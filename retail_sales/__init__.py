"""
Retail Sales Analytics

Clean a retail sales export, load it into a relational database and run
aggregate reports against it.
"""

__version__ = "1.0.0"
