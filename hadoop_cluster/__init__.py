"""
Hadoop/Spark cluster bootstrap tooling
"""

__version__ = '1.0.0'
