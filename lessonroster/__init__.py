"""
lessonroster - recurring lesson scheduling and teacher payroll.
"""

__version__ = "0.1.0"
