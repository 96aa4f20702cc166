"""sheetload: load Excel workbooks into existing PostgreSQL tables.

Sheets are validated against the destination tables' metadata, converted
cell by cell, ordered by foreign key dependencies and loaded in two
passes (mandatory columns first, optional columns as updates).
"""

__version__ = "0.1.0"
